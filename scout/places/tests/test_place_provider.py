import asyncio

import pytest

from scout.core.errors import ProviderUnavailable, SessionMisuseError
from scout.places.services.google_places import GooglePlaces
from scout.places.services.place_provider import (
    GooglePlacesProvider,
    candidate_from_details,
    candidate_from_prediction,
)


def test_new_session_expires_previous_token(provider_factory):
    provider = provider_factory()
    first = provider.new_session(1)
    second = provider.new_session(2)
    assert first.expired
    assert not second.expired
    assert first.value != second.value
    assert provider.active_session is second

    provider.end_session()
    assert second.expired
    assert provider.active_session is None


def test_autocomplete_rejects_expired_token(provider_factory):
    provider = provider_factory(predictions={"kivu": ["p1"]})
    token = provider.new_session(1)
    provider.new_session(2)
    with pytest.raises(SessionMisuseError):
        asyncio.run(provider.autocomplete("kivu", token))
    with pytest.raises(SessionMisuseError):
        asyncio.run(provider.autocomplete("kivu", None))


def test_enrich_keeps_order_and_degrades_failures(provider_factory, candidate_factory):
    provider = provider_factory(
        predictions={"kivu": ["p1", "p2", "p3", "p4"]},
        details={
            "p1": candidate_factory("p1", "Kivu Serena"),
            "p3": candidate_factory("p3", "Gisenyi Beach"),
            "p4": candidate_factory("p4", "Kivu Lodge"),
        },
        failing_details={"p3"},
    )
    token = provider.new_session(1)

    results = asyncio.run(provider.lookup("kivu", token))

    assert [c.place_id for c in results] == ["p1", "p2", "p3", "p4"]
    assert [c.is_partial for c in results] == [False, True, True, False]
    assert results[0].name == "Kivu Serena"
    # Every details call carries the autocomplete token
    assert {value for _, value in provider.details_calls} == {token.value}
    assert provider.autocomplete_calls == [("kivu", token.value)]


def test_enrich_bounds_concurrency(provider_factory, candidate_factory):
    ids = [f"p{i}" for i in range(12)]
    provider = provider_factory(
        predictions={"q": ids},
        details={i: candidate_factory(i, i) for i in ids},
        details_delay=0.01,
        details_concurrency=3,
    )
    token = provider.new_session(1)
    results = asyncio.run(provider.lookup("q", token))
    assert len(results) == 12
    assert provider.max_in_flight == 3


def test_candidate_from_prediction_prefers_structured_text():
    candidate = candidate_from_prediction({
        "placeId": "p1",
        "text": {"text": "Lake Kivu, Rubavu, Rwanda"},
        "structuredFormat": {"mainText": {"text": "Lake Kivu"}, "secondaryText": {"text": "Rubavu, Rwanda"}},
    })
    assert candidate.name == "Lake Kivu"
    assert candidate.formatted_address == "Rubavu, Rwanda"
    assert candidate.is_partial


def test_candidate_from_details_maps_price_and_gallery():
    candidate = candidate_from_details({
        "id": "p1",
        "displayName": {"text": "Lake Kivu Serena"},
        "formattedAddress": "Gisenyi, Rwanda",
        "location": {"latitude": -1.70, "longitude": 29.26},
        "rating": 4.5,
        "priceLevel": "PRICE_LEVEL_EXPENSIVE",
        "photos": [{"name": f"photo{i}"} for i in range(8)],
        "websiteUri": "https://example.org",
        "editorialSummary": {"text": "Lakeside hotel"},
    })
    assert candidate.price_level == 3
    assert candidate.photo_reference == "photo0"
    assert candidate.gallery == ["photo1", "photo2", "photo3", "photo4", "photo5"]
    assert candidate.description == "Lakeside hotel"
    assert not candidate.is_partial


class BrokenClient(GooglePlaces):
    def autocomplete(self, text, session_token, language="en", region=None):
        raise RuntimeError("socket closed")


def test_google_provider_wraps_unexpected_autocomplete_errors():
    provider = GooglePlacesProvider(BrokenClient(api_key="k"))
    token = provider.new_session(1)
    with pytest.raises(ProviderUnavailable):
        asyncio.run(provider.autocomplete("kivu", token))


def test_google_provider_in_mock_mode_enriches():
    provider = GooglePlacesProvider(GooglePlaces(api_key="", mock_mode=True))
    token = provider.new_session(1)
    results = asyncio.run(provider.lookup("Kivu", token))
    assert len(results) == 1
    assert results[0].price_level == 2
    assert not results[0].is_partial


def test_fetch_details_rejects_expired_token(provider_factory, candidate_factory):
    provider = provider_factory(details={"p1": candidate_factory("p1", "Kivu Serena")})
    token = provider.new_session(1)
    provider.new_session(2)
    with pytest.raises(SessionMisuseError):
        asyncio.run(provider.fetch_details("p1", token))
    assert provider.details_calls == []


def test_enrich_keeps_partials_when_token_expires_mid_fan_out(provider_factory, candidate_factory):
    ids = ["p1", "p2", "p3"]
    provider = provider_factory(
        predictions={"kivu": ids},
        details={i: candidate_factory(i, i) for i in ids},
        details_delay=0.05,
        details_concurrency=1,
    )
    token = provider.new_session(1)

    async def scenario():
        candidates = await provider.autocomplete("kivu", token)
        enrich = asyncio.create_task(provider.enrich(candidates, token))
        await asyncio.sleep(0.02)
        provider.new_session(2)
        return await enrich

    results = asyncio.run(scenario())
    assert [c.place_id for c in results] == ids
    assert [c.is_partial for c in results] == [False, True, True]
    assert [place_id for place_id, _ in provider.details_calls] == ["p1"]
