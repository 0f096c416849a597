import asyncio
import os
from typing import Dict, Iterable, List, Optional

import pytest

# Keep engine imports off the production database
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from scout.core.db import init_db  # noqa: E402
from scout.core.errors import ProviderUnavailable  # noqa: E402
from scout.places.schemas.destination import Destination, RemotePlaceCandidate, SessionToken  # noqa: E402
from scout.places.services.catalog import InMemoryCatalog  # noqa: E402
from scout.places.services.place_provider import PlaceProvider  # noqa: E402


class FakePlaceProvider(PlaceProvider):
    """Scripted provider: autocomplete answers by query, details by place id"""

    def __init__(
        self,
        predictions: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, RemotePlaceCandidate]] = None,
        autocomplete_delays: Optional[Dict[str, float]] = None,
        failing_details: Iterable[str] = (),
        fail_autocomplete: bool = False,
        details_delay: float = 0.0,
        details_concurrency: int = 5,
    ):
        super().__init__(details_concurrency=details_concurrency)
        self.predictions = predictions or {}
        self.details = details or {}
        self.autocomplete_delays = autocomplete_delays or {}
        self.failing_details = set(failing_details)
        self.fail_autocomplete = fail_autocomplete
        self.details_delay = details_delay
        self.autocomplete_calls: List[tuple] = []
        self.details_calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _autocomplete(self, query: str, token: SessionToken) -> List[RemotePlaceCandidate]:
        self.autocomplete_calls.append((query, token.value))
        await asyncio.sleep(self.autocomplete_delays.get(query, 0))
        if self.fail_autocomplete:
            raise ProviderUnavailable("network down")
        return [
            RemotePlaceCandidate(place_id=place_id, name=f"{place_id} (partial)")
            for place_id in self.predictions.get(query, [])
        ]

    async def _fetch_details(self, place_id: str, token: SessionToken) -> Optional[RemotePlaceCandidate]:
        self.details_calls.append((place_id, token.value))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.details_delay)
            if place_id in self.failing_details:
                raise ProviderUnavailable(f"details for {place_id} timed out")
            return self.details.get(place_id)
        finally:
            self.in_flight -= 1


def full_candidate(place_id: str, name: str, rating: float = 4.5) -> RemotePlaceCandidate:
    return RemotePlaceCandidate(
        place_id=place_id,
        name=name,
        formatted_address=f"{name}, Rwanda",
        rating=rating,
        price_level=2,
        is_partial=False,
    )


SAMPLE_DESTINATIONS = [
    Destination(
        id="kivu",
        name="Lake Kivu",
        location="Rubavu, Rwanda",
        rating=4.7,
        categories=("Beaches", "Relaxing", "Nature"),
        price=120.0,
        description="Freshwater lake with sandy shores",
    ),
    Destination(
        id="volcanoes",
        name="Volcanoes National Park",
        location="Musanze, Rwanda",
        rating=4.9,
        categories=("Adventure", "Mountains", "Nature"),
        price=1500.0,
        description="Gorilla trekking in the Virunga mountains",
    ),
    Destination(
        id="kigali-genocide-memorial",
        name="Kigali Genocide Memorial",
        location="Kigali, Rwanda",
        rating=4.8,
        categories=("Historical", "Cultural"),
        price=0.0,
    ),
    Destination(
        id="nyungwe",
        name="Nyungwe Forest",
        location="Nyamasheke, Rwanda",
        rating=4.6,
        categories=("Nature", "Adventure"),
        price=100.0,
        description="Canopy walk above the rainforest",
    ),
    Destination(
        id="kimironko",
        name="Kimironko Market",
        location="Kigali, Rwanda",
        rating=4.2,
        categories=("Foodie", "City Breaks"),
        price=5.0,
    ),
]


@pytest.fixture
def destinations() -> List[Destination]:
    return list(SAMPLE_DESTINATIONS)


@pytest.fixture
def memory_catalog(destinations) -> InMemoryCatalog:
    return InMemoryCatalog(destinations)


@pytest.fixture
def provider_factory():
    return FakePlaceProvider


@pytest.fixture
def candidate_factory():
    return full_candidate


@pytest.fixture
def sqlite_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'scout.db'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
