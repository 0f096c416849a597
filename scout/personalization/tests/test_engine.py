import asyncio

from scout.core.errors import CatalogUnavailable, PersistenceFailure
from scout.personalization.engine import PersonalizationEngine, rank_categories
from scout.personalization.interest_store import InMemoryInterestVectorStore, SqlInterestVectorStore
from scout.personalization.schemas import DEFAULT_CATEGORIES, ActionType, UserActionEvent, WeightPolicy
from scout.places.schemas.destination import Destination
from scout.places.services.catalog import InMemoryCatalog

class FlakyStore(InMemoryInterestVectorStore):
    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    def increment(self, user_id, deltas):
        if self.failures:
            self.failures -= 1
            raise PersistenceFailure("connection reset")
        super().increment(user_id, deltas)

class PartlyBrokenCatalog(InMemoryCatalog):
    def __init__(self, destinations, broken):
        super().__init__(destinations)
        self.broken = broken

    async def by_category(self, category, limit=None):
        if category == self.broken:
            raise CatalogUnavailable(f"{category} query timed out")
        return await super().by_category(category, limit)

def action(kind, destination_id="kivu", rating=None, user_id="u1"):
    return UserActionEvent(user_id=user_id, action=kind, destination_id=destination_id, rating=rating)

def make_engine(catalog, store=None, **kwargs):
    return PersonalizationEngine(catalog, store or InMemoryInterestVectorStore(), policy=WeightPolicy(), **kwargs)

def test_favorite_and_review_accumulate(memory_catalog):
    engine = make_engine(memory_catalog)

    async def scenario():
        await engine.record_action(action(ActionType.FAVORITE))
        await engine.record_action(action(ActionType.REVIEW, rating=5))
        return await engine.interest_vector("u1")

    vector = asyncio.run(scenario())
    assert vector["Beaches"] == 6.0
    assert vector["Relaxing"] == 6.0
    assert vector["Nature"] == 6.0
    assert vector["Adventure"] == 0.0
    assert list(vector) == list(DEFAULT_CATEGORIES)

def test_unfavorite_and_negative_review(memory_catalog):
    engine = make_engine(memory_catalog)

    async def scenario():
        await engine.record_action(action(ActionType.UNFAVORITE, "volcanoes"))
        await engine.record_action(action(ActionType.REVIEW, "volcanoes", rating=1))
        return await engine.interest_vector("u1")

    vector = asyncio.run(scenario())
    assert vector["Mountains"] == -4.0
    assert vector["Adventure"] == -4.0

def test_zero_delta_actions_do_not_write(memory_catalog):
    store = InMemoryInterestVectorStore()
    engine = make_engine(memory_catalog, store)

    async def scenario():
        applied = [
            await engine.record_action(action(ActionType.VIEW)),
            await engine.record_action(action(ActionType.BOOKING)),
            await engine.record_action(action(ActionType.REVIEW, rating=3)),
            await engine.record_action(action(ActionType.REVIEW)),
        ]
        return applied

    assert asyncio.run(scenario()) == [{}, {}, {}, {}]
    assert store.snapshot("u1") == {}

def test_repeated_events_apply_each_time(memory_catalog):
    engine = make_engine(memory_catalog)
    favorite = action(ActionType.FAVORITE)

    async def scenario():
        await engine.record_action(favorite)
        await engine.record_action(favorite)
        return await engine.interest_vector("u1")

    assert asyncio.run(scenario())["Beaches"] == 2.0

def test_unknown_destination_is_ignored(memory_catalog):
    store = InMemoryInterestVectorStore()
    engine = make_engine(memory_catalog, store)
    assert asyncio.run(engine.record_action(action(ActionType.FAVORITE, "atlantis"))) == {}
    assert store.snapshot("u1") == {}

def test_categories_outside_the_feed_set_are_ignored():
    catalog = InMemoryCatalog([Destination(id="bar", name="Rooftop Bar", categories=("Nightlife", "City Breaks"))])
    engine = make_engine(catalog)
    applied = asyncio.run(engine.record_action(action(ActionType.FAVORITE, "bar")))
    assert applied == {"City Breaks": 1.0}

def test_failed_write_is_retried_with_next_event(memory_catalog):
    store = FlakyStore(failures=1)
    engine = make_engine(memory_catalog, store)

    async def scenario():
        first = await engine.record_action(action(ActionType.FAVORITE))
        pending = engine.pending("u1")
        second = await engine.record_action(action(ActionType.FAVORITE))
        return first, pending, second

    first, pending, second = asyncio.run(scenario())
    assert first == {}
    assert pending == {"Beaches": 1.0, "Relaxing": 1.0, "Nature": 1.0}
    assert second == {"Beaches": 2.0, "Relaxing": 2.0, "Nature": 2.0}
    assert store.snapshot("u1")["Nature"] == 2.0
    assert engine.pending("u1") == {}

def test_flush_pending(memory_catalog):
    store = FlakyStore(failures=1)
    engine = make_engine(memory_catalog, store)

    async def scenario():
        await engine.record_action(action(ActionType.REVIEW, rating=4))
        return await engine.flush_pending()

    assert asyncio.run(scenario()) == 1
    assert store.snapshot("u1")["Beaches"] == 5.0

def test_concurrent_events_are_not_lost(memory_catalog):
    store = InMemoryInterestVectorStore()
    engine = make_engine(memory_catalog, store)

    async def scenario():
        await asyncio.gather(*(engine.record_action(action(ActionType.FAVORITE)) for _ in range(50)))

    asyncio.run(scenario())
    assert store.snapshot("u1")["Nature"] == 50.0

def test_submit_and_consume(memory_catalog):
    store = InMemoryInterestVectorStore()
    engine = make_engine(memory_catalog, store)

    async def events():
        yield action(ActionType.FAVORITE, "volcanoes")
        yield action(ActionType.REVIEW, "volcanoes", rating=5)

    async def scenario():
        engine.submit(action(ActionType.FAVORITE))
        consumed = await engine.consume(events())
        await engine.drain()
        return consumed

    assert asyncio.run(scenario()) == 2
    snapshot = store.snapshot("u1")
    assert snapshot["Mountains"] == 6.0
    assert snapshot["Beaches"] == 1.0

def test_sql_store_accumulates(memory_catalog, sqlite_session_factory):
    engine = make_engine(memory_catalog, SqlInterestVectorStore(sqlite_session_factory))

    async def scenario():
        for _ in range(3):
            await engine.record_action(action(ActionType.FAVORITE))
        await engine.record_action(action(ActionType.REVIEW, rating=2))
        return await engine.interest_vector("u1")

    assert asyncio.run(scenario())["Relaxing"] == 0.0

def test_feed_has_every_category_even_when_one_fails():
    one_per_category = [
        Destination(id=f"d{i}", name=f"{category} spot", categories=(category,))
        for i, category in enumerate(DEFAULT_CATEGORIES)
    ]
    catalog = PartlyBrokenCatalog(one_per_category, broken="Foodie")
    engine = make_engine(catalog, feed_items_per_category=2)

    feed = asyncio.run(engine.personalized_feed("u1"))

    assert list(feed) == list(DEFAULT_CATEGORIES)
    empty = [category for category, items in feed.items() if not items]
    assert empty == ["Foodie"]
    for category, items in feed.items():
        if category != "Foodie":
            assert [d.name for d in items] == [f"{category} spot"]

def test_feed_section_size_is_capped(destinations):
    engine = make_engine(InMemoryCatalog(destinations), feed_items_per_category=2)
    feed = asyncio.run(engine.personalized_feed("u1"))
    assert [d.id for d in feed["Nature"]] == ["kivu", "nyungwe"]

def test_unfavorite_only_touches_the_destinations_categories(destinations):
    beach = Destination(id="gisenyi-beach", name="Gisenyi Public Beach", categories=("Beaches",))
    engine = make_engine(InMemoryCatalog(destinations + [beach]))

    async def scenario():
        await engine.record_action(action(ActionType.FAVORITE))
        applied = await engine.record_action(action(ActionType.UNFAVORITE, "gisenyi-beach"))
        return applied, await engine.interest_vector("u1")

    applied, vector = asyncio.run(scenario())
    assert applied == {"Beaches": -1.0}
    assert vector["Beaches"] == 0.0
    assert vector["Relaxing"] == 1.0
    assert vector["Nature"] == 1.0

def test_feed_is_ordered_by_interest(memory_catalog):
    engine = make_engine(memory_catalog)

    async def scenario():
        await engine.seed_interests("u1", ["Foodie"])
        await engine.record_action(action(ActionType.REVIEW, "kigali-genocide-memorial", rating=5))
        await engine.record_action(action(ActionType.UNFAVORITE, "kivu"))
        return await engine.personalized_feed("u1")

    order = list(asyncio.run(scenario()))
    assert order[:3] == ["Foodie", "Cultural", "Historical"]
    assert order[-3:] == ["Beaches", "Nature", "Relaxing"]
    assert order[3:7] == ["Adventure", "Mountains", "City Breaks", "Family"]

def test_seed_and_top_interests(memory_catalog):
    engine = make_engine(memory_catalog)

    async def scenario():
        seeded = await engine.seed_interests("u1", ["Nature", "Beaches", "Karaoke"])
        await engine.record_action(action(ActionType.FAVORITE))
        return seeded, await engine.top_interests("u1", limit=2)

    seeded, top = asyncio.run(scenario())
    assert seeded == {"Nature": 10.0, "Beaches": 10.0}
    assert top == ["Beaches", "Nature"]

def test_forget_user(memory_catalog):
    store = InMemoryInterestVectorStore()
    engine = make_engine(memory_catalog, store)

    async def scenario():
        await engine.record_action(action(ActionType.FAVORITE))
        await engine.forget_user("u1")
        return await engine.interest_vector("u1")

    assert set(asyncio.run(scenario()).values()) == {0.0}

def test_rank_categories_ties_keep_display_order():
    assert rank_categories({"b": 1.0}, ["a", "b", "c"]) == ["b", "a", "c"]
    assert rank_categories({}, ["a", "b", "c"]) == ["a", "b", "c"]
