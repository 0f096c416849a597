#!/usr/bin/env python3
"""
Personalization engine: evolves per-user interest vectors from actions and
builds the categorized home feed from them.
"""

import asyncio
import logging
from typing import AsyncIterable, Dict, Iterable, List, Optional, Set

from scout.core.errors import CatalogUnavailable, PersistenceFailure
from scout.personalization.interest_store import InterestVectorStore
from scout.personalization.schemas import UserActionEvent, WeightPolicy
from scout.places.schemas.destination import Destination
from scout.places.services.catalog import CatalogSource

logger = logging.getLogger(__name__)


def rank_categories(vector: Dict[str, float], categories: Iterable[str]) -> List[str]:
    """Descending weight; equal weights keep display order"""
    return sorted(categories, key=lambda c: -vector.get(c, 0.0))


class PersonalizationEngine:
    def __init__(
        self,
        catalog: CatalogSource,
        store: InterestVectorStore,
        policy: Optional[WeightPolicy] = None,
        feed_items_per_category: int = 10,
    ):
        self.catalog = catalog
        self.store = store
        self._policy = policy
        self.feed_items_per_category = feed_items_per_category
        # Deltas whose write failed, merged into that user's next write
        self._pending: Dict[str, Dict[str, float]] = {}
        self._background: Set[asyncio.Task] = set()

    @property
    def policy(self) -> WeightPolicy:
        # Without an explicit policy the YAML file is re-read once per cache TTL
        return self._policy or WeightPolicy.load()

    @property
    def categories(self) -> List[str]:
        return list(self.policy.categories)

    def pending(self, user_id: str) -> Dict[str, float]:
        return dict(self._pending.get(user_id, {}))

    async def record_action(self, event: UserActionEvent) -> Dict[str, float]:
        """
        Apply one action to the user's interest vector.

        Returns the deltas that reached the store ({} when nothing was
        written). Never raises for unknown destinations or store failures.
        """
        policy = self.policy
        delta = policy.delta_for(event)
        if delta == 0.0:
            logger.debug(f"No weight change for {event.action.value} on {event.destination_id}")
            return {}

        try:
            destination = await self.catalog.get(event.destination_id)
        except CatalogUnavailable as e:
            logger.warning(f"Skipping {event.action.value} by {event.user_id}: {e}")
            return {}
        if destination is None:
            logger.warning(f"Unknown destination {event.destination_id}; ignoring {event.action.value}")
            return {}

        known = set(policy.categories)
        deltas = {c: delta for c in destination.categories if c in known}
        ignored = [c for c in destination.categories if c not in known]
        if ignored:
            logger.debug(f"Ignoring categories outside the feed set: {ignored}")
        return await self._write(event.user_id, deltas)

    async def _write(self, user_id: str, deltas: Dict[str, float]) -> Dict[str, float]:
        combined = self._pending.pop(user_id, {})
        for category, delta in deltas.items():
            combined[category] = combined.get(category, 0.0) + delta
        combined = {c: d for c, d in combined.items() if d}
        if not combined:
            return {}

        try:
            await asyncio.to_thread(self.store.increment, user_id, combined)
        except PersistenceFailure as e:
            logger.error(f"Keeping {len(combined)} interest deltas for {user_id} pending: {e}")
            pending = self._pending.setdefault(user_id, {})
            for category, delta in combined.items():
                pending[category] = pending.get(category, 0.0) + delta
            return {}
        return combined

    async def flush_pending(self) -> int:
        """Retry every pending write; returns how many users were flushed"""
        flushed = 0
        for user_id in list(self._pending):
            if await self._write(user_id, {}):
                flushed += 1
        return flushed

    async def _record_quietly(self, event: UserActionEvent) -> None:
        try:
            await self.record_action(event)
        except Exception as e:
            logger.exception(f"Recording {event.action.value} for {event.user_id} failed: {e}")

    def submit(self, event: UserActionEvent) -> asyncio.Task:
        """Record an action in the background without blocking the caller"""
        task = asyncio.create_task(self._record_quietly(event))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for every submitted action"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def consume(self, events: AsyncIterable[UserActionEvent]) -> int:
        """Apply a stream of actions in order, each exactly once"""
        count = 0
        async for event in events:
            await self._record_quietly(event)
            count += 1
        logger.info(f"Consumed {count} user actions")
        return count

    async def seed_interests(self, user_id: str, selected: Iterable[str]) -> Dict[str, float]:
        """Onboarding: set each selected category to the onboarding weight"""
        policy = self.policy
        known = set(policy.categories)
        selected = list(selected)
        chosen = [c for c in dict.fromkeys(selected) if c in known]
        unknown = [c for c in selected if c not in known]
        if unknown:
            logger.warning(f"Ignoring unknown interests for {user_id}: {unknown}")
        values = {c: policy.onboarding_interest_weight for c in chosen}
        if values:
            await asyncio.to_thread(self.store.merge, user_id, values)
        return values

    async def interest_vector(self, user_id: str) -> Dict[str, float]:
        """Weights for every category in display order, zero-filled"""
        stored = await asyncio.to_thread(self.store.snapshot, user_id)
        return {c: float(stored.get(c, 0.0)) for c in self.categories}

    async def top_interests(self, user_id: str, limit: int = 3) -> List[str]:
        vector = await self.interest_vector(user_id)
        return [c for c in rank_categories(vector, vector) if vector[c] > 0][:limit]

    async def forget_user(self, user_id: str) -> None:
        self._pending.pop(user_id, None)
        await asyncio.to_thread(self.store.delete, user_id)
        logger.info(f"Deleted interest vector for {user_id}")

    async def personalized_feed(self, user_id: str) -> Dict[str, List[Destination]]:
        """
        One section per category, ordered by the user's interest weights.

        Every category is queried concurrently; a failed query yields an empty
        section instead of failing the feed.
        """
        categories = self.categories
        try:
            vector = await self.interest_vector(user_id)
        except PersistenceFailure as e:
            logger.warning(f"Interest vector for {user_id} unavailable, using display order: {e}")
            vector = {}

        results = await asyncio.gather(
            *(self.catalog.by_category(c, self.feed_items_per_category) for c in categories),
            return_exceptions=True,
        )

        sections: Dict[str, List[Destination]] = {}
        for category, result in zip(categories, results):
            if isinstance(result, Exception):
                logger.warning(f"Feed section '{category}' failed: {result}")
                sections[category] = []
            elif isinstance(result, BaseException):
                raise result
            else:
                sections[category] = list(result)

        return {c: sections[c] for c in rank_categories(vector, categories)}
