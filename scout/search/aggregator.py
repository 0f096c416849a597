#!/usr/bin/env python3
"""
Search aggregator: merges local catalog matches with remote place candidates.

Every committed query gets a new generation number and a new session token.
Runs are never cancelled; a run whose generation is no longer the latest
simply has its states dropped at publication, so the newest commit always wins
regardless of completion order.
"""

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, List, Optional, Set

from scout.core.errors import CatalogUnavailable, SessionMisuseError, TransientProviderFailure
from scout.places.schemas.destination import (
    Destination,
    LocalResult,
    RemotePlaceCandidate,
    RemoteResult,
    SessionToken,
)
from scout.places.services.catalog import CatalogSnapshot
from scout.places.services.matcher import match
from scout.places.services.place_provider import PlaceProvider
from scout.search.debouncer import QueryDebouncer
from scout.search.schemas import SearchPhase, SearchState

logger = logging.getLogger(__name__)

REMOTE_UNAVAILABLE = "Online places are unavailable right now."
LOCAL_UNAVAILABLE = "Saved destinations are unavailable right now."

_END = object()


class SearchAggregator:
    """Per-query orchestration of the local matcher and the remote provider"""

    def __init__(
        self,
        catalog: CatalogSnapshot,
        provider: PlaceProvider,
        debouncer: Optional[QueryDebouncer] = None,
    ):
        self.catalog = catalog
        self.provider = provider
        self.debouncer = debouncer or QueryDebouncer()
        self._generation = 0
        self._state = SearchState()
        self._tasks: Set[asyncio.Task] = set()
        self._latest_task: Optional[asyncio.Task] = None
        self._listeners: List[asyncio.Queue] = []

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> SearchState:
        return self._state

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _publish(self, state: SearchState) -> bool:
        if not self._is_current(state.generation):
            logger.debug(
                f"Dropped stale {state.phase.value} for '{state.query}' "
                f"(generation {state.generation}, latest {self._generation})"
            )
            return False
        self._state = state
        for listener in list(self._listeners):
            listener.put_nowait(state)
        return True

    def commit(self, query: str) -> int:
        """Start aggregation for a committed query and return its generation"""
        self._generation += 1
        generation = self._generation
        query = query.strip()

        if not query:
            self.provider.end_session()
            self._latest_task = None
            self._publish(SearchState(phase=SearchPhase.IDLE, generation=generation))
            return generation

        self._publish(SearchState(phase=SearchPhase.QUERY_COMMITTED, query=query, generation=generation))
        token = self.provider.new_session(generation)
        self._publish(SearchState(phase=SearchPhase.SESSION_OPENED, query=query, generation=generation))

        task = asyncio.create_task(self._aggregate(query, generation, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._latest_task = task
        return generation

    async def _aggregate(self, query: str, generation: int, token: SessionToken) -> SearchState:
        try:
            state = await self._run(query, generation, token)
        except Exception as e:
            logger.exception(f"Search for '{query}' failed: {e}")
            state = SearchState(
                phase=SearchPhase.ERROR,
                query=query,
                generation=generation,
                message="Search is unavailable right now.",
            )
        self._publish(state)
        return state

    async def _run(self, query: str, generation: int, token: SessionToken) -> SearchState:
        remote_task = asyncio.create_task(self._remote(query, generation, token))
        advisories = []

        local: List[Destination] = []
        catalog_failed = False
        try:
            destinations = await self.catalog.destinations()
            local = match(query, destinations)
        except CatalogUnavailable as e:
            logger.warning(f"Local catalog unavailable for '{query}': {e}")
            catalog_failed = True
            advisories.append(LOCAL_UNAVAILABLE)
        except BaseException:
            remote_task.cancel()
            await asyncio.gather(remote_task, return_exceptions=True)
            raise

        remote = await remote_task
        if remote is None:
            advisories.append(REMOTE_UNAVAILABLE)
            remote = []

        items = [LocalResult(destination=d) for d in local]
        items += [RemoteResult(candidate=c, session_token=token) for c in remote]
        advisory = " ".join(advisories) or None

        if items:
            return SearchState(
                phase=SearchPhase.RESULTS_READY,
                query=query,
                generation=generation,
                items=items,
                advisory=advisory,
            )
        if catalog_failed:
            return SearchState(
                phase=SearchPhase.ERROR,
                query=query,
                generation=generation,
                advisory=advisory,
                message=LOCAL_UNAVAILABLE,
            )
        return SearchState(
            phase=SearchPhase.NO_RESULTS,
            query=query,
            generation=generation,
            advisory=advisory,
            message=f'No results found for "{query}"',
        )

    async def _remote(self, query: str, generation: int, token: SessionToken) -> Optional[List[RemotePlaceCandidate]]:
        """Remote candidates, [] when skipped as stale, None when the provider failed"""
        if not self._is_current(generation):
            return []
        try:
            candidates = await self.provider.autocomplete(query, token)
        except (TransientProviderFailure, SessionMisuseError) as e:
            logger.warning(f"Remote lookup for '{query}' degraded to zero results: {e}")
            return None

        if not self._is_current(generation):
            # Superseded while autocomplete was in flight; skip the detail fan-out
            return candidates
        return await self.provider.enrich(candidates, token)

    async def run_query(self, query: str) -> SearchState:
        """Commit one query and wait for its final state"""
        self.commit(query)
        task = self._latest_task
        if task is None:
            return self._state
        return await task

    async def wait_idle(self) -> None:
        """Wait for the latest committed query to finish"""
        task = self._latest_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def aclose(self) -> None:
        """Wait for every run still in flight, stale ones included"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.provider.end_session()

    async def search(self, keystrokes: AsyncIterable[str]) -> AsyncIterator[SearchState]:
        """Debounce a keystroke stream and yield every published state"""
        updates: asyncio.Queue = asyncio.Queue()
        self._listeners.append(updates)

        async def pump() -> None:
            try:
                async for query in self.debouncer.commits(keystrokes):
                    self.commit(query)
                await self.wait_idle()
            finally:
                updates.put_nowait(_END)

        pump_task = asyncio.create_task(pump())
        try:
            while True:
                state = await updates.get()
                if state is _END:
                    break
                yield state
            await pump_task
        finally:
            self._listeners.remove(updates)
            if not pump_task.done():
                pump_task.cancel()
