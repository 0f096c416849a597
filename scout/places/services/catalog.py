#!/usr/bin/env python3
"""Local destination catalog: sources and the in-memory snapshot used for matching"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from scout.core.errors import CatalogUnavailable
from scout.places.models import DestinationCategoryRow, DestinationRow
from scout.places.schemas.destination import Destination

logger = logging.getLogger(__name__)


class CatalogSource(ABC):
    """Read-mostly destination collection keyed by id"""

    @abstractmethod
    async def all_destinations(self) -> List[Destination]:
        """Full scan ordered by name"""
        pass

    @abstractmethod
    async def get(self, destination_id: str) -> Optional[Destination]:
        """Single destination by id"""
        pass

    @abstractmethod
    async def by_category(self, category: str, limit: Optional[int] = None) -> List[Destination]:
        """Destinations tagged with a category, ordered by name"""
        pass


class InMemoryCatalog(CatalogSource):
    """Catalog held in a dict; used for local development and tests"""

    def __init__(self, destinations: Iterable[Destination] = ()):
        self._items: Dict[str, Destination] = {}
        for destination in destinations:
            self.put(destination)

    def put(self, destination: Destination) -> None:
        self._items[destination.id] = destination

    def remove(self, destination_id: str) -> None:
        self._items.pop(destination_id, None)

    def _ordered(self) -> List[Destination]:
        return sorted(self._items.values(), key=lambda d: d.name)

    async def all_destinations(self) -> List[Destination]:
        return self._ordered()

    async def get(self, destination_id: str) -> Optional[Destination]:
        return self._items.get(destination_id)

    async def by_category(self, category: str, limit: Optional[int] = None) -> List[Destination]:
        found = [d for d in self._ordered() if category in d.categories]
        return found[:limit] if limit else found


class SqlCatalog(CatalogSource):
    """Catalog backed by the destinations tables; blocking queries run in worker threads"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _run(self, fn):
        session: Session = self.session_factory()
        try:
            return fn(session)
        except SQLAlchemyError as e:
            logger.error(f"Catalog query failed: {e}")
            raise CatalogUnavailable(f"Catalog query failed: {e}") from e
        finally:
            session.close()

    async def all_destinations(self) -> List[Destination]:
        def query(session: Session) -> List[Destination]:
            rows = session.scalars(select(DestinationRow).order_by(DestinationRow.name)).all()
            return [row.to_domain() for row in rows]

        return await asyncio.to_thread(self._run, query)

    async def get(self, destination_id: str) -> Optional[Destination]:
        def query(session: Session) -> Optional[Destination]:
            row = session.get(DestinationRow, destination_id)
            return row.to_domain() if row else None

        return await asyncio.to_thread(self._run, query)

    async def by_category(self, category: str, limit: Optional[int] = None) -> List[Destination]:
        def query(session: Session) -> List[Destination]:
            stmt = (
                select(DestinationRow)
                .join(DestinationCategoryRow)
                .where(DestinationCategoryRow.category == category)
                .order_by(DestinationRow.name)
            )
            if limit:
                stmt = stmt.limit(limit)
            return [row.to_domain() for row in session.scalars(stmt).all()]

        return await asyncio.to_thread(self._run, query)

    def upsert(self, destination: Destination) -> None:
        """Insert or replace one destination together with its category index"""
        def write(session: Session) -> None:
            row = session.get(DestinationRow, destination.id)
            if row is None:
                row = DestinationRow(id=destination.id)
                session.add(row)
            row.name = destination.name
            row.image_url = destination.image_url
            row.rating = destination.rating
            row.location = destination.location
            row.price = destination.price
            row.description = destination.description
            row.categories = [
                DestinationCategoryRow(category=category, position=i)
                for i, category in enumerate(dict.fromkeys(destination.categories))
            ]
            session.commit()

        self._run(write)


class CatalogSnapshot:
    """In-memory snapshot of the whole catalog, refreshed after a TTL"""

    def __init__(self, source: CatalogSource, ttl_seconds: float = 300):
        self.source = source
        self.ttl_seconds = ttl_seconds
        self._items: Optional[List[Destination]] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._items is not None

    def is_fresh(self) -> bool:
        return self.loaded and (time.monotonic() - self._loaded_at) < self.ttl_seconds

    def invalidate(self) -> None:
        """Force a reload on the next read"""
        self._loaded_at = 0.0

    async def destinations(self) -> List[Destination]:
        """
        Current snapshot.

        A failed refresh keeps serving the previous snapshot; only a failed
        first load raises CatalogUnavailable.
        """
        if self.is_fresh():
            return self._items

        async with self._lock:
            if self.is_fresh():
                return self._items
            try:
                items = await self.source.all_destinations()
            except Exception as e:
                if self._items is None:
                    raise CatalogUnavailable(f"Catalog could not be loaded: {e}") from e
                logger.warning(f"Catalog refresh failed, serving previous snapshot: {e}")
                self._loaded_at = time.monotonic()
                return self._items
            self._items = list(items)
            self._loaded_at = time.monotonic()
            logger.info(f"Catalog snapshot loaded: {len(self._items)} destinations")
            return self._items
