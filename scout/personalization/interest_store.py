#!/usr/bin/env python3
"""
Interest vector persistence.

Stores are blocking; the engine calls them through asyncio.to_thread, so every
implementation must be safe to call from several worker threads at once.
Increments are atomic per (user, category) key.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql import func

from scout.core.errors import PersistenceFailure
from scout.personalization.models import InterestScoreRow

logger = logging.getLogger(__name__)


class InterestVectorStore(ABC):
    """Per-user category -> weight mapping"""

    @abstractmethod
    def increment(self, user_id: str, deltas: Dict[str, float]) -> None:
        """Add each delta to the stored weight, creating missing keys at 0.0"""
        pass

    @abstractmethod
    def merge(self, user_id: str, values: Dict[str, float]) -> None:
        """Overwrite the given keys, leaving every other key untouched"""
        pass

    @abstractmethod
    def snapshot(self, user_id: str) -> Dict[str, float]:
        """Stored weights for a user; missing keys are simply absent"""
        pass

    @abstractmethod
    def delete(self, user_id: str) -> None:
        pass


class InMemoryInterestVectorStore(InterestVectorStore):
    """Dict-backed store for local runs and tests"""

    def __init__(self):
        self._vectors: Dict[str, Dict[str, float]] = defaultdict(dict)
        self._lock = threading.Lock()

    def increment(self, user_id: str, deltas: Dict[str, float]) -> None:
        with self._lock:
            vector = self._vectors[user_id]
            for category, delta in deltas.items():
                vector[category] = vector.get(category, 0.0) + delta

    def merge(self, user_id: str, values: Dict[str, float]) -> None:
        with self._lock:
            self._vectors[user_id].update(values)

    def snapshot(self, user_id: str) -> Dict[str, float]:
        with self._lock:
            return dict(self._vectors.get(user_id, {}))

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._vectors.pop(user_id, None)


class SqlInterestVectorStore(InterestVectorStore):
    """Store over the interest_scores table; one transaction per call"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _write(self, user_id: str, fn) -> None:
        session: Session = self.session_factory()
        try:
            fn(session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Interest write for {user_id} failed: {e}")
            raise PersistenceFailure(f"Interest write for {user_id} failed: {e}") from e
        finally:
            session.close()

    @staticmethod
    def _increment_one(session: Session, user_id: str, category: str, delta: float) -> None:
        stmt = (
            update(InterestScoreRow)
            .where(InterestScoreRow.user_id == user_id, InterestScoreRow.category == category)
            .values(weight=InterestScoreRow.weight + delta, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if session.execute(stmt).rowcount:
            return
        try:
            with session.begin_nested():
                session.add(InterestScoreRow(user_id=user_id, category=category, weight=delta))
        except IntegrityError:
            # Another writer created the row first
            session.execute(stmt)

    def increment(self, user_id: str, deltas: Dict[str, float]) -> None:
        if not deltas:
            return

        def write(session: Session) -> None:
            for category, delta in deltas.items():
                self._increment_one(session, user_id, category, delta)

        self._write(user_id, write)

    def merge(self, user_id: str, values: Dict[str, float]) -> None:
        if not values:
            return

        def write(session: Session) -> None:
            rows = session.scalars(
                select(InterestScoreRow).where(
                    InterestScoreRow.user_id == user_id,
                    InterestScoreRow.category.in_(list(values)),
                )
            ).all()
            existing = {row.category: row for row in rows}
            for category, weight in values.items():
                row = existing.get(category)
                if row is None:
                    session.add(InterestScoreRow(user_id=user_id, category=category, weight=weight))
                else:
                    row.weight = weight

        self._write(user_id, write)

    def snapshot(self, user_id: str) -> Dict[str, float]:
        session: Session = self.session_factory()
        try:
            rows = session.execute(
                select(InterestScoreRow.category, InterestScoreRow.weight).where(
                    InterestScoreRow.user_id == user_id
                )
            ).all()
            return {category: weight for category, weight in rows}
        except SQLAlchemyError as e:
            logger.error(f"Interest read for {user_id} failed: {e}")
            raise PersistenceFailure(f"Interest read for {user_id} failed: {e}") from e
        finally:
            session.close()

    def delete(self, user_id: str) -> None:
        self._write(
            user_id,
            lambda session: session.execute(delete(InterestScoreRow).where(InterestScoreRow.user_id == user_id)),
        )
