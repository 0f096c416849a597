#!/usr/bin/env python3
"""Pydantic schemas for published search states"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from scout.places.schemas.destination import SearchResultItem


class SearchPhase(str, Enum):
    """Phases of one logical search session"""
    IDLE = "idle"
    QUERY_COMMITTED = "query_committed"
    SESSION_OPENED = "session_opened"
    RESULTS_READY = "results_ready"
    NO_RESULTS = "no_results"
    ERROR = "error"


class SearchState(BaseModel):
    """What the presentation layer renders for the latest committed query"""
    phase: SearchPhase = SearchPhase.IDLE
    query: str = ""
    generation: int = 0
    items: List[SearchResultItem] = Field(default_factory=list)
    advisory: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.phase in (SearchPhase.QUERY_COMMITTED, SearchPhase.SESSION_OPENED)

    @property
    def is_final(self) -> bool:
        return self.phase in (
            SearchPhase.IDLE,
            SearchPhase.RESULTS_READY,
            SearchPhase.NO_RESULTS,
            SearchPhase.ERROR,
        )

    def names(self) -> List[str]:
        return [item.name for item in self.items]
