#!/usr/bin/env python3
"""Local catalog matcher: case-insensitive substring filter over a catalog snapshot"""

import re
import unicodedata
from typing import Iterable, List

from scout.places.schemas.destination import Destination

_WS = re.compile(r"\s+")


def normalize(text: str) -> str:
    """NFKC + casefold + collapsed whitespace"""
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text).casefold()
    return _WS.sub(" ", text).strip()


def match(query: str, catalog: Iterable[Destination]) -> List[Destination]:
    """
    Return the destinations whose name, location or description contain the query.

    Pure and deterministic: results keep catalog iteration order. An empty
    query matches the whole catalog.
    """
    needle = normalize(query)
    if not needle:
        return list(catalog)
    return [d for d in catalog if needle in normalize(d.search_text())]
