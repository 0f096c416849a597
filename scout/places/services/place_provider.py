#!/usr/bin/env python3
"""
Remote place provider: session-token lifecycle plus bounded detail fan-out.

One committed query owns one session token. Autocomplete yields partial
candidates; each candidate is then enriched by its own details call bound to
the same token. A failed enrichment degrades that candidate to its partial
form and never aborts the batch.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from scout.core.errors import PartialDetailFailure, ProviderUnavailable, SessionMisuseError
from scout.places.schemas.destination import RemotePlaceCandidate, SessionToken
from scout.places.services.google_places import GooglePlaces, normalize_price_level

logger = logging.getLogger(__name__)

GALLERY_SIZE = 5


class PlaceProvider(ABC):
    """Base provider; subclasses implement the two remote calls"""

    def __init__(self, details_concurrency: int = 5):
        self.details_concurrency = max(1, details_concurrency)
        self._active: Optional[SessionToken] = None

    @property
    def active_session(self) -> Optional[SessionToken]:
        return self._active

    def new_session(self, generation: int = 0) -> SessionToken:
        """Open a session for a committed query; the previous token expires"""
        if self._active is not None:
            self._active.expire()
        self._active = SessionToken(generation=generation)
        logger.debug(f"Opened place session {self._active.value} (generation {generation})")
        return self._active

    def end_session(self, token: Optional[SessionToken] = None) -> None:
        """Expire a token (the active one by default)"""
        target = token or self._active
        if target is None:
            return
        target.expire()
        if target is self._active:
            self._active = None

    async def autocomplete(self, query: str, token: SessionToken) -> List[RemotePlaceCandidate]:
        """Partial candidates for a query; raises ProviderUnavailable on failure"""
        if token is None:
            raise SessionMisuseError("autocomplete requires a session token")
        if token.expired:
            raise SessionMisuseError(f"Session token {token.value} has expired")
        return await self._autocomplete(query, token)

    async def fetch_details(self, place_id: str, token: SessionToken) -> Optional[RemotePlaceCandidate]:
        """Full candidate for one place, or None when the provider has nothing"""
        if token is None:
            raise SessionMisuseError("fetch_details requires a session token")
        if token.expired:
            raise SessionMisuseError(f"Session token {token.value} has expired")
        return await self._fetch_details(place_id, token)

    async def _bounded_details(
        self, semaphore: asyncio.Semaphore, candidate: RemotePlaceCandidate, token: SessionToken
    ) -> Optional[RemotePlaceCandidate]:
        async with semaphore:
            # A newer commit may have expired the token while this call waited
            if token.expired:
                logger.debug(f"Skipping details for {candidate.place_id}: session {token.value} expired")
                return None
            return await self.fetch_details(candidate.place_id, token)

    async def enrich(self, candidates: List[RemotePlaceCandidate], token: SessionToken) -> List[RemotePlaceCandidate]:
        """Fan out detail lookups and fan in, keeping autocomplete order"""
        if not candidates:
            return []

        semaphore = asyncio.Semaphore(self.details_concurrency)
        results = await asyncio.gather(
            *(self._bounded_details(semaphore, c, token) for c in candidates),
            return_exceptions=True,
        )

        enriched = []
        for candidate, result in zip(candidates, results):
            if isinstance(result, Exception):
                failure = PartialDetailFailure(candidate.place_id, str(result))
                logger.warning(f"{failure}; keeping partial candidate")
                enriched.append(candidate)
            elif isinstance(result, BaseException):
                raise result
            elif result is None:
                logger.info(f"No details for {candidate.place_id}; keeping partial candidate")
                enriched.append(candidate)
            else:
                enriched.append(result)
        return enriched

    async def lookup(self, query: str, token: SessionToken) -> List[RemotePlaceCandidate]:
        """Autocomplete then enrich, under one token"""
        candidates = await self.autocomplete(query, token)
        return await self.enrich(candidates, token)

    @abstractmethod
    async def _autocomplete(self, query: str, token: SessionToken) -> List[RemotePlaceCandidate]:
        pass

    @abstractmethod
    async def _fetch_details(self, place_id: str, token: SessionToken) -> Optional[RemotePlaceCandidate]:
        pass


def candidate_from_prediction(prediction: Dict[str, Any]) -> RemotePlaceCandidate:
    """Partial candidate from an autocomplete placePrediction"""
    structured = prediction.get("structuredFormat") or {}
    full_text = (prediction.get("text") or {}).get("text", "")
    name = (structured.get("mainText") or {}).get("text") or full_text
    address = (structured.get("secondaryText") or {}).get("text") or full_text
    return RemotePlaceCandidate(
        place_id=prediction["placeId"],
        name=name,
        formatted_address=address,
        is_partial=True,
    )


def candidate_from_details(details: Dict[str, Any]) -> RemotePlaceCandidate:
    """Full candidate from a place details payload"""
    location = details.get("location") or {}
    photos = [p.get("name") for p in details.get("photos") or [] if p.get("name")]
    return RemotePlaceCandidate(
        place_id=details["id"],
        name=(details.get("displayName") or {}).get("text") or details.get("formattedAddress") or details["id"],
        formatted_address=details.get("formattedAddress") or "",
        rating=details.get("rating"),
        price_level=normalize_price_level(details.get("priceLevel")),
        photo_reference=photos[0] if photos else None,
        latitude=location.get("latitude"),
        longitude=location.get("longitude"),
        website=details.get("websiteUri"),
        gallery=photos[1:1 + GALLERY_SIZE],
        description=(details.get("editorialSummary") or {}).get("text"),
        is_partial=False,
    )


class GooglePlacesProvider(PlaceProvider):
    """Provider over the blocking Google Places client; each call runs in a worker thread"""

    def __init__(
        self,
        client: GooglePlaces,
        language: str = "en",
        region: Optional[str] = None,
        details_concurrency: int = 5,
    ):
        super().__init__(details_concurrency=details_concurrency)
        self.client = client
        self.language = language
        self.region = region or None

    async def _autocomplete(self, query: str, token: SessionToken) -> List[RemotePlaceCandidate]:
        try:
            predictions = await asyncio.to_thread(
                self.client.autocomplete, query, token.value, self.language, self.region
            )
        except ProviderUnavailable:
            raise
        except Exception as e:
            raise ProviderUnavailable(f"Autocomplete failed: {e}") from e
        return [candidate_from_prediction(p) for p in predictions]

    async def _fetch_details(self, place_id: str, token: SessionToken) -> Optional[RemotePlaceCandidate]:
        details = await asyncio.to_thread(self.client.place_details, place_id, token.value, self.language)
        if not details or not details.get("id"):
            return None
        return candidate_from_details(details)
