#!/usr/bin/env python3
"""Pydantic schemas for local destinations and remote place candidates"""

import time
import uuid
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class Destination(BaseModel):
    """Destination from the local catalog; read-only to the engine"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image_url: str = ""
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    location: str = ""
    categories: Tuple[str, ...] = ()
    price: float = Field(default=0.0, ge=0.0)
    description: Optional[str] = None

    def search_text(self) -> str:
        """Text the local matcher searches in"""
        return f"{self.name} {self.location} {self.description or ''}"


class RemotePlaceCandidate(BaseModel):
    """Place returned by the remote provider, partial until details are fetched"""
    model_config = ConfigDict(frozen=True)

    place_id: str
    name: str
    formatted_address: str = ""
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    price_level: Optional[int] = Field(default=None, ge=0, le=4)  # None = unspecified
    photo_reference: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    website: Optional[str] = None
    gallery: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    is_partial: bool = True


class SessionToken(BaseModel):
    """Correlates one autocomplete call with its detail lookups"""

    value: str = Field(default_factory=lambda: str(uuid.uuid4()))
    generation: int = 0
    created_at: float = Field(default_factory=time.time)
    expired: bool = False

    def expire(self) -> None:
        self.expired = True


class LocalResult(BaseModel):
    """Search result backed by a catalog destination"""
    kind: Literal["local"] = "local"
    destination: Destination

    @property
    def id(self) -> str:
        return self.destination.id

    @property
    def name(self) -> str:
        return self.destination.name


class RemoteResult(BaseModel):
    """Search result backed by a remote candidate and the token that produced it"""
    kind: Literal["remote"] = "remote"
    candidate: RemotePlaceCandidate
    session_token: SessionToken

    @property
    def id(self) -> str:
        return self.candidate.place_id

    @property
    def name(self) -> str:
        return self.candidate.name


SearchResultItem = Annotated[Union[LocalResult, RemoteResult], Field(discriminator="kind")]
