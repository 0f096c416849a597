#!/usr/bin/env python3
"""Pydantic schemas for user actions and the interest weight policy"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from scout.core.config_cache import load_yaml_cached

logger = logging.getLogger(__name__)

# Display order of the home feed sections
DEFAULT_CATEGORIES: Tuple[str, ...] = (
    "Adventure",
    "Beaches",
    "Mountains",
    "City Breaks",
    "Foodie",
    "Cultural",
    "Historical",
    "Nature",
    "Relaxing",
    "Family",
)


class ActionType(str, Enum):
    FAVORITE = "favorite"
    UNFAVORITE = "unfavorite"
    REVIEW = "review"
    BOOKING = "booking"
    VIEW = "view"


class UserActionEvent(BaseModel):
    """One implicit or explicit signal about a destination"""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    action: ActionType
    destination_id: str = Field(..., min_length=1)
    rating: Optional[int] = Field(None, ge=1, le=5)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WeightPolicy(BaseModel):
    """
    How much each action moves the weights of a destination's categories.

    Loaded from config/interest_policy.yaml; any key left out keeps its
    default, and an unreadable or invalid file yields the defaults.
    """
    model_config = ConfigDict(frozen=True)

    categories: Tuple[str, ...] = DEFAULT_CATEGORIES
    favorite: float = 1.0
    unfavorite: float = -1.0
    positive_review: float = 5.0
    negative_review: float = -3.0
    neutral_review: float = 0.0
    booking: float = 0.0
    view: float = 0.0
    positive_min_rating: int = Field(4, ge=1, le=5)
    negative_max_rating: int = Field(2, ge=1, le=5)
    onboarding_interest_weight: float = 10.0

    @field_validator("categories")
    @classmethod
    def _unique_categories(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        cleaned = tuple(dict.fromkeys(c.strip() for c in v if c and c.strip()))
        if not cleaned:
            raise ValueError("at least one category is required")
        return cleaned

    @model_validator(mode="after")
    def _disjoint_review_buckets(self) -> "WeightPolicy":
        if self.negative_max_rating >= self.positive_min_rating:
            raise ValueError(
                f"negative_max_rating ({self.negative_max_rating}) must be below "
                f"positive_min_rating ({self.positive_min_rating})"
            )
        return self

    def delta_for(self, event: UserActionEvent) -> float:
        """Weight delta for one event; 0.0 means nothing to write"""
        if event.action == ActionType.FAVORITE:
            return self.favorite
        if event.action == ActionType.UNFAVORITE:
            return self.unfavorite
        if event.action == ActionType.BOOKING:
            return self.booking
        if event.action == ActionType.VIEW:
            return self.view
        if event.action == ActionType.REVIEW:
            if event.rating is None:
                return 0.0
            if event.rating >= self.positive_min_rating:
                return self.positive_review
            if event.rating <= self.negative_max_rating:
                return self.negative_review
            return self.neutral_review
        return 0.0

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "WeightPolicy":
        """Flatten the YAML layout (categories, weights, review, onboarding)"""
        flat: Dict[str, Any] = {}
        if data.get("categories"):
            flat["categories"] = tuple(data["categories"])
        flat.update(data.get("weights") or {})
        review = data.get("review") or {}
        if "positive_min_rating" in review:
            flat["positive_min_rating"] = review["positive_min_rating"]
        if "negative_max_rating" in review:
            flat["negative_max_rating"] = review["negative_max_rating"]
        onboarding = data.get("onboarding") or {}
        if "interest_weight" in onboarding:
            flat["onboarding_interest_weight"] = onboarding["interest_weight"]
        return cls.model_validate(flat)

    @classmethod
    def load(cls, path: Optional[str] = None, ttl_seconds: Optional[int] = None) -> "WeightPolicy":
        from scout.core.config import settings

        path = path or settings.interest_policy_path
        data = load_yaml_cached(path, default={}, ttl_seconds=ttl_seconds)
        try:
            return cls.from_mapping(data)
        except (ValidationError, TypeError, AttributeError) as e:
            logger.warning(f"Invalid interest policy in {path}, using defaults: {e}")
            return cls()
