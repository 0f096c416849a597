#!/usr/bin/env python3
"""Google Places API (New) client for session-scoped autocomplete and place details"""

import time
import logging
import requests
from typing import Optional, Dict, Any, List
from collections import Counter
from scout.core.config import settings
from scout.core.errors import ConfigurationError, ProviderUnavailable

logger = logging.getLogger(__name__)

BASE_URL = "https://places.googleapis.com/v1"

DETAILS_FIELD_MASK = (
    "id,displayName,formattedAddress,location,rating,priceLevel,"
    "photos.name,websiteUri,editorialSummary"
)

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}


class GooglePlacesError(ProviderUnavailable):
    """Google Places API call failed after retries"""
    pass


def normalize_price_level(price_level: Any) -> Optional[int]:
    """Map the API's price enum (or a legacy int) to 0-4; None means unspecified"""
    if price_level is None or isinstance(price_level, bool):
        return None
    if isinstance(price_level, int):
        return price_level if 0 <= price_level <= 4 else None
    return PRICE_LEVELS.get(str(price_level))


class GooglePlaces:
    """Blocking Google Places client with error mapping, retries and usage stats"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 8,
        retries: int = 1,
        mock_mode: bool = False,
        http: Optional[requests.Session] = None,
    ):
        self.key = api_key if api_key is not None else settings.google_maps_api_key
        self.timeout = timeout
        self.retries = max(1, retries)
        self.stats = Counter()
        self.mock_mode = mock_mode
        self.http = http or requests.Session()

        if not self.key and not mock_mode:
            raise ConfigurationError("Google Maps API key is required")

    def _raise_for_api_error(self, payload: Dict[str, Any]) -> None:
        if "error" not in payload:
            return
        error = payload["error"]
        status = error.get("status", "UNKNOWN")
        self.stats[status] += 1

        if status == "RESOURCE_EXHAUSTED":
            logger.warning("Rate limit exceeded")
            raise GooglePlacesError("Rate limit exceeded")
        elif status == "PERMISSION_DENIED":
            logger.error("Google Places denied the request; check the API key")
            raise GooglePlacesError("API key invalid or request denied")
        elif status == "INVALID_ARGUMENT":
            raise GooglePlacesError("Invalid request parameters")
        else:
            raise GooglePlacesError(f"API error: {status} - {error.get('message', 'Unknown error')}")

    def _request(
        self,
        method: str,
        path: str,
        *,
        field_mask: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Call the API with bounded retries on transport errors"""
        headers = {
            "X-Goog-Api-Key": self.key,
            "X-Goog-FieldMask": field_mask,
        }
        if data is not None:
            headers["Content-Type"] = "application/json"

        attempt = 0
        while True:
            attempt += 1
            try:
                response = self.http.request(
                    method,
                    f"{BASE_URL}/{path}",
                    params=params,
                    json=data,
                    headers=headers,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                payload = response.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                self.stats["TRANSPORT_ERROR"] += 1
                if attempt < self.retries:
                    time.sleep(min(0.5 * attempt, 2.0))
                    continue
                logger.error(f"Request failed: {e}")
                raise GooglePlacesError(f"Request failed: {e}")

            self._raise_for_api_error(payload)
            self.stats["OK"] += 1
            return payload

    def autocomplete(
        self,
        text: str,
        session_token: str,
        language: str = "en",
        region: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return place predictions for the input, billed to the given session"""
        if not text or not text.strip():
            return []

        if self.mock_mode:
            logger.info(f"MOCK: Autocomplete for '{text}'")
            query = text.strip()
            return [
                {
                    "placeId": f"mock_place_{abs(hash(query)) % 10000}",
                    "text": {"text": f"{query}, Kigali, Rwanda"},
                    "structuredFormat": {
                        "mainText": {"text": query},
                        "secondaryText": {"text": "Kigali, Rwanda"},
                    },
                }
            ]

        data = {
            "input": text.strip(),
            "sessionToken": session_token,
            "languageCode": language,
        }
        if region:
            data["regionCodes"] = [region]

        result = self._request(
            "POST",
            "places:autocomplete",
            field_mask="suggestions.placePrediction.placeId,suggestions.placePrediction.text,"
                       "suggestions.placePrediction.structuredFormat",
            data=data,
        )
        predictions = []
        for suggestion in result.get("suggestions", []):
            prediction = suggestion.get("placePrediction")
            if prediction and prediction.get("placeId"):
                predictions.append(prediction)
        return predictions

    def place_details(self, place_id: str, session_token: str, language: str = "en") -> Optional[Dict[str, Any]]:
        """Get rating, price, photos and coordinates for one place, closing the session's lookup"""
        if not place_id or not place_id.strip():
            return None

        if self.mock_mode:
            logger.info(f"MOCK: Getting details for place {place_id}")
            return {
                "id": place_id,
                "displayName": {"text": f"Mock Place {place_id}"},
                "formattedAddress": "Mock Address, Kigali, Rwanda",
                "location": {"latitude": -1.9441, "longitude": 30.0619},
                "priceLevel": "PRICE_LEVEL_MODERATE",
                "rating": 4.2,
                "photos": [{"name": f"places/{place_id}/photos/mock"}],
            }

        return self._request(
            "GET",
            f"places/{place_id.strip()}",
            field_mask=DETAILS_FIELD_MASK,
            params={"sessionToken": session_token, "languageCode": language},
        )

    def get_stats(self) -> Dict[str, int]:
        """Get API usage statistics"""
        return dict(self.stats)
