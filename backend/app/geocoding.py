from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from .logging_utils import log_event, log_warning


class GeocoderError(RuntimeError):
    pass


@dataclass(frozen=True)
class Coordinates:
    lat: Optional[float]
    lng: Optional[float]

    @classmethod
    def empty(cls) -> "Coordinates":
        return cls(lat=None, lng=None)


class Geocoder(Protocol):
    def search(self, query: str) -> list[dict[str, Any]]:
        ...


class NominatimGeocoder:
    def __init__(self, url: str, user_agent: str, *, timeout: float = 10.0):
        self.url = url
        self.user_agent = user_agent
        self.timeout = timeout

    def search(self, query: str) -> list[dict[str, Any]]:
        try:
            resp = requests.get(
                self.url,
                params={"q": query, "format": "json", "limit": "1", "addressdetails": "1"},
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GeocoderError(f"geocoder request failed: {exc}") from exc
        if not resp.ok:
            raise GeocoderError(f"geocoder returned {resp.status_code}")
        try:
            results = resp.json()
        except ValueError as exc:
            raise GeocoderError("geocoder returned invalid JSON") from exc
        return results if isinstance(results, list) else []


_DIGITS_ONLY = re.compile(r"^\d+$")
_LETTERS_ONLY = re.compile(r"^[a-zA-Z]+$")
_SPECIAL_ONLY = re.compile(r"^[^a-zA-Z0-9\s]+$")


def is_valid_location_input(location: str) -> bool:
    normalized = location.strip()
    if len(normalized) < 2:
        return False
    if _DIGITS_ONLY.match(normalized):
        return False
    if _LETTERS_ONLY.match(normalized) and len(normalized) < 3:
        return False
    if _SPECIAL_ONLY.match(normalized):
        return False
    return True


def _to_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def is_valid_geocode_result(result: dict[str, Any], original_input: str) -> bool:
    lat = _to_float(result.get("lat"))
    lng = _to_float(result.get("lon"))
    if lat is None or lng is None:
        return False
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        return False

    importance = result.get("importance")
    if importance is not None and _to_float(importance) is not None and float(importance) < 0.1:
        return False

    display_name = result.get("display_name")
    if display_name and len(original_input) > 5:
        display_lower = str(display_name).lower()
        words = [word for word in original_input.lower().split() if len(word) > 2]
        if words and not any(word in display_lower for word in words):
            return False
    return True


def geocode_location(geocoder: Geocoder, location: str) -> Coordinates:
    normalized = location.strip()
    if not normalized or normalized.lower() == "online":
        return Coordinates.empty()
    if not is_valid_location_input(normalized):
        log_event("geocode_input_rejected", location=normalized)
        return Coordinates.empty()

    results = geocoder.search(normalized)
    if not results:
        return Coordinates.empty()

    first = results[0]
    if not is_valid_geocode_result(first, normalized):
        log_warning("geocode_result_rejected", location=normalized, display_name=first.get("display_name"))
        return Coordinates.empty()
    return Coordinates(lat=_to_float(first.get("lat")), lng=_to_float(first.get("lon")))
