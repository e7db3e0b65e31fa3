"""Coarse geography classifiers used to bias provider selection.

These are rectangular boxes and latitude bands, not real borders. They are
only routing hints; edge behaviour is inclusive but should not be relied on.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.min_lat <= latitude <= self.max_lat and self.min_lon <= longitude <= self.max_lon


METROPOLITAN_FRANCE = BoundingBox(min_lat=41.0, max_lat=51.5, min_lon=-5.5, max_lon=10.0)
EUROPE = BoundingBox(min_lat=35.0, max_lat=71.5, min_lon=-25.0, max_lon=45.0)

TROPIC_LATITUDE = 23.44
POLAR_CIRCLE_LATITUDE = 66.56

FRENCH_CITIES = (
    "paris",
    "marseille",
    "lyon",
    "toulouse",
    "nice",
    "nantes",
    "strasbourg",
    "montpellier",
    "bordeaux",
    "lille",
    "rennes",
)

TAG_FRANCE = "france"
TAG_EUROPE = "europe"
TAG_TROPICAL = "tropical"
TAG_POLAR = "polar"


def is_in_france(latitude: float, longitude: float) -> bool:
    return METROPOLITAN_FRANCE.contains(latitude, longitude)


def is_in_europe(latitude: float, longitude: float) -> bool:
    return EUROPE.contains(latitude, longitude)


def is_tropical(latitude: float) -> bool:
    return abs(latitude) <= TROPIC_LATITUDE


def is_polar(latitude: float) -> bool:
    return abs(latitude) >= POLAR_CIRCLE_LATITUDE


def classify(latitude: float, longitude: float) -> List[str]:
    """Return every geography tag matching the coordinates."""
    tags: List[str] = []
    if is_in_france(latitude, longitude):
        tags.append(TAG_FRANCE)
    if is_in_europe(latitude, longitude):
        tags.append(TAG_EUROPE)
    if is_tropical(latitude):
        tags.append(TAG_TROPICAL)
    if is_polar(latitude):
        tags.append(TAG_POLAR)
    return tags


def is_likely_french_city(name: str) -> bool:
    normalized = name.strip().lower()
    if not normalized:
        return False
    return any(city in normalized or normalized in city for city in FRENCH_CITIES)


__all__ = [
    "BoundingBox",
    "EUROPE",
    "FRENCH_CITIES",
    "METROPOLITAN_FRANCE",
    "TAG_EUROPE",
    "TAG_FRANCE",
    "TAG_POLAR",
    "TAG_TROPICAL",
    "classify",
    "is_in_europe",
    "is_in_france",
    "is_likely_french_city",
    "is_polar",
    "is_tropical",
]
