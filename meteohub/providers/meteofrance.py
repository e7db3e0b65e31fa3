"""Météo-France observations and official vigilance alerts.

Coverage is limited to metropolitan France. The provider doubles as the
alerts collaborator used to enrich results for locations inside France.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .base import (
    KMH_TO_MS,
    AlertsSource,
    LocationNotFound,
    WeatherProvider,
    normalize_direction,
)
from ..entities import CONDITION_CATEGORIES, Alert, Observation
from ..geography import is_in_france


FRENCH_CITIES: Dict[str, Tuple[float, float, str]] = {
    "paris": (48.8566, 2.3522, "Paris"),
    "marseille": (43.2965, 5.3698, "Marseille"),
    "lyon": (45.7640, 4.8357, "Lyon"),
    "toulouse": (43.6047, 1.4442, "Toulouse"),
    "nice": (43.7102, 7.2620, "Nice"),
    "nantes": (47.2184, -1.5536, "Nantes"),
    "strasbourg": (48.5734, 7.7521, "Strasbourg"),
    "montpellier": (43.6110, 3.8767, "Montpellier"),
    "bordeaux": (44.8378, -0.5792, "Bordeaux"),
    "lille": (50.6292, 3.0573, "Lille"),
    "rennes": (48.1173, -1.6778, "Rennes"),
    "reims": (49.2583, 4.0317, "Reims"),
    "saint-etienne": (45.4397, 4.3872, "Saint-Étienne"),
    "toulon": (43.1242, 5.9280, "Toulon"),
    "grenoble": (45.1885, 5.7245, "Grenoble"),
    "dijon": (47.3220, 5.0415, "Dijon"),
    "angers": (47.4784, -0.5632, "Angers"),
    "villeurbanne": (45.7665, 4.8795, "Villeurbanne"),
    "le mans": (48.0061, 0.1996, "Le Mans"),
    "aix-en-provence": (43.5297, 5.4474, "Aix-en-Provence"),
    "clermont-ferrand": (45.7797, 3.0863, "Clermont-Ferrand"),
    "brest": (48.3904, -4.4861, "Brest"),
    "tours": (47.3941, 0.6848, "Tours"),
    "limoges": (45.8336, 1.2611, "Limoges"),
    "amiens": (49.8941, 2.2958, "Amiens"),
    "perpignan": (42.6886, 2.8946, "Perpignan"),
    "metz": (49.1193, 6.1757, "Metz"),
    "besancon": (47.2380, 6.0243, "Besançon"),
    "orleans": (47.9029, 1.9093, "Orléans"),
    "rouen": (49.4431, 1.0993, "Rouen"),
    "mulhouse": (47.7508, 7.3359, "Mulhouse"),
    "caen": (49.1829, -0.3707, "Caen"),
    "nancy": (48.6921, 6.1844, "Nancy"),
}

ALERT_LEVEL_NAMES = {1: "green", 2: "yellow", 3: "orange", 4: "red"}
MIN_ALERT_LEVEL = 2


class _Station(BaseModel):
    date: datetime
    temperature: float
    humidity: float
    pressure: float
    wind_speed: float
    wind_direction: float
    description: str
    weather_main: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class _ObservationPayload(BaseModel):
    observations: List[_Station] = Field(min_length=1)


class _Vigilance(BaseModel):
    niveau: int
    type: str
    message: str = ""
    debut: Optional[str] = None
    fin: Optional[str] = None


class _VigilancePayload(BaseModel):
    vigilances: List[_Vigilance] = []


class MeteoFranceProvider(WeatherProvider, AlertsSource):
    """Official French observations; 500 calls per day with a free key."""

    name = "meteofrance"
    display_name = "Météo-France"
    daily_limit = 500

    base_url = "https://public-api.meteofrance.fr/public"

    def __init__(self, api_key: str, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = (base_url or self.base_url).rstrip("/")
        self._log = logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def fetch_by_coordinates(self, latitude: float, longitude: float, lang: str = "fr") -> Observation:
        if not is_in_france(latitude, longitude):
            raise LocationNotFound("location not in France", provider=self.name)
        params = {"lat": latitude, "lon": longitude, "format": "json"}
        data = self._get_json(
            f"{self.base_url}/DPObs/v1/observations/spatio-temporelles/horaires",
            params=params,
            headers=self._headers(),
        )
        payload = self._decode(_ObservationPayload, data)
        return self._build_observation(payload.observations[0], latitude, longitude)

    def fetch_by_name(self, name: str, lang: str = "fr") -> Observation:
        latitude, longitude, display = self.search_city(name)
        observation = self.fetch_by_coordinates(latitude, longitude, lang)
        return replace(observation, location_name=display)

    def search_city(self, name: str) -> Tuple[float, float, str]:
        city = FRENCH_CITIES.get(name.strip().lower())
        if city is None:
            raise LocationNotFound(f"French city {name!r} not found", provider=self.name)
        return city

    def get_alerts(self) -> List[Alert]:
        data = self._get_json(
            f"{self.base_url}/DPVigilance/v1/vigilance/metropole",
            params={"format": "json"},
            headers=self._headers(),
        )
        payload = self._decode(_VigilancePayload, data)
        return [
            Alert(
                level=item.niveau,
                level_name=ALERT_LEVEL_NAMES.get(item.niveau, "unknown"),
                type=item.type,
                description=item.message,
                start=item.debut,
                end=item.fin,
            )
            for item in payload.vigilances
            if item.niveau >= MIN_ALERT_LEVEL
        ]

    # helpers ------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        return {"apikey": self.api_key}

    def _build_observation(self, station: _Station, latitude: float, longitude: float) -> Observation:
        condition = station.weather_main if station.weather_main in CONDITION_CATEGORIES else "Unknown"
        return Observation(
            latitude=latitude,
            longitude=longitude,
            temperature_c=station.temperature,
            humidity_pct=station.humidity,
            pressure_hpa=station.pressure,
            wind_speed_ms=round(station.wind_speed * KMH_TO_MS, 2),
            wind_direction_deg=normalize_direction(station.wind_direction, provider=self.name),
            condition=condition,
            description=station.description,
            observed_at=station.date,
            provider=self.name,
            country="FR",
        )

    def _probe_url(self) -> str:
        return f"{self.base_url}/DPObs/v1/observatoires"

    def _probe_kwargs(self):
        return {"params": {"format": "json"}, "headers": self._headers()}


__all__ = ["MeteoFranceProvider", "FRENCH_CITIES"]
