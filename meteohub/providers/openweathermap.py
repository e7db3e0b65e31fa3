from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import LocationNotFound, WeatherProvider, normalize_direction
from ..entities import Observation


def owm_group(condition_id: int) -> str:
    """Map an OpenWeatherMap condition id onto our condition categories."""
    if 200 <= condition_id < 300:
        return "Thunderstorm"
    if 300 <= condition_id < 400:
        return "Drizzle"
    if 500 <= condition_id < 600:
        return "Rain"
    if 600 <= condition_id < 700:
        return "Snow"
    if 700 <= condition_id < 800:
        return "Fog"
    if condition_id == 800:
        return "Clear"
    if 800 < condition_id < 900:
        return "Clouds"
    return "Unknown"


class _Condition(BaseModel):
    id: int
    main: str
    description: str


class _Main(BaseModel):
    temp: float
    feels_like: float
    humidity: float
    pressure: float
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None


class _Wind(BaseModel):
    speed: float
    deg: float


class _Clouds(BaseModel):
    all: float


class _Coord(BaseModel):
    lat: float
    lon: float


class _Sys(BaseModel):
    country: Optional[str] = None


class _CurrentPayload(BaseModel):
    coord: _Coord
    weather: List[_Condition] = Field(min_length=1)
    main: _Main
    wind: _Wind
    dt: int
    name: Optional[str] = None
    visibility: Optional[float] = None
    clouds: Optional[_Clouds] = None
    sys: Optional[_Sys] = None


class OpenWeatherMapProvider(WeatherProvider):
    """OpenWeatherMap current weather endpoint, kept as the legacy backup."""

    name = "openweathermap"
    display_name = "OpenWeatherMap"
    daily_limit = 1000

    base_url = "https://api.openweathermap.org/data/2.5/weather"

    def __init__(self, api_key: str, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url or self.base_url
        self._log = logging.getLogger(self.__class__.__name__)

    def fetch_by_coordinates(self, latitude: float, longitude: float, lang: str = "en") -> Observation:
        return self._fetch({"lat": latitude, "lon": longitude, "lang": lang})

    def fetch_by_name(self, name: str, lang: str = "en") -> Observation:
        if not name.strip():
            raise LocationNotFound("empty city name", provider=self.name)
        return self._fetch({"q": name.strip(), "lang": lang})

    def _fetch(self, params: dict) -> Observation:
        params = {**params, "appid": self.api_key, "units": "metric"}
        payload = self._decode(_CurrentPayload, self._get_json(self.base_url, params=params))
        condition = payload.weather[0]
        return Observation(
            latitude=payload.coord.lat,
            longitude=payload.coord.lon,
            temperature_c=payload.main.temp,
            feels_like_c=payload.main.feels_like,
            humidity_pct=payload.main.humidity,
            pressure_hpa=payload.main.pressure,
            wind_speed_ms=payload.wind.speed,
            wind_direction_deg=normalize_direction(payload.wind.deg, provider=self.name),
            condition=owm_group(condition.id),
            description=condition.description,
            observed_at=datetime.fromtimestamp(payload.dt, tz=timezone.utc),
            provider=self.name,
            cloud_cover_pct=payload.clouds.all if payload.clouds else None,
            visibility_m=payload.visibility,
            temp_min_c=payload.main.temp_min,
            temp_max_c=payload.main.temp_max,
            location_name=payload.name or None,
            country=payload.sys.country if payload.sys else None,
        )

    def _probe_url(self) -> str:
        return self.base_url

    def _probe_kwargs(self):
        return {"params": {"q": "London", "appid": self.api_key}}


__all__ = ["OpenWeatherMapProvider", "owm_group"]
