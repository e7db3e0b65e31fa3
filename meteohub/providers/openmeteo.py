from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, field_validator

from .base import (
    KMH_TO_MS,
    LocationNotFound,
    WeatherProvider,
    normalize_direction,
)
from ..entities import ForecastPoint, Observation


# WMO weather interpretation codes
WMO_CODES: Dict[int, Tuple[str, str]] = {
    0: ("Clear", "clear sky"),
    1: ("Clouds", "mainly clear"),
    2: ("Clouds", "partly cloudy"),
    3: ("Clouds", "overcast"),
    45: ("Fog", "fog"),
    48: ("Fog", "depositing rime fog"),
    51: ("Drizzle", "light drizzle"),
    53: ("Drizzle", "moderate drizzle"),
    55: ("Drizzle", "dense drizzle"),
    56: ("Drizzle", "light freezing drizzle"),
    57: ("Drizzle", "dense freezing drizzle"),
    61: ("Rain", "slight rain"),
    63: ("Rain", "moderate rain"),
    65: ("Rain", "heavy rain"),
    66: ("Rain", "light freezing rain"),
    67: ("Rain", "heavy freezing rain"),
    71: ("Snow", "slight snow"),
    73: ("Snow", "moderate snow"),
    75: ("Snow", "heavy snow"),
    77: ("Snow", "snow grains"),
    80: ("Rain", "slight rain showers"),
    81: ("Rain", "moderate rain showers"),
    82: ("Rain", "violent rain showers"),
    85: ("Snow", "slight snow showers"),
    86: ("Snow", "heavy snow showers"),
    95: ("Thunderstorm", "thunderstorm"),
    96: ("Thunderstorm", "thunderstorm with slight hail"),
    99: ("Thunderstorm", "thunderstorm with heavy hail"),
}


def describe_code(code: int) -> Tuple[str, str]:
    return WMO_CODES.get(code, ("Unknown", f"weather code {code}"))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Current(BaseModel):
    time: datetime
    temperature_2m: float
    relative_humidity_2m: float
    apparent_temperature: float
    pressure_msl: float
    wind_speed_10m: float
    wind_direction_10m: float
    weather_code: int
    cloud_cover: Optional[float] = None
    precipitation: Optional[float] = None

    @field_validator("time")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class _Daily(BaseModel):
    time: List[date]
    weather_code: List[Optional[int]] = []
    temperature_2m_max: List[Optional[float]]
    temperature_2m_min: List[Optional[float]]
    precipitation_sum: List[Optional[float]] = []
    wind_speed_10m_max: List[Optional[float]] = []


class _ForecastPayload(BaseModel):
    current: _Current
    daily: Optional[_Daily] = None


class _DailyPayload(BaseModel):
    daily: _Daily


class _GeocodingHit(BaseModel):
    latitude: float
    longitude: float
    name: str
    country_code: Optional[str] = None


class _GeocodingPayload(BaseModel):
    results: List[_GeocodingHit] = []


class OpenMeteoProvider(WeatherProvider):
    """Open-Meteo: ECMWF-backed, free, no API key, worldwide coverage."""

    name = "openmeteo"
    display_name = "Open-Meteo"
    daily_limit = 10000

    base_url = "https://api.open-meteo.com/v1/forecast"
    geocoding_url = "https://geocoding-api.open-meteo.com/v1/search"

    current_fields = (
        "temperature_2m",
        "relative_humidity_2m",
        "apparent_temperature",
        "precipitation",
        "pressure_msl",
        "cloud_cover",
        "wind_speed_10m",
        "wind_direction_10m",
        "weather_code",
    )
    daily_fields = (
        "weather_code",
        "temperature_2m_max",
        "temperature_2m_min",
        "precipitation_sum",
        "wind_speed_10m_max",
    )

    def __init__(self, base_url: Optional[str] = None, geocoding_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url or self.base_url
        self.geocoding_url = geocoding_url or self.geocoding_url
        self._log = logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def fetch_by_coordinates(self, latitude: float, longitude: float, lang: str = "en") -> Observation:
        return self._current(latitude, longitude)

    def fetch_by_name(self, name: str, lang: str = "en") -> Observation:
        hit = self.geocode(name, lang)
        return self._current(hit.latitude, hit.longitude, location_name=hit.name, country=hit.country_code)

    def fetch_forecast(self, latitude: float, longitude: float, lang: str = "en") -> List[ForecastPoint]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "daily": ",".join(self.daily_fields),
            "timezone": "UTC",
            "forecast_days": 7,
        }
        payload = self._decode(_DailyPayload, self._get_json(self.base_url, params=params))
        return self._daily_points(payload.daily)

    def fetch_forecast_by_name(self, name: str, lang: str = "en") -> List[ForecastPoint]:
        hit = self.geocode(name, lang)
        return self.fetch_forecast(hit.latitude, hit.longitude, lang)

    def geocode(self, name: str, lang: str = "en") -> _GeocodingHit:
        params = {"name": name.strip(), "count": 1, "language": lang, "format": "json"}
        payload = self._decode(_GeocodingPayload, self._get_json(self.geocoding_url, params=params))
        if not payload.results:
            raise LocationNotFound(f"city {name!r} not found", provider=self.name)
        return payload.results[0]

    # helpers ------------------------------------------------------------
    def _current(
        self,
        latitude: float,
        longitude: float,
        location_name: Optional[str] = None,
        country: Optional[str] = None,
    ) -> Observation:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": ",".join(self.current_fields),
            "daily": "temperature_2m_max,temperature_2m_min",
            "timezone": "UTC",
            "forecast_days": 1,
        }
        payload = self._decode(_ForecastPayload, self._get_json(self.base_url, params=params))
        current = payload.current
        condition, description = describe_code(current.weather_code)
        temp_min = temp_max = None
        if payload.daily is not None and payload.daily.time:
            temp_min = _first(payload.daily.temperature_2m_min)
            temp_max = _first(payload.daily.temperature_2m_max)
        return Observation(
            latitude=latitude,
            longitude=longitude,
            temperature_c=current.temperature_2m,
            feels_like_c=current.apparent_temperature,
            humidity_pct=current.relative_humidity_2m,
            pressure_hpa=current.pressure_msl,
            wind_speed_ms=round(current.wind_speed_10m * KMH_TO_MS, 2),
            wind_direction_deg=normalize_direction(current.wind_direction_10m, provider=self.name),
            condition=condition,
            description=description,
            observed_at=current.time,
            provider=self.name,
            cloud_cover_pct=current.cloud_cover,
            precipitation_mm=current.precipitation,
            temp_min_c=temp_min,
            temp_max_c=temp_max,
            location_name=location_name,
            country=country,
        )

    def _daily_points(self, daily: _Daily) -> List[ForecastPoint]:
        result: List[ForecastPoint] = []
        for idx, day in enumerate(daily.time[:7]):
            t_max = _index(daily.temperature_2m_max, idx)
            t_min = _index(daily.temperature_2m_min, idx)
            code = _index(daily.weather_code, idx)
            if t_max is None or t_min is None or code is None:
                self._log.debug("Skipping incomplete forecast day %s", day)
                continue
            condition, description = describe_code(int(code))
            wind = _index(daily.wind_speed_10m_max, idx)
            result.append(
                ForecastPoint(
                    timestamp=datetime(day.year, day.month, day.day, tzinfo=timezone.utc),
                    temperature_c=round((t_max + t_min) / 2, 1),
                    condition=condition,
                    description=description,
                    provider=self.name,
                    temp_min_c=t_min,
                    temp_max_c=t_max,
                    wind_speed_ms=round(wind * KMH_TO_MS, 2) if wind is not None else None,
                    precipitation_mm=_index(daily.precipitation_sum, idx),
                )
            )
        return result

    def _probe_url(self) -> str:
        return self.base_url

    def _probe_kwargs(self):
        return {"params": {"latitude": 48.8566, "longitude": 2.3522, "current": "temperature_2m"}}


def _first(values: List[Optional[float]]) -> Optional[float]:
    return _index(values, 0)


def _index(values: List, index: int):
    try:
        return values[index]
    except IndexError:
        return None


__all__ = ["OpenMeteoProvider", "WMO_CODES", "describe_code"]
