from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel
from requests import Response

from .base import (
    KMH_TO_MS,
    LocationNotFound,
    WeatherProvider,
    normalize_direction,
)
from .openweathermap import owm_group
from ..entities import ForecastPoint, Observation


# WeatherAPI condition code -> OpenWeatherMap condition id
CONDITION_IDS: Dict[int, int] = {
    1000: 800,
    1003: 801,
    1006: 802,
    1009: 803,
    1030: 741,
    1063: 500,
    1066: 600,
    1069: 611,
    1072: 511,
    1087: 200,
    1114: 601,
    1117: 602,
    1135: 741,
    1147: 741,
    1150: 300,
    1153: 301,
    1168: 302,
    1171: 302,
    1180: 500,
    1183: 501,
    1186: 501,
    1189: 502,
    1192: 502,
    1195: 503,
    1198: 511,
    1201: 511,
    1204: 611,
    1207: 613,
    1210: 600,
    1213: 600,
    1216: 601,
    1219: 601,
    1222: 602,
    1225: 602,
    1237: 615,
    1240: 520,
    1243: 521,
    1246: 522,
    1249: 611,
    1252: 613,
    1255: 620,
    1258: 621,
    1261: 615,
    1264: 615,
    1273: 200,
    1276: 201,
    1279: 230,
    1282: 232,
}

SUPPORTED_LANGUAGES = ("fr", "en", "es", "de", "it")


def condition_group(code: int) -> str:
    condition_id = CONDITION_IDS.get(code)
    if condition_id is None:
        return "Unknown"
    return owm_group(condition_id)


class _Condition(BaseModel):
    text: str
    code: int


class _Location(BaseModel):
    name: str
    lat: float
    lon: float
    country: Optional[str] = None


class _Current(BaseModel):
    last_updated_epoch: int
    temp_c: float
    feelslike_c: float
    humidity: float
    pressure_mb: float
    wind_kph: float
    wind_degree: float
    condition: _Condition
    cloud: Optional[float] = None
    vis_km: Optional[float] = None


class _CurrentPayload(BaseModel):
    location: _Location
    current: _Current


class _Hour(BaseModel):
    time_epoch: int
    temp_c: float
    condition: _Condition
    humidity: Optional[float] = None
    wind_kph: Optional[float] = None
    precip_mm: Optional[float] = None


class _DaySummary(BaseModel):
    maxtemp_c: float
    mintemp_c: float


class _ForecastDay(BaseModel):
    day: _DaySummary
    hour: List[_Hour] = []


class _Forecast(BaseModel):
    forecastday: List[_ForecastDay]


class _ForecastPayload(BaseModel):
    forecast: _Forecast


class WeatherAPIProvider(WeatherProvider):
    """weatherapi.com: real-time data, free key, 1M calls per month."""

    name = "weatherapi"
    display_name = "WeatherAPI"
    daily_limit = 33333

    base_url = "https://api.weatherapi.com/v1"

    def __init__(self, api_key: str, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = (base_url or self.base_url).rstrip("/")
        self._log = logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def fetch_by_coordinates(self, latitude: float, longitude: float, lang: str = "en") -> Observation:
        return self._current(f"{latitude},{longitude}", lang)

    def fetch_by_name(self, name: str, lang: str = "en") -> Observation:
        if not name.strip():
            raise LocationNotFound("empty city name", provider=self.name)
        return self._current(name.strip(), lang)

    def fetch_forecast(self, latitude: float, longitude: float, lang: str = "en") -> List[ForecastPoint]:
        return self._forecast(f"{latitude},{longitude}", lang)

    def fetch_forecast_by_name(self, name: str, lang: str = "en") -> List[ForecastPoint]:
        return self._forecast(name.strip(), lang)

    # helpers ------------------------------------------------------------
    def _current(self, query: str, lang: str) -> Observation:
        params = {"key": self.api_key, "q": query, "aqi": "no", "lang": map_language(lang)}
        payload = self._decode(_CurrentPayload, self._get_json(f"{self.base_url}/current.json", params=params))
        location, current = payload.location, payload.current
        return Observation(
            latitude=location.lat,
            longitude=location.lon,
            temperature_c=current.temp_c,
            feels_like_c=current.feelslike_c,
            humidity_pct=current.humidity,
            pressure_hpa=current.pressure_mb,
            wind_speed_ms=round(current.wind_kph * KMH_TO_MS, 2),
            wind_direction_deg=normalize_direction(current.wind_degree, provider=self.name),
            condition=condition_group(current.condition.code),
            description=current.condition.text.lower(),
            observed_at=datetime.fromtimestamp(current.last_updated_epoch, tz=timezone.utc),
            provider=self.name,
            cloud_cover_pct=current.cloud,
            visibility_m=current.vis_km * 1000 if current.vis_km is not None else None,
            location_name=location.name,
            country=location.country,
        )

    def _forecast(self, query: str, lang: str) -> List[ForecastPoint]:
        params = {
            "key": self.api_key,
            "q": query,
            "days": 3,
            "aqi": "no",
            "alerts": "no",
            "lang": map_language(lang),
        }
        payload = self._decode(_ForecastPayload, self._get_json(f"{self.base_url}/forecast.json", params=params))
        result: List[ForecastPoint] = []
        for day in payload.forecast.forecastday:
            for hour in day.hour:
                result.append(
                    ForecastPoint(
                        timestamp=datetime.fromtimestamp(hour.time_epoch, tz=timezone.utc),
                        temperature_c=hour.temp_c,
                        condition=condition_group(hour.condition.code),
                        description=hour.condition.text.lower(),
                        provider=self.name,
                        temp_min_c=day.day.mintemp_c,
                        temp_max_c=day.day.maxtemp_c,
                        humidity_pct=hour.humidity,
                        wind_speed_ms=round(hour.wind_kph * KMH_TO_MS, 2) if hour.wind_kph is not None else None,
                        precipitation_mm=hour.precip_mm,
                    )
                )
        return result

    def _handle_response(self, response: Response) -> Response:
        # WeatherAPI answers unknown locations with HTTP 400
        if response.status_code == 400:
            raise LocationNotFound("no matching location found", provider=self.name)
        return super()._handle_response(response)

    def _probe_url(self) -> str:
        return f"{self.base_url}/current.json"

    def _probe_kwargs(self):
        return {"params": {"key": self.api_key, "q": "London"}}


def map_language(lang: str) -> str:
    return lang if lang in SUPPORTED_LANGUAGES else "en"


__all__ = ["WeatherAPIProvider", "condition_group", "map_language"]
