from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from meteohub.entities import Observation
from meteohub.providers.base import ProviderError, WeatherProvider


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _observation(provider: str = "stub", **overrides) -> Observation:
    values = dict(
        latitude=48.85,
        longitude=2.35,
        temperature_c=20.0,
        feels_like_c=19.5,
        humidity_pct=60.0,
        pressure_hpa=1013.0,
        wind_speed_ms=3.0,
        wind_direction_deg=180.0,
        condition="Clear",
        description="clear sky",
        observed_at=NOW,
        provider=provider,
    )
    values.update(overrides)
    return Observation(**values)


class StubProvider(WeatherProvider):
    """In-memory provider answering with a fixed observation or error."""

    display_name = "Stub"
    daily_limit = 100

    def __init__(
        self,
        name: str,
        temperature: float = 20.0,
        error: Optional[ProviderError] = None,
        healthy: bool = True,
        **fields,
    ) -> None:
        super().__init__()
        self.name = name
        self.temperature = temperature
        self.error = error
        self.healthy = healthy
        self.fields = fields
        self.calls = 0

    def fetch_by_coordinates(self, latitude: float, longitude: float, lang: str = "en") -> Observation:
        return self._respond(latitude=latitude, longitude=longitude)

    def fetch_by_name(self, name: str, lang: str = "en") -> Observation:
        return self._respond(location_name=name)

    def probe_availability(self) -> bool:
        self.is_available = self.healthy
        return self.healthy

    def _respond(self, **location) -> Observation:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return _observation(self.name, temperature_c=self.temperature, **{**location, **self.fields})


class TimeController:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def make_observation():
    return _observation


@pytest.fixture
def make_provider():
    return StubProvider


@pytest.fixture
def time_controller() -> TimeController:
    return TimeController()
