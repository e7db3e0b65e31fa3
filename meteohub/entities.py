from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple


CONDITION_CATEGORIES = (
    "Clear",
    "Clouds",
    "Fog",
    "Drizzle",
    "Rain",
    "Snow",
    "Thunderstorm",
)


@dataclass(frozen=True)
class Observation:
    """Normalized current-weather snapshot produced by one provider.

    Values are stored in SI-like units so providers are interchangeable:
    - temperatures in Celsius
    - humidity and cloud cover in percent
    - pressure in hectopascal (hPa)
    - wind speed in metres per second (m/s), direction in degrees
    - visibility in metres
    - precipitation in millimetres
    """

    latitude: float
    longitude: float
    temperature_c: float
    humidity_pct: float
    pressure_hpa: float
    wind_speed_ms: float
    wind_direction_deg: float
    condition: str
    description: str
    observed_at: datetime
    provider: str
    feels_like_c: Optional[float] = None
    cloud_cover_pct: Optional[float] = None
    visibility_m: Optional[float] = None
    precipitation_mm: Optional[float] = None
    temp_min_c: Optional[float] = None
    temp_max_c: Optional[float] = None
    location_name: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class ForecastPoint:
    timestamp: datetime
    temperature_c: float
    condition: str
    description: str
    provider: str
    temp_min_c: Optional[float] = None
    temp_max_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    wind_speed_ms: Optional[float] = None
    precipitation_mm: Optional[float] = None


@dataclass(frozen=True)
class Alert:
    """Official weather warning for a region."""

    level: int
    level_name: str
    type: str
    description: str
    start: Optional[str]
    end: Optional[str]


@dataclass(frozen=True)
class CheckResult:
    score: float
    issues: Tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.score > 0.5

    @property
    def hard_error(self) -> bool:
        return not self.passed and bool(self.issues)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    score: float
    warnings: Tuple[str, ...]
    errors: Tuple[str, ...]
    checks: Dict[str, CheckResult]
    provider: str


@dataclass(frozen=True)
class MultiSourceComparison:
    is_coherent: bool
    variance_by_field: Dict[str, float]
    discrepancies: Tuple[str, ...]
    recommended_provider: Optional[str]
    confidence: float
    ranking: Tuple[Tuple[str, float], ...] = ()


@dataclass(frozen=True)
class QualityMetadata:
    strategy: str
    confidence: float
    validation: ValidationResult
    provider_used: Optional[str] = None
    providers_used: Tuple[str, ...] = ()
    comparison: Optional[MultiSourceComparison] = None
    agreement: Optional[float] = None
    selection_reason: Optional[str] = None
    geography: Tuple[str, ...] = ()
    retrieved_at: Optional[datetime] = None

    @property
    def providers(self) -> Tuple[str, ...]:
        if self.providers_used:
            return self.providers_used
        if self.provider_used:
            return (self.provider_used,)
        return ()


@dataclass(frozen=True)
class AggregatedResult:
    observation: Observation
    quality: QualityMetadata
    alerts: Tuple[Alert, ...] = field(default_factory=tuple)

    @property
    def has_official_alerts(self) -> bool:
        return bool(self.alerts)

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["has_official_alerts"] = self.has_official_alerts
        return _isoformat_datetimes(payload)


def _isoformat_datetimes(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    if isinstance(value, dict):
        return {key: _isoformat_datetimes(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_isoformat_datetimes(item) for item in value]
    return value


__all__ = [
    "CONDITION_CATEGORIES",
    "AggregatedResult",
    "Alert",
    "CheckResult",
    "ForecastPoint",
    "MultiSourceComparison",
    "Observation",
    "QualityMetadata",
    "ValidationResult",
]
