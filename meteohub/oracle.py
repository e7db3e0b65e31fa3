"""Plausibility oracle for normalized weather observations.

The oracle runs a set of independent checks over a single observation and
folds their scores into one quality score. It can also compare observations
coming from several providers and recommend the most trustworthy one.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .entities import (
    CONDITION_CATEGORIES,
    CheckResult,
    MultiSourceComparison,
    Observation,
    ValidationResult,
)


logger = logging.getLogger(__name__)

VALIDITY_THRESHOLD = 0.7
CRITICAL_CHECK_SCORE = 0.5
CRITICAL_SCORE_CAP = 0.6


@dataclass(frozen=True)
class OracleThresholds:
    temperature: Tuple[float, float] = (-100.0, 60.0)
    humidity: Tuple[float, float] = (0.0, 100.0)
    pressure: Tuple[float, float] = (800.0, 1200.0)
    wind_speed: Tuple[float, float] = (0.0, 150.0)
    visibility: Tuple[float, float] = (0.0, 50000.0)
    temperature_variation: float = 30.0
    feels_like_deviation: float = 20.0
    multi_source_variance: float = 10.0
    max_age_seconds: float = 2 * 60 * 60
    snow_max_temperature: float = 5.0
    rain_min_humidity: float = 30.0


class _Check:
    """Accumulates deductions for one check."""

    def __init__(self) -> None:
        self.score = 1.0
        self.issues: List[str] = []

    def deduct(self, amount: float, issue: str) -> None:
        self.score -= amount
        self.issues.append(issue)

    def result(self) -> CheckResult:
        return CheckResult(score=round(min(1.0, max(0.0, self.score)), 6), issues=tuple(self.issues))


class WeatherOracle:
    """Validates observations and compares multiple sources."""

    def __init__(
        self,
        thresholds: Optional[OracleThresholds] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.thresholds = thresholds or OracleThresholds()
        self._clock = clock
        self._stats_lock = Lock()
        self._stats: Dict[str, int] = {}
        self._stats_day: date = clock().date()
        self._reset_stats()

    # Public API ---------------------------------------------------------
    def validate(self, observation: Observation, provider: Optional[str] = None) -> ValidationResult:
        checks: Dict[str, CheckResult] = {
            "structure": self._check_structure(observation),
            "temperature": self._check_temperature(observation),
            "humidity": self._check_humidity(observation),
            "pressure": self._check_pressure(observation),
            "wind": self._check_wind(observation),
            "visibility": self._check_visibility(observation),
            "coherence": self._check_coherence(observation),
            "temporal": self._check_temporal(observation),
        }

        warnings: List[str] = []
        errors: List[str] = []
        critical = False
        for check in checks.values():
            if check.score <= CRITICAL_CHECK_SCORE:
                critical = True
            if check.passed:
                warnings.extend(check.issues)
            else:
                errors.extend(check.issues)

        score = sum(check.score for check in checks.values()) / len(checks)
        if critical:
            score = min(score, CRITICAL_SCORE_CAP)
        score = round(score, 6)
        is_valid = score >= VALIDITY_THRESHOLD and not errors

        result = ValidationResult(
            is_valid=is_valid,
            score=score,
            warnings=tuple(warnings),
            errors=tuple(errors),
            checks=checks,
            provider=provider or observation.provider,
        )
        self._record(result)
        if errors:
            logger.warning("Observation from %s failed validation: %s", result.provider, "; ".join(errors))
        return result

    def compare(self, sources: Sequence[Tuple[str, Observation]]) -> MultiSourceComparison:
        usable = [(name, observation) for name, observation in sources if observation is not None]
        if len(usable) < 2:
            return MultiSourceComparison(
                is_coherent=True,
                variance_by_field={},
                discrepancies=(),
                recommended_provider=usable[0][0] if usable else None,
                confidence=1.0,
            )

        variance: Dict[str, float] = {}
        discrepancies: List[str] = []
        coherent = True
        confidence = 1.0

        temperatures = [obs.temperature_c for _, obs in usable if _is_number(obs.temperature_c)]
        if len(temperatures) >= 2:
            spread = max(temperatures) - min(temperatures)
            variance["temperature"] = spread
            if spread > self.thresholds.multi_source_variance:
                coherent = False
                discrepancies.append(f"Temperature variance: {spread:.1f}°C")
                confidence -= 0.3

        for field_name, attribute in (
            ("humidity", "humidity_pct"),
            ("pressure", "pressure_hpa"),
            ("wind_speed", "wind_speed_ms"),
        ):
            values = [getattr(obs, attribute) for _, obs in usable if _is_number(getattr(obs, attribute))]
            if len(values) >= 2:
                variance[field_name] = max(values) - min(values)

        conditions = list(dict.fromkeys(obs.condition for _, obs in usable if obs.condition))
        if len(conditions) > 1:
            discrepancies.append(f"Different weather conditions: {', '.join(conditions)}")
            confidence -= 0.2

        scored = [(name, self.validate(obs, name).score) for name, obs in usable]
        ranking = tuple(sorted(scored, key=lambda item: item[1], reverse=True))

        return MultiSourceComparison(
            is_coherent=coherent,
            variance_by_field=variance,
            discrepancies=tuple(discrepancies),
            recommended_provider=ranking[0][0],
            confidence=round(max(0.0, confidence), 6),
            ranking=ranking,
        )

    def get_stats(self) -> Dict[str, object]:
        with self._stats_lock:
            self._reset_stats_if_needed()
            stats: Dict[str, object] = dict(self._stats)
        total = stats["total"]
        stats["success_rate"] = round(stats["passed"] / total * 100, 1) if total else 0.0
        stats["thresholds"] = asdict(self.thresholds)
        return stats

    # Checks -------------------------------------------------------------
    def _check_structure(self, obs: Observation) -> CheckResult:
        check = _Check()
        if obs.condition not in CONDITION_CATEGORIES:
            check.deduct(0.2, f"Unknown weather condition: {obs.condition!r}")
        if not obs.description or not obs.description.strip():
            check.deduct(0.1, "Missing weather description")
        for attribute in (
            "temperature_c",
            "humidity_pct",
            "pressure_hpa",
            "wind_speed_ms",
            "wind_direction_deg",
        ):
            if not _is_number(getattr(obs, attribute)):
                check.deduct(0.3, f"Missing or non-finite {attribute}")
        if not (-90.0 <= obs.latitude <= 90.0 and -180.0 <= obs.longitude <= 180.0):
            check.deduct(0.3, f"Invalid coordinates ({obs.latitude}, {obs.longitude})")
        return check.result()

    def _check_temperature(self, obs: Observation) -> CheckResult:
        check = _Check()
        low, high = self.thresholds.temperature
        temps = {
            "current": obs.temperature_c,
            "feels_like": obs.feels_like_c,
            "min": obs.temp_min_c,
            "max": obs.temp_max_c,
        }
        for key, value in temps.items():
            if _is_number(value) and not low <= value <= high:
                check.deduct(0.6, f"{key} temperature {value}°C outside physical range")

        t_min, t_max = obs.temp_min_c, obs.temp_max_c
        if _is_number(t_min) and _is_number(t_max):
            if t_min > t_max:
                check.deduct(0.7, f"min temp ({t_min}) > max temp ({t_max})")
            if t_max - t_min > self.thresholds.temperature_variation:
                check.deduct(0.1, f"Excessive temperature variation: {t_max - t_min}°C")

        if _is_number(obs.temperature_c) and _is_number(obs.feels_like_c):
            diff = abs(obs.temperature_c - obs.feels_like_c)
            if diff > self.thresholds.feels_like_deviation:
                check.deduct(0.1, f"Excessive feels_like difference: {diff}°C")
        return check.result()

    def _check_humidity(self, obs: Observation) -> CheckResult:
        check = _Check()
        low, high = self.thresholds.humidity
        if _is_number(obs.humidity_pct) and not low <= obs.humidity_pct <= high:
            check.deduct(0.5, f"Humidity {obs.humidity_pct}% outside valid range")
        return check.result()

    def _check_pressure(self, obs: Observation) -> CheckResult:
        check = _Check()
        low, high = self.thresholds.pressure
        if _is_number(obs.pressure_hpa) and not low <= obs.pressure_hpa <= high:
            check.deduct(0.6, f"Pressure {obs.pressure_hpa} hPa outside realistic range")
        return check.result()

    def _check_wind(self, obs: Observation) -> CheckResult:
        check = _Check()
        low, high = self.thresholds.wind_speed
        if _is_number(obs.wind_speed_ms) and not low <= obs.wind_speed_ms <= high:
            check.deduct(0.6, f"Wind speed {obs.wind_speed_ms} m/s outside realistic range")
        if _is_number(obs.wind_direction_deg) and not 0.0 <= obs.wind_direction_deg < 360.0:
            check.deduct(0.6, f"Wind direction {obs.wind_direction_deg}° outside valid range")
        return check.result()

    def _check_visibility(self, obs: Observation) -> CheckResult:
        check = _Check()
        low, high = self.thresholds.visibility
        if _is_number(obs.visibility_m) and not low <= obs.visibility_m <= high:
            check.deduct(0.2, f"Visibility {obs.visibility_m}m outside realistic range")
        return check.result()

    def _check_coherence(self, obs: Observation) -> CheckResult:
        check = _Check()
        if obs.condition == "Snow" and _is_number(obs.temperature_c):
            if obs.temperature_c > self.thresholds.snow_max_temperature:
                check.deduct(0.2, f"Snow reported at {obs.temperature_c}°C (too warm)")
        if obs.condition == "Rain" and _is_number(obs.humidity_pct):
            if obs.humidity_pct < self.thresholds.rain_min_humidity:
                check.deduct(0.1, f"Rain reported with low humidity ({obs.humidity_pct}%)")
        return check.result()

    def _check_temporal(self, obs: Observation) -> CheckResult:
        check = _Check()
        observed_at = obs.observed_at
        if observed_at.tzinfo is None:
            observed_at = observed_at.replace(tzinfo=timezone.utc)
        age = (self._clock() - observed_at).total_seconds()
        if age > self.thresholds.max_age_seconds:
            check.deduct(0.1, f"Data is {round(age / 3600)}h old")
        return check.result()

    # Statistics ---------------------------------------------------------
    def _record(self, result: ValidationResult) -> None:
        with self._stats_lock:
            self._reset_stats_if_needed()
            self._stats["total"] += 1
            if not result.is_valid:
                self._stats["failed"] += 1
            elif result.score < 0.9:
                self._stats["warnings"] += 1
            else:
                self._stats["passed"] += 1

    def _reset_stats_if_needed(self) -> None:
        today = self._clock().date()
        if today != self._stats_day:
            self._reset_stats()
            self._stats_day = today

    def _reset_stats(self) -> None:
        self._stats = {"total": 0, "passed": 0, "failed": 0, "warnings": 0}


def _is_number(value: Optional[float]) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


__all__ = ["OracleThresholds", "WeatherOracle", "VALIDITY_THRESHOLD"]
