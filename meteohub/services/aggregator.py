from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..cache import ResultCache
from ..entities import AggregatedResult, Alert, ForecastPoint, Observation, QualityMetadata, ValidationResult
from ..geography import (
    TAG_EUROPE,
    TAG_FRANCE,
    TAG_POLAR,
    TAG_TROPICAL,
    classify,
    is_in_france,
    is_likely_french_city,
)
from ..oracle import WeatherOracle
from ..policy import ConfidencePolicy
from ..providers.base import AlertsSource, ProviderError, WeatherProvider
from ..usage import UsageTracker


FALLBACK = "fallback"
CONSENSUS = "consensus"
SPECIALIZED = "specialized"
STRATEGIES = (FALLBACK, CONSENSUS, SPECIALIZED)

# Observation fields averaged by the consensus strategy, with their precision
MERGED_FIELDS: Tuple[Tuple[str, int], ...] = (
    ("temperature_c", 1),
    ("feels_like_c", 1),
    ("humidity_pct", 0),
    ("pressure_hpa", 0),
    ("wind_speed_ms", 1),
    ("cloud_cover_pct", 0),
    ("visibility_m", 0),
    ("precipitation_mm", 1),
    ("temp_min_c", 1),
    ("temp_max_c", 1),
)


class AggregationFailure(RuntimeError):
    """Raised when every provider tried for a request has failed."""

    def __init__(self, message: str, errors: Sequence[Tuple[str, ProviderError]] = ()) -> None:
        super().__init__(message)
        self.errors: List[Tuple[str, ProviderError]] = list(errors)

    def __str__(self) -> str:
        message = super().__str__()
        if not self.errors:
            return message
        details = "; ".join(f"{name}: {error}" for name, error in self.errors)
        return f"{message} ({details})"


@dataclass(frozen=True)
class Route:
    preferred: str
    alternate: Optional[str]
    reason: str


DEFAULT_ROUTE = Route("openmeteo", "weatherapi", "worldwide default provider")
ROUTES: Tuple[Tuple[str, Route], ...] = (
    (TAG_FRANCE, Route("meteofrance", "openmeteo", "official national provider for metropolitan France")),
    (TAG_POLAR, Route("openmeteo", "weatherapi", "model coverage at polar latitudes")),
    (TAG_TROPICAL, Route("weatherapi", "openmeteo", "real-time station data in the tropical band")),
    (TAG_EUROPE, Route("openmeteo", "weatherapi", "high-resolution model over Europe")),
)


@dataclass
class AggregatorConfig:
    strategy: str = FALLBACK
    fallback_order: Sequence[str] = ("openmeteo", "weatherapi", "openweathermap")
    regional_provider: str = "meteofrance"
    forecast_order: Sequence[str] = ("openmeteo", "weatherapi")
    cache_size: int = 20
    cache_ttl: float = 10 * 60
    max_workers: int = 4
    health_timeout: float = 10.0
    routes: Sequence[Tuple[str, Route]] = field(default_factory=lambda: ROUTES)
    default_route: Route = DEFAULT_ROUTE


@dataclass(frozen=True)
class _Query:
    lang: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: Optional[str] = None

    @property
    def by_name(self) -> bool:
        return self.name is not None

    def fetch(self, provider: WeatherProvider) -> Observation:
        if self.by_name:
            return provider.fetch_by_name(self.name, self.lang)
        return provider.fetch_by_coordinates(self.latitude, self.longitude, self.lang)

    def forecast(self, provider: WeatherProvider) -> List[ForecastPoint]:
        if self.by_name:
            return provider.fetch_forecast_by_name(self.name, self.lang)
        return provider.fetch_forecast(self.latitude, self.longitude, self.lang)

    def cache_key(self, strategy: str) -> str:
        if self.by_name:
            return f"{strategy}:city:{self.name.strip()}:{self.lang}"
        return f"{strategy}:{self.latitude:.4f}:{self.longitude:.4f}:{self.lang}"

    def describe(self) -> str:
        if self.by_name:
            return f"city {self.name!r}"
        return f"({self.latitude}, {self.longitude})"


class WeatherAggregator:
    """Combine several weather providers into one annotated observation.

    Three strategies are available:

    * ``fallback`` tries providers one at a time in reliability order and
      returns the first success.
    * ``consensus`` queries every provider concurrently, waits for all of
      them, and averages the numeric fields of the successful answers.
    * ``specialized`` routes the request to one provider chosen from coarse
      geography hints, with one statically mapped alternate.

    Results are cached per strategy and location. Provider failures are only
    escalated as :class:`AggregationFailure` once every candidate has failed.
    """

    def __init__(
        self,
        providers: Iterable[WeatherProvider],
        *,
        config: Optional[AggregatorConfig] = None,
        oracle: Optional[WeatherOracle] = None,
        cache: Optional[ResultCache] = None,
        usage: Optional[UsageTracker] = None,
        alerts: Optional[AlertsSource] = None,
        policy: Optional[ConfidencePolicy] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or AggregatorConfig()
        self.providers: Dict[str, WeatherProvider] = {}
        for provider in providers:
            if provider.name in self.providers:
                raise ValueError(f"duplicate provider {provider.name!r}")
            self.providers[provider.name] = provider
        self.oracle = oracle if oracle is not None else WeatherOracle()
        # an injected cache may be empty, and so falsy
        self.cache = cache if cache is not None else ResultCache(
            max_size=self.config.cache_size,
            ttl=self.config.cache_ttl,
            expected_type=AggregatedResult,
        )
        self.usage = usage if usage is not None else UsageTracker(self.providers)
        self.alerts = alerts if alerts is not None else self._default_alerts()
        self.policy = policy if policy is not None else ConfidencePolicy()
        self._clock = clock
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._strategy = FALLBACK
        self.set_strategy(self.config.strategy)

    # Public API ---------------------------------------------------------
    @property
    def strategy(self) -> str:
        return self._strategy

    def set_strategy(self, strategy: str) -> None:
        if strategy not in STRATEGIES:
            raise ValueError(f"unknown strategy {strategy!r}; expected one of {', '.join(STRATEGIES)}")
        self._strategy = strategy

    def get_weather_by_coordinates(self, latitude: float, longitude: float, lang: str = "en") -> AggregatedResult:
        return self._dispatch(_Query(lang=lang, latitude=latitude, longitude=longitude))

    def get_weather_by_name(self, name: str, lang: str = "en") -> AggregatedResult:
        if not name or not name.strip():
            raise ValueError("name must be provided")
        return self._dispatch(_Query(lang=lang, name=name))

    def get_forecast(self, latitude: float, longitude: float, lang: str = "en") -> List[ForecastPoint]:
        return self._forecast(_Query(lang=lang, latitude=latitude, longitude=longitude))

    def get_forecast_by_name(self, name: str, lang: str = "en") -> List[ForecastPoint]:
        if not name or not name.strip():
            raise ValueError("name must be provided")
        return self._forecast(_Query(lang=lang, name=name))

    def get_usage_stats(self) -> Dict[str, object]:
        usage = self.usage.snapshot()
        return {
            "strategy": self.strategy,
            "last_reset": self.usage.last_reset.isoformat(),
            "daily_calls": {name: item.calls for name, item in usage.items()},
            "daily_errors": {name: item.errors for name, item in usage.items()},
            "cache_size": len(self.cache),
            "providers": [
                {
                    "name": name,
                    "display_name": provider.display_name,
                    "available": provider.is_available,
                    **provider.quota().as_dict(),
                }
                for name, provider in self.providers.items()
            ],
            "validation": self.oracle.get_stats(),
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    def check_health(self) -> Dict[str, bool]:
        """Probe every provider concurrently; a slow or failing probe only affects itself."""
        if not self.providers:
            return {}
        health = {name: False for name in self.providers}
        executor = ThreadPoolExecutor(max_workers=len(self.providers), thread_name_prefix="health")
        try:
            futures = {executor.submit(provider.probe_availability): name for name, provider in self.providers.items()}
            done, pending = wait(futures, timeout=self.config.health_timeout)
            for future in done:
                name = futures[future]
                try:
                    health[name] = bool(future.result())
                except Exception as exc:  # noqa: BLE001 - a broken probe means unavailable
                    self._log.warning("Health probe for %s raised: %s", name, exc)
            for future in pending:
                self._log.warning("Health probe for %s timed out", futures[future])
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return health

    # Strategies ---------------------------------------------------------
    def _dispatch(self, query: _Query) -> AggregatedResult:
        strategy = self.strategy
        cache_key = query.cache_key(strategy)
        cached = self.cache.get(cache_key)
        if cached is not None:
            self._log.debug("Cache hit for %s", cache_key)
            return cached

        if strategy == CONSENSUS:
            result = self._consensus(query)
        elif strategy == SPECIALIZED:
            result = self._specialized(query)
        else:
            result = self._fallback(query)
        self.cache.set(cache_key, result)
        return result

    def _fallback(self, query: _Query) -> AggregatedResult:
        errors: List[Tuple[str, ProviderError]] = []
        for name in self._fallback_order(query):
            self._log.info("Trying %s for %s", name, query.describe())
            try:
                observation = self._call(name, query)
            except ProviderError as exc:
                errors.append((name, exc))
                continue
            validation = self.oracle.validate(observation, name)
            return self._single_result(FALLBACK, name, query, observation, validation)
        raise AggregationFailure(f"All weather providers failed for {query.describe()}", errors)

    def _consensus(self, query: _Query) -> AggregatedResult:
        names = self._fallback_order(query)
        outcomes = self._fan_out(names, query)
        successes = [(name, observation) for name, observation in outcomes if observation is not None]
        if not successes:
            self._log.warning("No provider answered the consensus for %s, using fallback", query.describe())
            return self._fallback(query)

        comparison = self.oracle.compare(successes)
        merged = self._merge(successes, comparison.recommended_provider)
        validation = self.oracle.validate(merged, CONSENSUS)
        used = tuple(name for name, _ in successes)
        temperatures = [observation.temperature_c for _, observation in successes]
        quality = QualityMetadata(
            strategy=CONSENSUS,
            confidence=round(self.policy.consensus_confidence(used, temperatures), 4),
            validation=validation,
            providers_used=used,
            comparison=comparison,
            agreement=self.policy.agreement(temperatures),
            geography=tuple(classify(merged.latitude, merged.longitude)),
            retrieved_at=self._clock(),
        )
        if not comparison.is_coherent:
            self._log.warning("Providers disagree for %s: %s", query.describe(), "; ".join(comparison.discrepancies))
        return AggregatedResult(observation=merged, quality=quality, alerts=self._alerts_for(query, merged))

    def _specialized(self, query: _Query) -> AggregatedResult:
        tags, route = self._route(query)
        candidates = [name for name in (route.preferred, route.alternate) if name and name in self.providers]
        if not candidates:
            self._log.warning("No routed provider configured for %s, using fallback order", query.describe())
            candidates = self._fallback_order(query)[:2]

        errors: List[Tuple[str, ProviderError]] = []
        for name in candidates:
            try:
                observation = self._call(name, query)
            except ProviderError as exc:
                errors.append((name, exc))
                continue
            if name == route.preferred:
                reason = route.reason
            else:
                reason = f"{route.preferred} unavailable, used alternate {name}"
            validation = self.oracle.validate(observation, name)
            return self._single_result(
                SPECIALIZED, name, query, observation, validation, reason=reason, geography=tuple(tags)
            )
        raise AggregationFailure(f"Specialized providers failed for {query.describe()}", errors)

    def _forecast(self, query: _Query) -> List[ForecastPoint]:
        errors: List[Tuple[str, ProviderError]] = []
        for name in self.config.forecast_order:
            provider = self.providers.get(name)
            if provider is None or not provider.supports_forecast:
                continue
            self.usage.record_call(name)
            try:
                return query.forecast(provider)
            except ProviderError as exc:
                self._log.warning("Forecast from %s failed: %s", name, exc)
                self.usage.record_error(name)
                errors.append((name, exc))
        raise AggregationFailure(f"All forecast providers failed for {query.describe()}", errors)

    # Helpers ------------------------------------------------------------
    def _call(self, name: str, query: _Query) -> Observation:
        provider = self.providers[name]
        self.usage.record_call(name)
        try:
            return query.fetch(provider)
        except ProviderError as exc:
            self._log.warning("Provider %s failed: %s", name, exc)
            self.usage.record_error(name)
            raise
        except Exception as exc:  # noqa: BLE001 - provider failures should be logged
            self._log.exception("Provider %s raised an unexpected error", name)
            self.usage.record_error(name)
            raise ProviderError(f"unexpected error: {exc}", provider=name) from exc

    def _fan_out(self, names: Sequence[str], query: _Query) -> List[Tuple[str, Optional[Observation]]]:
        if not names:
            return []
        workers = max(1, min(len(names), self.config.max_workers))
        outcomes: List[Tuple[str, Optional[Observation]]] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="consensus") as executor:
            futures = [(name, executor.submit(self._call, name, query)) for name in names]
            for name, future in futures:
                try:
                    outcomes.append((name, future.result()))
                except ProviderError:
                    outcomes.append((name, None))
        return outcomes

    def _merge(self, successes: Sequence[Tuple[str, Observation]], recommended: Optional[str]) -> Observation:
        if len(successes) == 1:
            return successes[0][1]
        observations = dict(successes)
        base = observations.get(recommended) or successes[0][1]
        merged = {}
        for attribute, digits in MERGED_FIELDS:
            values = [getattr(obs, attribute) for obs in observations.values() if getattr(obs, attribute) is not None]
            merged[attribute] = round(sum(values) / len(values), digits) if values else None
        return replace(
            base,
            observed_at=max(obs.observed_at for obs in observations.values()),
            provider=CONSENSUS,
            **merged,
        )

    def _single_result(
        self,
        strategy: str,
        name: str,
        query: _Query,
        observation: Observation,
        validation: ValidationResult,
        reason: Optional[str] = None,
        geography: Optional[Tuple[str, ...]] = None,
    ) -> AggregatedResult:
        confidence = self.policy.confidence_for(name)
        if not validation.is_valid:
            confidence = min(confidence, validation.score)
        quality = QualityMetadata(
            strategy=strategy,
            confidence=confidence,
            validation=validation,
            provider_used=name,
            selection_reason=reason,
            geography=geography if geography is not None else tuple(classify(observation.latitude, observation.longitude)),
            retrieved_at=self._clock(),
        )
        return AggregatedResult(observation=observation, quality=quality, alerts=self._alerts_for(query, observation))

    def _fallback_order(self, query: _Query) -> List[str]:
        order = [name for name in self.config.fallback_order if name in self.providers]
        regional = self.config.regional_provider
        if query.by_name and regional in self.providers and is_likely_french_city(query.name):
            order = [regional] + [name for name in order if name != regional]
        return order

    def _route(self, query: _Query) -> Tuple[List[str], Route]:
        if query.by_name:
            tags = [TAG_FRANCE] if is_likely_french_city(query.name) else []
        else:
            tags = classify(query.latitude, query.longitude)
        for tag, route in self.config.routes:
            if tag in tags:
                return tags, route
        return tags, self.config.default_route

    def _alerts_for(self, query: _Query, observation: Observation) -> Tuple[Alert, ...]:
        if self.alerts is None:
            return ()
        if query.by_name:
            in_region = is_likely_french_city(query.name) or is_in_france(observation.latitude, observation.longitude)
        else:
            in_region = is_in_france(query.latitude, query.longitude)
        if not in_region:
            return ()
        source = getattr(self.alerts, "name", "alerts")
        self.usage.record_call(source)
        try:
            return tuple(self.alerts.get_alerts())
        except Exception as exc:  # noqa: BLE001 - alerts are best effort
            self._log.warning("Failed to get alerts: %s", exc)
            self.usage.record_error(source)
            return ()

    def _default_alerts(self) -> Optional[AlertsSource]:
        regional = self.providers.get(self.config.regional_provider)
        if isinstance(regional, AlertsSource):
            return regional
        return None


__all__ = [
    "AggregationFailure",
    "AggregatorConfig",
    "Route",
    "STRATEGIES",
    "WeatherAggregator",
]
