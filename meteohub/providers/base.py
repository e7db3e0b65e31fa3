from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError
from requests import Response

from ..entities import Alert, ForecastPoint, Observation


logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

KMH_TO_MS = 1 / 3.6


class ProviderError(RuntimeError):
    """Base provider error."""

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        message = super().__str__()
        if self.provider:
            return f"{self.provider}: {message}"
        return message


class NetworkError(ProviderError):
    """Raised on timeouts and connection failures."""


class AuthError(ProviderError):
    """Raised when the provider rejects our credentials."""


class QuotaExceeded(ProviderError):
    """Raised when a provider reports a quota/usage limit issue."""


class LocationNotFound(ProviderError):
    """Raised when the provider does not know or does not cover a location."""


class MalformedPayload(ProviderError):
    """Raised when a provider response cannot be decoded into our schema."""


@dataclass
class RequestConfig:
    timeout: float = 5.0
    probe_timeout: float = 5.0


@dataclass(frozen=True)
class ProviderQuota:
    daily_limit: int
    cost_per_month: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {"daily_limit": self.daily_limit, "cost_per_month": self.cost_per_month}


class WeatherProvider:
    """Base class that adds timeouts and typed errors for HTTP providers.

    Subclasses decode the raw payload exactly once through a pydantic model
    (see :meth:`_decode`) and build an :class:`Observation` from the typed
    result, so nothing downstream has to guard against missing fields.
    """

    name = "provider"
    display_name = "Provider"
    daily_limit = 0

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or requests.Session()
        self.is_available = True
        self._log = logging.getLogger(self.__class__.__name__)

    # Adapter contract ---------------------------------------------------
    def fetch_by_coordinates(self, latitude: float, longitude: float, lang: str = "en") -> Observation:
        raise NotImplementedError

    def fetch_by_name(self, name: str, lang: str = "en") -> Observation:
        raise NotImplementedError

    def fetch_forecast(self, latitude: float, longitude: float, lang: str = "en") -> List[ForecastPoint]:
        raise ProviderError("forecast not supported", provider=self.name)

    def fetch_forecast_by_name(self, name: str, lang: str = "en") -> List[ForecastPoint]:
        raise ProviderError("forecast not supported", provider=self.name)

    def probe_availability(self) -> bool:
        try:
            self._request("GET", self._probe_url(), timeout=self.request_config.probe_timeout, **self._probe_kwargs())
        except ProviderError as exc:
            self._log.warning("Availability probe failed: %s", exc)
            self.is_available = False
        else:
            self.is_available = True
        return self.is_available

    def quota(self) -> ProviderQuota:
        return ProviderQuota(daily_limit=self.daily_limit)

    @property
    def supports_forecast(self) -> bool:
        return type(self).fetch_forecast is not WeatherProvider.fetch_forecast

    # Helpers ------------------------------------------------------------
    def _probe_url(self) -> str:
        raise NotImplementedError

    def _probe_kwargs(self) -> Dict[str, Any]:
        return {}

    def _handle_response(self, response: Response) -> Response:
        status = response.status_code
        if status == 429:
            self._log.warning("Quota exceeded: %s", response.text)
            raise QuotaExceeded("quota exceeded", provider=self.name)
        if status in (401, 403):
            self._log.error("Authentication rejected (HTTP %s)", status)
            raise AuthError(f"authentication failed (HTTP {status})", provider=self.name)
        if status == 404:
            raise LocationNotFound("location not found", provider=self.name)
        if status >= 400:
            self._log.error("Provider returned %s: %s", status, response.text)
            raise ProviderError(f"HTTP {status}", provider=self.name)
        return response

    def _request(self, method: str, url: str, timeout: Optional[float] = None, **kwargs) -> Response:
        try:
            response = self.session.request(
                method,
                url,
                timeout=timeout or self.request_config.timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            self._log.error("Request timed out", exc_info=exc)
            raise NetworkError("timeout", provider=self.name) from exc
        except requests.RequestException as exc:
            self._log.error("Request failed", exc_info=exc)
            raise NetworkError("request failed", provider=self.name) from exc
        return self._handle_response(response)

    def _get_json(self, url: str, **kwargs) -> Any:
        response = self._request("GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            self._log.error("Failed to decode JSON", exc_info=exc)
            raise MalformedPayload("invalid json", provider=self.name) from exc

    def _decode(self, model: Type[PayloadT], data: Any) -> PayloadT:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            self._log.error("Unexpected payload shape: %s", exc)
            raise MalformedPayload(f"unexpected payload: {exc.error_count()} invalid field(s)", provider=self.name) from exc


class AlertsSource:
    """Collaborator returning official alerts; failures are the caller's concern."""

    def get_alerts(self) -> List[Alert]:
        raise NotImplementedError


def normalize_direction(degrees: float, provider: Optional[str] = None) -> float:
    """Return a wind direction in [0, 360), folding 360 onto north."""
    if not 0.0 <= degrees <= 360.0:
        raise MalformedPayload(f"wind direction out of range: {degrees}", provider=provider)
    return 0.0 if degrees == 360.0 else float(degrees)


__all__ = [
    "AlertsSource",
    "AuthError",
    "KMH_TO_MS",
    "LocationNotFound",
    "MalformedPayload",
    "NetworkError",
    "ProviderError",
    "ProviderQuota",
    "QuotaExceeded",
    "RequestConfig",
    "WeatherProvider",
    "normalize_direction",
]
