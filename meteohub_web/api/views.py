"""REST API views for aggregated weather information."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from meteohub.entities import AggregatedResult
from meteohub.oracle import OracleThresholds, WeatherOracle
from meteohub.providers.base import RequestConfig
from meteohub.providers.meteofrance import MeteoFranceProvider
from meteohub.providers.openmeteo import OpenMeteoProvider
from meteohub.providers.openweathermap import OpenWeatherMapProvider
from meteohub.providers.weatherapi import WeatherAPIProvider
from meteohub.services.aggregator import AggregationFailure, AggregatorConfig, WeatherAggregator


logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Weather data is temporarily unavailable, please retry"

HIGH_QUALITY = 0.8
MEDIUM_QUALITY = 0.6


@lru_cache(maxsize=1)
def get_aggregator() -> WeatherAggregator:
    config = settings.METEOHUB
    request_config = RequestConfig(timeout=config["PROVIDER_TIMEOUT"])
    providers = [OpenMeteoProvider(request_config=request_config)]
    if config["WEATHERAPI_KEY"]:
        providers.append(WeatherAPIProvider(api_key=config["WEATHERAPI_KEY"], request_config=request_config))
    if config["OPENWEATHERMAP_KEY"]:
        providers.append(
            OpenWeatherMapProvider(api_key=config["OPENWEATHERMAP_KEY"], request_config=request_config)
        )
    if config["METEOFRANCE_KEY"]:
        providers.append(MeteoFranceProvider(api_key=config["METEOFRANCE_KEY"], request_config=request_config))
    logger.info("Configured weather providers: %s", ", ".join(provider.name for provider in providers))

    return WeatherAggregator(
        providers,
        config=AggregatorConfig(
            strategy=config["STRATEGY"],
            cache_size=config["CACHE_SIZE"],
            cache_ttl=config["CACHE_TTL"],
        ),
        oracle=WeatherOracle(OracleThresholds(multi_source_variance=config["VARIANCE_THRESHOLD"])),
    )


def quality_level(confidence: float) -> str:
    if confidence > HIGH_QUALITY:
        return "high"
    if confidence > MEDIUM_QUALITY:
        return "medium"
    return "low"


def serialize_result(result: AggregatedResult) -> Dict[str, Any]:
    payload = result.as_dict()
    payload["quality"]["level"] = quality_level(result.quality.confidence)
    payload["quality"]["providers"] = list(result.quality.providers)
    return payload


def _parse_coordinates(params) -> Optional[tuple]:
    """Return (lat, lon) or None when no coordinates were sent; raise ValueError on bad input."""
    raw_lat, raw_lon = params.get("lat"), params.get("lon")
    if raw_lat is None and raw_lon is None:
        return None
    if raw_lat is None or raw_lon is None:
        raise ValueError("lat and lon must be provided together")
    try:
        latitude, longitude = float(raw_lat), float(raw_lon)
    except ValueError:
        raise ValueError("lat and lon must be valid floating point numbers") from None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        raise ValueError("lat must be within [-90, 90] and lon within [-180, 180]")
    return latitude, longitude


def _unavailable(exc: AggregationFailure) -> Response:
    logger.error("Aggregation failed: %s", exc)
    return Response({"detail": UNAVAILABLE_MESSAGE}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


class WeatherView(APIView):
    """Provide aggregated, quality-annotated weather for coordinates or a city."""

    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):  # noqa: D401
        """Return the current weather for ``lat``/``lon`` or ``city``."""
        lang = request.query_params.get("lang", "en")
        city = request.query_params.get("city", "").strip()
        try:
            coordinates = _parse_coordinates(request.query_params)
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        if coordinates is None and not city:
            return Response(
                {"detail": "either lat and lon or city query parameters are required"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        aggregator = get_aggregator()
        try:
            if coordinates is not None:
                result = aggregator.get_weather_by_coordinates(*coordinates, lang=lang)
            else:
                result = aggregator.get_weather_by_name(city, lang=lang)
        except AggregationFailure as exc:
            return _unavailable(exc)
        return Response(serialize_result(result), status=status.HTTP_200_OK)


class UsageView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        return Response(get_aggregator().get_usage_stats(), status=status.HTTP_200_OK)


class HealthView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        health = get_aggregator().check_health()
        return Response(
            {"healthy": any(health.values()), "providers": health},
            status=status.HTTP_200_OK,
        )


class StrategyView(APIView):
    """Switch the aggregation strategy used for subsequent requests."""

    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        strategy = request.data.get("strategy") if isinstance(request.data, dict) else None
        if not strategy:
            return Response({"detail": "strategy is required"}, status=status.HTTP_400_BAD_REQUEST)
        aggregator = get_aggregator()
        try:
            aggregator.set_strategy(strategy)
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        logger.info("Aggregation strategy switched to %s", strategy)
        return Response({"strategy": aggregator.strategy}, status=status.HTTP_200_OK)


class CacheView(APIView):
    permission_classes = [AllowAny]

    def delete(self, request, *args, **kwargs):
        get_aggregator().clear_cache()
        return Response(status=status.HTTP_204_NO_CONTENT)


__all__ = [
    "CacheView",
    "HealthView",
    "StrategyView",
    "UsageView",
    "WeatherView",
    "get_aggregator",
    "quality_level",
    "serialize_result",
]
