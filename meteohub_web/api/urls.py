"""API URL configuration."""
from __future__ import annotations

from django.urls import path

from meteohub_web.api.views import CacheView, HealthView, StrategyView, UsageView, WeatherView

urlpatterns = [
    path("weather", WeatherView.as_view(), name="weather"),
    path("weather/usage", UsageView.as_view(), name="weather-usage"),
    path("weather/health", HealthView.as_view(), name="weather-health"),
    path("weather/strategy", StrategyView.as_view(), name="weather-strategy"),
    path("weather/cache", CacheView.as_view(), name="weather-cache"),
]
