"""Django settings for the weather aggregation API."""
from __future__ import annotations

from pathlib import Path
import os

from django.core.exceptions import ImproperlyConfigured

BASE_DIR = Path(__file__).resolve().parent.parent


def env(name: str, default: str | None = None) -> str:
    """Fetch environment variables while allowing explicit defaults."""

    value = os.environ.get(name, default)
    if value is None:
        raise ImproperlyConfigured(f"Environment variable {name} is required")
    return value


def env_number(name: str, default: str, cast=float):
    raw = env(name, default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise ImproperlyConfigured(f"Environment variable {name} must be a number, got {raw!r}") from exc


SECRET_KEY = env("DJANGO_SECRET_KEY")
DEBUG = os.environ.get("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "rest_framework",
    "meteohub_web.api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "meteohub_web.urls"

WSGI_APPLICATION = "meteohub_web.wsgi.application"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# No models; the database is only there to satisfy contrib.auth
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DB_NAME", str(BASE_DIR / "db.sqlite3")),
    }
}

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
}

METEOHUB = {
    "STRATEGY": env("METEOHUB_STRATEGY", "fallback"),
    "CACHE_TTL": env_number("METEOHUB_CACHE_TTL", "600"),
    "CACHE_SIZE": env_number("METEOHUB_CACHE_SIZE", "20", cast=int),
    "PROVIDER_TIMEOUT": env_number("METEOHUB_PROVIDER_TIMEOUT", "5"),
    "VARIANCE_THRESHOLD": env_number("METEOHUB_VARIANCE_THRESHOLD", "10"),
    "WEATHERAPI_KEY": os.environ.get("WEATHERAPI_KEY") or None,
    "METEOFRANCE_KEY": os.environ.get("METEOFRANCE_KEY") or None,
    "OPENWEATHERMAP_KEY": os.environ.get("OPENWEATHERMAP_KEY") or None,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {
        "handlers": ["console"],
        "level": os.environ.get("METEOHUB_LOG_LEVEL", "INFO"),
    },
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True
