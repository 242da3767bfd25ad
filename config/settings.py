"""Django settings for the routecast forecast aggregation service.

Values come from environment variables with development-safe defaults.
"""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get(
        "DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver"
    ).split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    "django_prometheus",
    "rest_framework",
    "drf_spectacular",
    "aggregator.apps.AggregatorConfig",
]

MIDDLEWARE = [
    "django_prometheus.middleware.PrometheusBeforeMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django_prometheus.middleware.PrometheusAfterMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
            ],
        },
    }
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DJANGO_DB_NAME", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

# ---- Cache ----
REDIS_URL = os.environ.get("REDIS_URL", "")
if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_URL,
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "routecast-forecasts",
        }
    }

# ---- DRF ----
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "config.api.exceptions.custom_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Routecast Forecast API",
    "DESCRIPTION": (
        "Aggregates weather forecasts for route points across several "
        "providers with rate limiting, retries and caching."
    ),
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

# ---- Weather providers ----
OPEN_METEO_BASE_URL = os.environ.get(
    "OPEN_METEO_BASE_URL", "https://api.open-meteo.com/v1"
)
WEATHERAPI_BASE_URL = os.environ.get(
    "WEATHERAPI_BASE_URL", "https://api.weatherapi.com/v1"
)
WEATHERAPI_KEY = os.environ.get("WEATHERAPI_KEY") or None
VISUAL_CROSSING_BASE_URL = os.environ.get(
    "VISUAL_CROSSING_BASE_URL",
    "https://weather.visualcrossing.com"
    "/VisualCrossingWebServices/rest/services/timeline",
)
VISUAL_CROSSING_API_KEY = os.environ.get("VISUAL_CROSSING_API_KEY") or None
OPENWEATHER_BASE_URL = os.environ.get(
    "OPENWEATHER_BASE_URL", "https://api.openweathermap.org/data/2.5"
)
OPENWEATHER_API_KEY = os.environ.get("OPENWEATHER_API_KEY") or None

# Per-provider overrides of the built-in limits, e.g.
# {"openweathermap": {"requests_per_minute": 30, "requests_per_day": 500}}
WEATHER_PROVIDER_LIMITS: dict[str, dict[str, int]] = {}

# ---- Forecast cache and aggregation ----
FORECAST_CACHE_ALIAS = os.environ.get("FORECAST_CACHE_ALIAS", "default")
FORECAST_CACHE_TTL_SECONDS = env_int("FORECAST_CACHE_TTL_SECONDS", 3600)
FORECAST_CACHE_BUCKET_SECONDS = env_int("FORECAST_CACHE_BUCKET_SECONDS", 3600)
FORECAST_CACHE_PRECISION = env_int("FORECAST_CACHE_PRECISION", 3)
FORECAST_CACHE_SWEEP_SECONDS = env_int("FORECAST_CACHE_SWEEP_SECONDS", 300)

AGGREGATOR_MAX_POINTS = env_int("AGGREGATOR_MAX_POINTS", 50)
AGGREGATOR_REQUEST_TIMEOUT_MS = env_int(
    "AGGREGATOR_REQUEST_TIMEOUT_MS", 10_000
)
AGGREGATOR_OVERALL_TIMEOUT_MS = env_int(
    "AGGREGATOR_OVERALL_TIMEOUT_MS", 30_000
)
AGGREGATOR_MAX_RETRIES = env_int("AGGREGATOR_MAX_RETRIES", 2)
AGGREGATOR_MAX_CONCURRENCY = env_int("AGGREGATOR_MAX_CONCURRENCY", 10)
HEALTH_PROBE_TIMEOUT_MS = env_int("HEALTH_PROBE_TIMEOUT_MS", 5_000)

# ---- Celery ----
CELERY_BROKER_URL = os.environ.get(
    "CELERY_BROKER_URL", REDIS_URL or "memory://"
)
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND") or None
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_BEAT_SCHEDULE = {
    "sweep-forecast-cache": {
        "task": "aggregator.tasks.sweep_forecast_cache",
        "schedule": float(FORECAST_CACHE_SWEEP_SECONDS),
    },
}

# ---- Logging ----
LOG_LEVEL = os.environ.get("DJANGO_LOG_LEVEL", "INFO").upper()
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "aggregator": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
