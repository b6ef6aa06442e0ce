"""
Django settings for the outbound fulfillment project.

Values that change between environments are read from environment variables.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-outbound-dev-key")

DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "inventory",
    "fulfillment",
]

MIDDLEWARE = []

# Database
DATABASE_ENGINE = os.environ.get("DATABASE_ENGINE", "django.db.backends.sqlite3")

if DATABASE_ENGINE.endswith("sqlite3"):
    DATABASES = {
        "default": {
            "ENGINE": DATABASE_ENGINE,
            "NAME": os.environ.get("DATABASE_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DATABASE_ENGINE,
            "NAME": os.environ.get("DATABASE_NAME", "outbound"),
            "USER": os.environ.get("DATABASE_USER", "outbound"),
            "PASSWORD": os.environ.get("DATABASE_PASSWORD", ""),
            "HOST": os.environ.get("DATABASE_HOST", "localhost"),
            "PORT": os.environ.get("DATABASE_PORT", "5432"),
            "ATOMIC_REQUESTS": False,
            "OPTIONS": {
                # Lock waits are bounded by the database, not by the services.
                "options": f"-c lock_timeout={os.environ.get('DATABASE_LOCK_TIMEOUT_MS', '5000')}",
            },
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

# Fulfillment collaborators and defaults
FULFILLMENT = {
    "EVENT_PUBLISHER": os.environ.get(
        "FULFILLMENT_EVENT_PUBLISHER",
        "fulfillment.adapters.event_publisher.LoggingEventPublisher",
    ),
    "CARRIER_ADAPTER": os.environ.get(
        "FULFILLMENT_CARRIER_ADAPTER",
        "fulfillment.adapters.carrier_adapter.MockCarrierAdapter",
    ),
    "CATALOG_ADAPTER": os.environ.get(
        "FULFILLMENT_CATALOG_ADAPTER",
        "fulfillment.adapters.catalog_adapter.MockCatalogAdapter",
    ),
    "DEFAULT_CARRIER": os.environ.get("FULFILLMENT_DEFAULT_CARRIER", "FEDEX"),
    "LABEL_URL_TEMPLATE": "/labels/{pack_task_id}.pdf",
    "TRACKING_URL_TEMPLATES": {
        "FEDEX": "https://www.fedex.com/fedextrack/?trknbr={tracking_number}",
        "UPS": "https://www.ups.com/track?tracknum={tracking_number}",
        "DHL": "https://www.dhl.com/en/express/tracking.html?AWB={tracking_number}",
        "USPS": "https://tools.usps.com/go/TrackConfirmAction?tLabels={tracking_number}",
    },
}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "fulfillment": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "inventory": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}
