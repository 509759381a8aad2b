"""Base settings for all environments.

Common configuration shared by the development, production and test
settings modules. Values come from the environment through ``get_env`` so
the same image can be promoted between environments; ``dev.py``,
``prod.py`` and ``test.py`` only override what differs.
"""

import os
from pathlib import Path

import structlog
from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(BASE_DIR / ".env")


def get_env(var_name: str, default=None, required: bool = False):
    value = os.environ.get(var_name, default)
    if required and value in (None, ""):
        raise ImproperlyConfigured(f"Missing required environment variable: {var_name}")
    return value


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = get_env('DJANGO_SECRET_KEY', 'replace-me-in-production')

DEBUG = get_env('DJANGO_DEBUG', 'False').lower() == 'true'

ALLOWED_HOSTS: list[str] = [
    host.strip() for host in get_env('DJANGO_ALLOWED_HOSTS', '*').split(',') if host.strip()
]

# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    # Third‑party apps
    'rest_framework',
    # Domain apps
    'apps.currency',
    'apps.markup',
    'apps.vouchers',
    'apps.providers',
    'apps.payments',
    'apps.bookings',
    'apps.notifications',
    'apps.loyalty',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Database
# https://docs.djangoproject.com/en/5.0/ref/settings/#databases

DATABASES = {
    'default': {
        'ENGINE': get_env('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': get_env('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': get_env('DB_USER', ''),
        'PASSWORD': get_env('DB_PASSWORD', ''),
        'HOST': get_env('DB_HOST', ''),
        'PORT': get_env('DB_PORT', ''),
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
]

LANGUAGE_CODE = 'en-gb'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Email defaults
DEFAULT_FROM_EMAIL = get_env('DEFAULT_FROM_EMAIL', 'no-reply@ebt.local')
SUPPORT_EMAIL = get_env('SUPPORT_EMAIL', 'support@ebt.local')

# Django Rest Framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'apps.bookings.views.booking_exception_handler',
}

# Celery configuration (Broker and Result backend handled in environment)
CELERY_BROKER_URL = get_env('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = get_env('CELERY_RESULT_BACKEND', 'redis://localhost:6379/1')
CELERY_TIMEZONE = TIME_ZONE

# Django cache configuration. Process-local unless a shared cache is configured.
DEFAULT_CACHE_URL = get_env('CACHE_URL', '')

if DEFAULT_CACHE_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': DEFAULT_CACHE_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            },
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'ebt-booking-cache',
        }
    }

# ============================================================================
# CARD VAULT
# ============================================================================

# 64 hex characters are used as a raw AES-256 key, anything else is treated
# as a passphrase and stretched with scrypt using ENCRYPTION_KEY_SALT.
ENCRYPTION_KEY = get_env('ENCRYPTION_KEY', '')
ENCRYPTION_KEY_SALT = get_env('ENCRYPTION_KEY_SALT', 'ebt-card-vault-salt')

# ============================================================================
# PRICING
# ============================================================================

CURRENCY_CONVERSION_BUFFER = float(get_env('CURRENCY_CONVERSION_BUFFER', '2.5'))
EXCHANGE_RATE_API_URL = get_env(
    'EXCHANGE_RATE_API_URL', 'https://api.exchangerate-api.com/v4/latest/USD'
)
EXCHANGE_RATE_CACHE_TTL = int(get_env('EXCHANGE_RATE_CACHE_TTL', '3600'))

# ============================================================================
# PAYMENTS
# ============================================================================

STRIPE_SECRET_KEY = get_env('STRIPE_SECRET_KEY', '')
STRIPE_WEBHOOK_SECRET = get_env('STRIPE_WEBHOOK_SECRET', '')
# "merchant" charges the full amount and pays providers with the agency card,
# "guest_card" lets the provider charge the guest and only takes the margin.
PAYMENT_MODEL = get_env('PAYMENT_MODEL', 'guest_card').lower()
AMADEUS_AGENCY_CARD_ENCRYPTED = get_env('AMADEUS_AGENCY_CARD_ENCRYPTED', '')

# ============================================================================
# INVENTORY PROVIDERS
# ============================================================================

AMADEUS_API_KEY = get_env('AMADEUS_API_KEY', '')
AMADEUS_API_SECRET = get_env('AMADEUS_API_SECRET', '')
AMADEUS_BASE_URL = get_env('AMADEUS_BASE_URL', 'https://test.api.amadeus.com')
DUFFEL_ACCESS_TOKEN = get_env('DUFFEL_ACCESS_TOKEN', '')
DUFFEL_BASE_URL = get_env('DUFFEL_BASE_URL', 'https://api.duffel.com')
DUFFEL_WEBHOOK_SECRET = get_env('DUFFEL_WEBHOOK_SECRET', '')
DUFFEL_WEBHOOK_TOLERANCE = int(get_env('DUFFEL_WEBHOOK_TOLERANCE', '300'))
PROVIDER_REQUEST_TIMEOUT = int(get_env('PROVIDER_REQUEST_TIMEOUT', '30'))
PROVIDER_SEARCH_CACHE_TIMEOUT = int(get_env('PROVIDER_SEARCH_CACHE_TIMEOUT', '300'))
PROVIDER_SEARCH_CACHE_PREFIX = get_env('PROVIDER_SEARCH_CACHE_PREFIX', 'search:offers')

# ============================================================================
# BOOKING LIFECYCLE
# ============================================================================

ORDER_RECONCILIATION_AGE_MINUTES = int(get_env('ORDER_RECONCILIATION_AGE_MINUTES', '15'))
PENDING_BOOKING_EXPIRY_HOURS = int(get_env('PENDING_BOOKING_EXPIRY_HOURS', '24'))
CANCELLATION_SLA_MESSAGE = get_env(
    'CANCELLATION_SLA_MESSAGE',
    'Your cancellation request has been received. '
    'Our team will review it within 3-5 business days.',
)

# ============================================================================
# LOGGING
# ============================================================================

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Applied to records from the standard library and Django, which bypass
# the structlog processors configured above.
FOREIGN_PRE_CHAIN = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "redact_card_data": {
            "()": "shared.infrastructure.redaction.CardDataRedactionFilter",
        }
    },
    "formatters": {
        "json": {
            "()": "structlog.stdlib.ProcessorFormatter",
            "processor": structlog.processors.JSONRenderer(),
            "foreign_pre_chain": FOREIGN_PRE_CHAIN,
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["redact_card_data"],
            "level": "INFO",
        }
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "apps": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "shared": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "django.security.DisallowedHost": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}
