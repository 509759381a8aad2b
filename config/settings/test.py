"""Test settings.

In-memory database, process-local cache and locmem email so the suite
runs without any external service. A fixed vault key keeps encrypted
fixtures stable across runs.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'ebt-test-cache',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

ENCRYPTION_KEY = '0123456789abcdef' * 4
STRIPE_SECRET_KEY = 'sk_test_dummy'
STRIPE_WEBHOOK_SECRET = 'whsec_test_dummy'
DUFFEL_WEBHOOK_SECRET = 'duffel_whsec_test_dummy'
PAYMENT_MODEL = 'guest_card'
AMADEUS_AGENCY_CARD_ENCRYPTED = ''

CELERY_TASK_ALWAYS_EAGER = True
