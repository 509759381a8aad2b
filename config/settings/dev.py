"""Development settings.

Extends the base settings with debug enabled and the console email
backend. The card vault falls back to a development key when
ENCRYPTION_KEY is unset. Do not use these settings in production!
"""

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

# Use console email backend during development
EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'
