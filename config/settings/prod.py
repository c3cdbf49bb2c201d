"""Production settings.

This module extends the base settings with production specific
configuration. Ensure that sensitive values are provided via environment
variables and that security settings are appropriate for production use.
"""

import os

from .base import *  # noqa: F401,F403

# Never run with debug enabled in production
DEBUG = False

# Allowed hosts should be defined explicitly via environment variable
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', '').split(',')

# Configure secure proxies and cookies
CSRF_COOKIE_SECURE = True
SESSION_COOKIE_SECURE = True

if not STRIPE_SECRET_KEY:  # noqa: F405
    raise RuntimeError("STRIPE_SECRET_KEY must be set in production")
