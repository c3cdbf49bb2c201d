"""Development settings.

This module extends the base settings with development specific
configuration: debug enabled, all hosts allowed and the in-memory sandbox
payment gateway unless a real one is configured. Do not use these settings
in production!
"""

import os

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

RESERVATIONS['PAYMENT_GATEWAY'] = os.environ.get(  # noqa: F405
    'RESERVATIONS_PAYMENT_GATEWAY',
    'apps.reservations.payments.SandboxPaymentGateway',
)
