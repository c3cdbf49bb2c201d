"""Test settings.

In-memory SQLite, the sandbox payment gateway, eager Celery and fast
password hashing.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

RESERVATIONS = {
    'ACCEPT_MAX_ATTEMPTS': 3,
    'SUPPORTED_CURRENCIES': ('usd',),
    'PAYMENT_GATEWAY': 'apps.reservations.payments.SandboxPaymentGateway',
}

STRIPE_SECRET_KEY = ''
STRIPE_WEBHOOK_SECRET = 'whsec_test_secret'
