"""Test settings: in-memory SQLite, eager Celery and the emulated gateway."""

from .base import *  # noqa: F401,F403

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STRIPE_SECRET_KEY = ''
STRIPE_WEBHOOK_SECRET = 'whsec_test'
EMULATED_PAYMENTS_AUTO_CONFIRM = False

RESERVATIONS = {
    **RESERVATIONS,  # noqa: F405
    'GATEWAY_BACKOFF_SECONDS': 0,
    'RELIST_ON_REFUND': False,
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'
