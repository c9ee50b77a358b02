"""Production settings.

This module extends the base settings with production specific
configuration. Sensitive values must be provided via environment
variables; a missing Stripe key fails at startup instead of silently
falling back to the emulated gateway.
"""

from .base import *  # noqa: F401,F403

# Never run with debug enabled in production
DEBUG = False

SECRET_KEY = get_env('DJANGO_SECRET_KEY', required=True)  # noqa: F405

# Allowed hosts should be defined explicitly via environment variable
ALLOWED_HOSTS = get_env('DJANGO_ALLOWED_HOSTS', required=True).split(',')  # noqa: F405

STRIPE_SECRET_KEY = get_env('STRIPE_SECRET_KEY', required=True)  # noqa: F405
STRIPE_WEBHOOK_SECRET = get_env('STRIPE_WEBHOOK_SECRET', required=True)  # noqa: F405

# Configure secure proxies and cookies
CSRF_COOKIE_SECURE = True
SESSION_COOKIE_SECURE = True
