"""Development settings.

This module extends the base settings with development specific
configuration: debug mode, all hosts allowed and the emulated payment
gateway settling intents as soon as they are created. Do not use these
settings in production!
"""

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

# Bookings confirm immediately without a real card
EMULATED_PAYMENTS_AUTO_CONFIRM = get_bool_env('EMULATED_PAYMENTS_AUTO_CONFIRM', True)  # noqa: F405
