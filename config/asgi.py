"""ASGI config for the reservation engine.

This module exposes the ASGI application for ASGI servers. Production
servers should set DJANGO_SETTINGS_MODULE accordingly.
"""

import os
from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.dev')

application = get_asgi_application()
