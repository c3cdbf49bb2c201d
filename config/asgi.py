"""ASGI config for the screen reservations project.

Exposes the ASGI application for async-capable servers such as uvicorn.
"""

import os
from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.prod')

application = get_asgi_application()
