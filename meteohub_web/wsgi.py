"""WSGI entry point for the weather aggregation API."""
from __future__ import annotations

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "meteohub_web.settings")

application = get_wsgi_application()
