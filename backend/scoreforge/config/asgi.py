"""ASGI config for ScoreForge.

Lifecycle feeds are long-lived streaming responses. Under ASGI (uvicorn,
daphne) the views hand Django an async iterator so each line is sent as it
arrives; under WSGI use a threaded server.
"""

from __future__ import annotations

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "scoreforge.config.settings")

application = get_asgi_application()
