"""Map domain failures onto the JSON error envelope used by every endpoint."""

from __future__ import annotations

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from scoreforge.domain.errors import ScoreForgeError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, ScoreForgeError):
        view = context.get("view")
        logger.info(
            "Request rejected",
            extra={
                "view": type(view).__name__ if view is not None else None,
                "error": exc.message,
                "status_code": exc.status_code,
            },
        )
        return Response({"success": False, "error": exc.message}, status=exc.status_code)
    return exception_handler(exc, context)
