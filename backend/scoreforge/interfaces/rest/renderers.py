"""Custom DRF renderers used by the REST API layer."""

from __future__ import annotations

import json

from rest_framework.renderers import BaseRenderer


def encode_sse(payload: dict) -> str:
    """Turn a JSON-serializable payload into a data-only SSE frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class EventStreamRenderer(BaseRenderer):
    """Renderer that negotiates Server-Sent Events responses."""

    media_type = "text/event-stream"
    format = "event-stream"
    charset = None

    def render(self, data, accepted_media_type=None, renderer_context=None):
        # Streaming responses bypass DRF rendering; error payloads raised before
        # the stream starts still arrive here and go out as a single frame.
        if isinstance(data, dict):
            return encode_sse(data).encode("utf-8")
        if isinstance(data, str):
            return data.encode("utf-8")
        return data
