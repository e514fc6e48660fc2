"""HTTP endpoints for descriptor rendering and the session lifecycle."""

from __future__ import annotations

import uuid

from asgiref.sync import sync_to_async
from django.core.handlers.asgi import ASGIRequest
from django.http import JsonResponse, StreamingHttpResponse
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.renderers import JSONRenderer
from rest_framework.response import Response
from rest_framework.views import APIView

from scoreforge.bootstrap import get_controller
from scoreforge.domain.events.feed import to_wire
from scoreforge.domain.models.session import Operation
from scoreforge.interfaces.rest import serializers
from scoreforge.interfaces.rest.renderers import EventStreamRenderer, encode_sse


class GenerateView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        payload = request.data
        session_id = None
        if isinstance(payload, dict):
            session_id = str(payload.get("sessionId") or "").strip() or None
        result = get_controller().render(payload, session_id=session_id)
        return Response(
            {
                "success": True,
                **result.as_dict(),
                "message": "Configuration generated successfully",
            }
        )


class LifecycleStreamView(APIView):
    """Start ``terraform <operation>`` for a session and stream its output as SSE.

    Each frame carries one output line, an error, or the final status. A client
    that reads slower than terraform writes gets a single "lines skipped" notice
    in place of the lines it missed; ``GET /api/status/<sessionId>`` always holds
    the complete log.
    """

    permission_classes = [AllowAny]
    renderer_classes = [JSONRenderer, EventStreamRenderer]

    def get(self, request, operation: str):
        query = serializers.LifecycleQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        session_id = query.validated_data.get("sessionId", "").strip()
        region = query.validated_data.get("region", "").strip() or None
        try:
            op = Operation(operation)
        except ValueError:
            return route_not_found(request)
        if not session_id and op is Operation.INIT:
            session_id = uuid.uuid4().hex

        controller = get_controller()
        handle = controller.start(op, session_id, region=region)

        if isinstance(request._request, ASGIRequest):
            content = _async_event_stream(controller, handle)
        else:
            content = _event_stream(controller, handle)
        response = StreamingHttpResponse(content, content_type="text/event-stream")
        response["Cache-Control"] = "no-cache"
        response["X-Accel-Buffering"] = "no"
        response["X-Session-Id"] = handle.session_id
        return response


_END = object()


def _event_stream(controller, handle):
    for event in controller.events(handle):
        yield encode_sse(to_wire(event))


async def _async_event_stream(controller, handle):
    # Django buffers sync iterators under ASGI, so pull each event from a worker thread.
    events = iter(controller.events(handle))
    next_event = sync_to_async(next, thread_sensitive=False)
    try:
        while True:
            event = await next_event(events, _END)
            if event is _END:
                return
            yield encode_sse(to_wire(event))
    finally:
        await sync_to_async(controller.detach, thread_sensitive=False)(handle)


class SessionStatusView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, session_id: str):
        snapshot = get_controller().status(session_id)
        return Response(serializers.SessionStatusSerializer(snapshot).data)


class ScoreView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, session_id: str):
        score = get_controller().score(session_id)
        if score is None:
            return Response(
                {"success": False, "error": "Score file not found"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response({"success": True, "scoreFile": score})


class HealthView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"success": True, "status": "ok", "message": "Server is running"})


def route_not_found(request, *args, **kwargs):
    return JsonResponse({"success": False, "error": "Route not found"}, status=404)
