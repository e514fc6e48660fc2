import json

from scoreforge.interfaces.rest.renderers import EventStreamRenderer, encode_sse


def test_event_stream_renderer_passthrough():
    renderer = EventStreamRenderer()

    assert renderer.media_type == "text/event-stream"
    payload = b"data: {}\n\n"
    assert renderer.render(payload) == payload


def test_event_stream_renderer_frames_error_payloads():
    rendered = EventStreamRenderer().render({"success": False, "error": "busy"})

    assert rendered == b'data: {"success": false, "error": "busy"}\n\n'


def test_encode_sse_emits_data_only_frame():
    frame = encode_sse({"log": "Initializing provider plugins..."})

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"log": "Initializing provider plugins..."}
