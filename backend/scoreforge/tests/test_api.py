from __future__ import annotations

import asyncio
import json
import threading

import pytest
from asgiref.testing import ApplicationCommunicator
from django.urls import reverse
from rest_framework.test import APIClient

ORDERS = {
    "name": "orders",
    "environment": {"region": "eu-west-1", "type": "api", "executionEnvironment": "eks"},
    "services": {"database": True},
}


@pytest.fixture
def client(controller) -> APIClient:
    return APIClient()


def _frames(response) -> list[dict]:
    body = b"".join(response.streaming_content).decode("utf-8")
    return [
        json.loads(line[len("data: "):])
        for line in body.split("\n")
        if line.startswith("data: ")
    ]


def _terraform(client: APIClient, operation: str, **params):
    return client.get(reverse("terraform-operation", kwargs={"operation": operation}), params)


def test_health(client):
    response = client.get(reverse("health"))

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_generate_returns_terraform_and_score(client):
    response = client.post(reverse("generate"), ORDERS, format="json")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert 'region = "eu-west-1"' in body["terraform"]
    assert json.loads(body["scoreFile"])["metadata"]["name"] == "orders"
    assert body["descriptor"]["services"] == {"database": True}
    assert body["message"]


def test_generate_validation_error(client):
    response = client.post(
        reverse("generate"), {"environment": {"region": "eu-west-1"}}, format="json"
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Application name is required"}


def test_generate_rejects_non_object_body(client):
    response = client.post(reverse("generate"), ["orders"], format="json")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


def test_generate_with_session_exposes_score(client):
    client.post(reverse("generate"), {**ORDERS, "sessionId": "web-1"}, format="json")

    response = client.get(reverse("session-score", kwargs={"session_id": "web-1"}))

    assert response.status_code == 200
    assert json.loads(response.json()["scoreFile"])["spec"]["environment"]["region"] == "eu-west-1"


def test_init_streams_events_and_names_the_session(client, controller):
    response = _terraform(client, "init", region="eu-west-1")

    assert response.status_code == 200
    assert response["Content-Type"] == "text/event-stream"
    assert response["Cache-Control"] == "no-cache"
    session_id = response["X-Session-Id"]
    assert session_id

    frames = _frames(response)
    assert frames[:-1] == [{"log": "terraform init started"}, {"log": "terraform init finished"}]
    assert frames[-1] == {"status": "completed", "sessionStatus": "initialized"}

    status = client.get(reverse("session-status", kwargs={"session_id": session_id}))
    assert status.status_code == 200
    assert status.json()["status"] == "initialized"
    assert status.json()["lastError"] is None


def test_full_lifecycle_over_http(client):
    _frames(_terraform(client, "init", sessionId="web-2", region="us-east-1"))
    plan = _frames(_terraform(client, "plan", sessionId="web-2"))
    apply = _frames(_terraform(client, "apply", sessionId="web-2"))
    destroy = _frames(_terraform(client, "destroy", sessionId="web-2"))

    assert plan[-1]["sessionStatus"] == "planned"
    assert apply[-1]["sessionStatus"] == "applied"
    assert destroy[-1]["sessionStatus"] == "destroyed"


def test_failure_is_streamed_as_error_frame(client, fake_terraform):
    fake_terraform.fail("init", "Failed to query available provider packages")

    frames = _frames(_terraform(client, "init", sessionId="web-3", region="eu-west-1"))

    assert frames[-1] == {"error": "Failed to query available provider packages"}
    status = client.get(reverse("session-status", kwargs={"session_id": "web-3"})).json()
    assert status["status"] == "error"
    assert status["lastError"] == "Failed to query available provider packages"


def test_apply_before_plan_is_rejected_before_streaming(client):
    _frames(_terraform(client, "init", sessionId="web-4", region="eu-west-1"))

    response = _terraform(client, "apply", sessionId="web-4")

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "No plan artifact found; run plan before apply",
    }


def test_plan_requires_session_id(client):
    response = _terraform(client, "plan")

    assert response.status_code == 400
    assert response.json()["error"] == "Session ID is required"


def test_busy_session_returns_conflict(client, fake_terraform):
    fake_terraform.gate = threading.Event()
    first = _terraform(client, "init", sessionId="web-5", region="eu-west-1")
    try:
        second = _terraform(client, "destroy", sessionId="web-5")
        assert second.status_code == 409
        assert second.json()["success"] is False
    finally:
        fake_terraform.gate.set()
    assert _frames(first)[-1]["sessionStatus"] == "initialized"


def test_unknown_operation_is_not_found(client):
    response = _terraform(client, "refresh", sessionId="web-6")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Route not found"}


def test_status_of_unknown_session(client):
    response = client.get(reverse("session-status", kwargs={"session_id": "nobody"}))

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_score_missing_for_known_session(client, controller):
    controller.store.get_or_create("bare")

    response = client.get(reverse("session-score", kwargs={"session_id": "bare"}))

    assert response.status_code == 404
    assert response.json()["error"] == "Score file not found"


def test_unknown_api_route(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Route not found"}


async def _asgi_get(path: str, query: str, midway: threading.Event) -> tuple[bytes, bytes]:
    from scoreforge.config.asgi import application

    communicator = ApplicationCommunicator(
        application,
        {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "query_string": query.encode(),
            "headers": [(b"host", b"testserver")],
            "server": ("testserver", 80),
        },
    )
    await communicator.send_input({"type": "http.request", "body": b"", "more_body": False})
    start = await communicator.receive_output(timeout=5)
    assert start["type"] == "http.response.start"
    assert start["status"] == 200

    first = await communicator.receive_output(timeout=5)
    midway.set()
    rest = b""
    message = first
    while message.get("more_body"):
        message = await communicator.receive_output(timeout=5)
        rest += message.get("body", b"")
    await communicator.wait(timeout=5)
    return first.get("body", b""), rest


def test_asgi_stream_delivers_lines_while_terraform_runs(controller, fake_terraform):
    fake_terraform.midway = threading.Event()

    first, rest = asyncio.run(
        _asgi_get("/api/terraform/init", "sessionId=a1&region=eu-west-1", fake_terraform.midway)
    )

    assert b"terraform init started" in first
    assert b"terraform init finished" in rest
    assert b'"sessionStatus": "initialized"' in rest
    assert controller.status("a1")["status"] == "initialized"
