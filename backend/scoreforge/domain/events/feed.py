"""Events carried on a lifecycle operation's live feed."""

from __future__ import annotations

from typing import Any, Dict

LOG = "log"
ERROR = "error"
DONE = "done"
TERMINAL_TYPES = frozenset({ERROR, DONE})

FeedEvent = Dict[str, Any]


def log_event(line: str, *, stream: str = "stdout") -> FeedEvent:
    return {"type": LOG, "message": line, "stream": stream}


def error_event(message: str, *, exit_code: int | None = None) -> FeedEvent:
    event: FeedEvent = {"type": ERROR, "message": message}
    if exit_code is not None:
        event["exit_code"] = exit_code
    return event


def done_event(status: str) -> FeedEvent:
    return {"type": DONE, "status": status}


def is_terminal(event: FeedEvent) -> bool:
    return event.get("type") in TERMINAL_TYPES


def to_wire(event: FeedEvent) -> FeedEvent:
    """Project an event onto the payload shape the browser client consumes."""
    kind = event.get("type")
    if kind == LOG:
        return {"log": event.get("message", "")}
    if kind == ERROR:
        return {"error": event.get("message", "")}
    if kind == DONE:
        return {"status": "completed", "sessionStatus": event.get("status")}
    return dict(event)
