from __future__ import annotations

import threading
import time

from scoreforge.domain.events.feed import done_event, error_event, log_event
from scoreforge.infrastructure.event_bus.memory import InMemoryRunLogStreamer


def _streamer(**kwargs) -> InMemoryRunLogStreamer:
    kwargs.setdefault("poll_interval", 0.05)
    return InMemoryRunLogStreamer(**kwargs)


def test_events_are_delivered_in_order_and_end_with_terminal():
    streamer = _streamer()
    streamer.open("ch")
    streamer.publish("ch", log_event("one"))
    streamer.publish("ch", log_event("two", stream="stderr"))
    streamer.publish("ch", done_event("planned"))

    assert list(streamer.stream("ch")) == [
        {"type": "log", "message": "one", "stream": "stdout"},
        {"type": "log", "message": "two", "stream": "stderr"},
        {"type": "done", "status": "planned"},
    ]


def test_events_after_terminal_are_dropped():
    streamer = _streamer()
    streamer.open("ch")
    streamer.publish("ch", error_event("boom", exit_code=1))
    streamer.publish("ch", log_event("late"))
    streamer.publish("ch", done_event("applied"))

    assert list(streamer.stream("ch")) == [{"type": "error", "message": "boom", "exit_code": 1}]


def test_overflow_is_summarised_and_terminal_survives():
    streamer = _streamer(maxsize=3)
    streamer.open("ch")
    for index in range(10):
        streamer.publish("ch", log_event(f"line {index}"))
    streamer.publish("ch", done_event("initialized"))

    events = list(streamer.stream("ch"))

    assert [event["message"] for event in events[:3]] == ["line 0", "line 1", "line 2"]
    assert events[3]["stream"] == "notice"
    assert events[3]["message"].startswith("... 7 lines skipped")
    assert events[4] == {"type": "done", "status": "initialized"}
    assert len(events) == 5


def test_producer_and_consumer_on_separate_threads():
    streamer = _streamer(maxsize=10_000)
    streamer.open("ch")

    def produce() -> None:
        for index in range(500):
            streamer.publish("ch", log_event(str(index)))
        streamer.publish("ch", done_event("planned"))

    producer = threading.Thread(target=produce)
    producer.start()
    events = list(streamer.stream("ch"))
    producer.join()

    assert [event["message"] for event in events[:-1]] == [str(index) for index in range(500)]
    assert events[-1]["type"] == "done"


def test_closing_the_subscriber_detaches_the_channel():
    streamer = _streamer()
    streamer.open("ch")
    streamer.publish("ch", log_event("first"))
    feed = streamer.stream("ch")

    assert next(feed)["message"] == "first"
    feed.close()

    assert "ch" not in streamer._channels
    streamer.publish("ch", log_event("after"))
    streamer.publish("ch", done_event("planned"))
    assert "ch" not in streamer._channels


def test_publish_to_unknown_channel_is_ignored():
    streamer = _streamer()
    streamer.publish("nobody", log_event("dropped"))

    assert streamer._channels == {}


def test_finished_feeds_nobody_read_are_dropped_on_next_open():
    streamer = _streamer(unclaimed_ttl_sec=0)
    streamer.open("abandoned")
    streamer.publish("abandoned", log_event("line"))
    streamer.publish("abandoned", done_event("initialized"))
    streamer.open("running")
    streamer.publish("running", log_event("still going"))

    streamer.open("next")

    assert set(streamer._channels) == {"running", "next"}


def test_recently_finished_feed_waits_for_its_subscriber():
    streamer = _streamer()
    streamer.open("ch")
    streamer.publish("ch", done_event("planned"))
    streamer.open("other")

    assert list(streamer.stream("ch")) == [{"type": "done", "status": "planned"}]


def test_detach_wakes_a_waiting_subscriber():
    streamer = _streamer(poll_interval=30)
    streamer.open("ch")
    received: list[dict] = []
    reader = threading.Thread(target=lambda: received.extend(streamer.stream("ch")))
    reader.start()
    deadline = time.monotonic() + 5
    while not streamer._channels["ch"].subscribed and time.monotonic() < deadline:
        time.sleep(0.01)

    streamer.detach("ch")
    reader.join(timeout=5)

    assert not reader.is_alive()
    assert received == []


def test_overflow_notice_points_to_session_status():
    streamer = _streamer(maxsize=1)
    streamer.open("ch")
    streamer.publish("ch", log_event("kept"))
    streamer.publish("ch", log_event("skipped"))
    streamer.publish("ch", done_event("applied"))

    notice = list(streamer.stream("ch"))[1]

    assert notice["stream"] == "notice"
    assert "session status" in notice["message"]
