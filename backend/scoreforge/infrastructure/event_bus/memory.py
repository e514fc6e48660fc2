"""In-memory run log streamer used by a single service process and in unit tests."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, Optional

from scoreforge.domain.events.feed import FeedEvent, is_terminal, log_event

logger = logging.getLogger(__name__)


@dataclass
class _Channel:
    maxsize: int
    events: Deque[FeedEvent] = field(default_factory=deque)
    terminal: Optional[FeedEvent] = None
    finished_at: Optional[float] = None
    skipped: int = 0
    subscribed: bool = False
    detached: bool = False
    condition: threading.Condition = field(default_factory=threading.Condition)


@dataclass
class InMemoryRunLogStreamer:
    """Feeds each operation's events to one subscriber without ever blocking the producer.

    A channel buffers at most ``maxsize`` log events. When a slow subscriber
    lets the buffer fill up, further log lines are counted instead of queued
    and a single notice is emitted once the subscriber catches up; the full
    output remains available through the session status. Terminal events are
    held outside the buffer so they are always delivered.

    Finished channels that never got a subscriber are dropped once they are
    older than ``unclaimed_ttl_sec``; the sweep runs whenever a channel opens.
    """

    maxsize: int = 1000
    poll_interval: float = 15.0
    unclaimed_ttl_sec: float = 300.0
    _channels: Dict[str, _Channel] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def open(self, channel: str) -> None:
        self._sweep_unclaimed()
        with self._lock:
            self._channels[channel] = _Channel(maxsize=self.maxsize)

    def publish(self, channel: str, event: FeedEvent) -> None:
        with self._lock:
            state = self._channels.get(channel)
        if state is None:
            return
        with state.condition:
            if state.detached or state.terminal is not None:
                return
            if is_terminal(event):
                state.terminal = event
                state.finished_at = time.monotonic()
            elif len(state.events) >= state.maxsize:
                state.skipped += 1
                return
            else:
                self._flush_skipped(state)
                state.events.append(event)
            state.condition.notify_all()

    def stream(self, channel: str) -> Iterable[FeedEvent]:
        state = self._get_channel(channel)
        try:
            while True:
                with state.condition:
                    state.subscribed = True
                    while not (state.events or state.terminal or state.detached):
                        state.condition.wait(timeout=self.poll_interval)
                    if state.detached:
                        return
                    if state.events:
                        event = state.events.popleft()
                        if not state.events:
                            self._flush_skipped(state)
                    else:
                        if state.skipped:
                            self._flush_skipped(state)
                            continue
                        event = state.terminal
                yield event
                if is_terminal(event):
                    return
        finally:
            self.detach(channel)

    def detach(self, channel: str) -> None:
        with self._lock:
            state = self._channels.get(channel)
        if state is None:
            return
        with state.condition:
            if state.detached:
                return
            state.detached = True
            state.events.clear()
            state.condition.notify_all()
            if state.terminal is None:
                logger.info("Subscriber left before completion", extra={"channel": channel})
        self._discard(channel, state)

    def _sweep_unclaimed(self) -> None:
        cutoff = time.monotonic() - self.unclaimed_ttl_sec
        with self._lock:
            stale = [
                name
                for name, state in self._channels.items()
                if not state.subscribed
                and state.finished_at is not None
                and state.finished_at <= cutoff
            ]
            for name in stale:
                del self._channels[name]
        if stale:
            logger.info("Dropped unclaimed feeds", extra={"channels": stale})

    def _flush_skipped(self, state: _Channel) -> None:
        if state.skipped:
            state.events.append(
                log_event(
                    f"... {state.skipped} lines skipped while the client caught up; "
                    "the session status holds the full log",
                    stream="notice",
                )
            )
            state.skipped = 0

    def _discard(self, channel: str, state: _Channel) -> None:
        with self._lock:
            if self._channels.get(channel) is state:
                del self._channels[channel]

    def _get_channel(self, channel: str) -> _Channel:
        with self._lock:
            state = self._channels.get(channel)
            if state is None:
                state = _Channel(maxsize=self.maxsize)
                self._channels[channel] = state
            return state


def from_env() -> InMemoryRunLogStreamer:
    try:
        maxsize = int(os.environ.get("RUN_LOG_CHANNEL_MAXSIZE", "1000"))
    except ValueError:
        maxsize = 1000
    try:
        unclaimed_ttl = float(os.environ.get("RUN_LOG_UNCLAIMED_TTL_SEC", "300"))
    except ValueError:
        unclaimed_ttl = 300.0
    return InMemoryRunLogStreamer(maxsize=maxsize, unclaimed_ttl_sec=unclaimed_ttl)
