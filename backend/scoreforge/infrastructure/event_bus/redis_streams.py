"""Operation feeds kept in Redis Streams, shared by every worker process."""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

import redis

from scoreforge.domain.events.feed import FeedEvent, error_event, is_terminal

logger = logging.getLogger(__name__)


@dataclass
class RedisRunLogStreamer:
    """One capped stream per operation channel.

    Publishing is a single ``XADD`` and never waits on a subscriber. Readers
    replay the stream from its first entry and stop at the terminal event; a
    reader that sees nothing for ``idle_timeout_sec`` gives up with an error
    event instead of waiting on a publisher that is gone.
    """

    client: "redis.Redis[str]"
    stream_prefix: str = "runlog"
    stream_maxlen: int = 2048
    block_ms: int = 5_000
    retention_seconds: int = 6 * 60 * 60
    idle_timeout_sec: float = 30 * 60

    def open(self, channel: str) -> None:
        try:
            self.client.delete(self.key(channel))
        except redis.RedisError:  # pragma: no cover - network errors
            logger.exception("Could not reset feed stream", extra={"channel": channel})

    def publish(self, channel: str, event: FeedEvent) -> None:
        key = self.key(channel)
        try:
            pipeline = self.client.pipeline()
            pipeline.xadd(key, {"data": json.dumps(event)}, maxlen=self.stream_maxlen, approximate=True)
            if self.retention_seconds:
                pipeline.expire(key, self.retention_seconds)
            pipeline.execute()
        except redis.RedisError:  # pragma: no cover - network errors
            logger.exception("Could not publish feed event", extra={"channel": channel})

    def stream(self, channel: str) -> Iterable[FeedEvent]:
        cursor = "0-0"
        last_activity = time.monotonic()
        while True:
            batch = self._read(channel, cursor)
            if not batch:
                if time.monotonic() - last_activity >= self.idle_timeout_sec:
                    logger.warning("Feed went quiet; giving up", extra={"channel": channel})
                    yield error_event("Lost track of the operation; check the session status")
                    return
                continue
            last_activity = time.monotonic()
            for cursor, event in batch:
                if event is None:
                    continue
                yield event
                if is_terminal(event):
                    return

    def detach(self, channel: str) -> None:
        # Entries expire on their own.
        return None

    def key(self, channel: str) -> str:
        return f"{self.stream_prefix}:{channel}"

    def _read(self, channel: str, cursor: str) -> list[tuple[str, Optional[FeedEvent]]]:
        try:
            response = self.client.xread({self.key(channel): cursor}, block=self.block_ms, count=50)
        except redis.RedisError:  # pragma: no cover - network errors
            logger.exception("Could not read feed stream", extra={"channel": channel})
            return []
        return [
            (entry_id, self._decode(channel, fields))
            for _, entries in response or []
            for entry_id, fields in entries
        ]

    @staticmethod
    def _decode(channel: str, fields: dict) -> Optional[FeedEvent]:
        try:
            event = json.loads(fields["data"])
        except (KeyError, TypeError, json.JSONDecodeError):
            logger.warning("Dropping unreadable feed entry", extra={"channel": channel})
            return None
        return event if isinstance(event, dict) else None


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        logger.warning("Ignoring non-integer %s", name)
        return default


def from_env() -> RedisRunLogStreamer:
    client: "redis.Redis[str]" = redis.from_url(
        os.environ.get("REDIS_URL", "redis://localhost:6379/0"), decode_responses=True
    )
    return RedisRunLogStreamer(
        client=client,
        stream_prefix=os.environ.get("RUN_LOG_STREAM_PREFIX", "runlog"),
        stream_maxlen=_int_env("RUN_LOG_STREAM_MAXLEN", 2048),
        block_ms=_int_env("RUN_LOG_STREAM_BLOCK_MS", 5_000),
        retention_seconds=_int_env("RUN_LOG_RETENTION_SECONDS", 6 * 60 * 60),
        idle_timeout_sec=_int_env("RUN_LOG_IDLE_TIMEOUT_SEC", 30 * 60),
    )
