"""Provider interfaces wired together by the dependency container."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Mapping, Protocol, Sequence

from scoreforge.domain.events.feed import FeedEvent
from scoreforge.domain.models.descriptor import Descriptor
from scoreforge.domain.models.process import ExitInfo, OutputChunk
from scoreforge.domain.models.session import Operation, Session, SessionStatus


class SessionStore(Protocol):
    """Process-wide registry of provisioning sessions."""

    def get_or_create(self, session_id: str) -> Session:  # pragma: no cover - interface
        ...

    def get(self, session_id: str) -> Session:  # pragma: no cover - interface
        ...

    def set_status(
        self, session_id: str, status: SessionStatus, *, error: str | None = None
    ) -> None:  # pragma: no cover - interface
        ...

    def append_log(self, session_id: str, line: str) -> None:  # pragma: no cover - interface
        ...

    def claim(self, session_id: str, operation: Operation) -> Session:  # pragma: no cover
        ...

    def release(self, session_id: str) -> None:  # pragma: no cover - interface
        ...

    def attach_descriptor(
        self, session_id: str, descriptor: Descriptor
    ) -> Session:  # pragma: no cover - interface
        ...

    def set_region(self, session_id: str, region: str) -> None:  # pragma: no cover - interface
        ...

    def snapshot(self, session_id: str) -> dict[str, object]:  # pragma: no cover
        ...

    def evict(self, session_id: str) -> Session | None:  # pragma: no cover - interface
        ...

    def list(self) -> list[Session]:  # pragma: no cover - interface
        ...


class RunLogStreamer(Protocol):
    """Per-operation event feed with a single subscriber."""

    def open(self, channel: str) -> None:  # pragma: no cover - interface
        ...

    def publish(self, channel: str, event: FeedEvent) -> None:  # pragma: no cover
        ...

    def stream(self, channel: str) -> Iterable[FeedEvent]:  # pragma: no cover - interface
        ...

    def detach(self, channel: str) -> None:  # pragma: no cover - interface
        ...


class ProcessSupervisor(Protocol):
    """Runs one external command to completion while relaying its output."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
        on_output: Callable[[OutputChunk], None],
    ) -> ExitInfo:  # pragma: no cover - interface
        ...
