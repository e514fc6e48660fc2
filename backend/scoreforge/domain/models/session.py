"""Provisioning session state and the lifecycle transition table."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, Optional

from scoreforge.domain.models.descriptor import Descriptor


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    PLANNING = "planning"
    PLANNED = "planned"
    APPLYING = "applying"
    APPLIED = "applied"
    DESTROYING = "destroying"
    DESTROYED = "destroyed"
    ERROR = "error"


class Operation(str, Enum):
    INIT = "init"
    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"


@dataclass(frozen=True, slots=True)
class Transition:
    allowed_from: frozenset[SessionStatus]
    running: SessionStatus
    succeeded: SessionStatus


BUSY_STATES = frozenset(
    {
        SessionStatus.INITIALIZING,
        SessionStatus.PLANNING,
        SessionStatus.APPLYING,
        SessionStatus.DESTROYING,
    }
)

TRANSITIONS: Dict[Operation, Transition] = {
    Operation.INIT: Transition(
        allowed_from=frozenset({SessionStatus.IDLE, SessionStatus.ERROR}),
        running=SessionStatus.INITIALIZING,
        succeeded=SessionStatus.INITIALIZED,
    ),
    Operation.PLAN: Transition(
        allowed_from=frozenset(
            {SessionStatus.INITIALIZED, SessionStatus.PLANNED, SessionStatus.APPLIED}
        ),
        running=SessionStatus.PLANNING,
        succeeded=SessionStatus.PLANNED,
    ),
    Operation.APPLY: Transition(
        allowed_from=frozenset({SessionStatus.PLANNED}),
        running=SessionStatus.APPLYING,
        succeeded=SessionStatus.APPLIED,
    ),
    Operation.DESTROY: Transition(
        allowed_from=frozenset(set(SessionStatus) - BUSY_STATES),
        running=SessionStatus.DESTROYING,
        succeeded=SessionStatus.DESTROYED,
    ),
}


@dataclass(slots=True)
class Session:
    id: str
    workdir: Path
    status: SessionStatus = SessionStatus.IDLE
    logs: Deque[str] = field(default_factory=deque)
    last_error: Optional[str] = None
    region: Optional[str] = None
    descriptor: Optional[Descriptor] = None
    operation: Optional[Operation] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def busy(self) -> bool:
        return self.operation is not None

    def touch(self) -> None:
        self.updated_at = utcnow()

    def as_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.id,
            "status": self.status.value,
            "logs": list(self.logs),
            "lastError": self.last_error,
            "operation": self.operation.value if self.operation else None,
            "region": self.region,
            "updatedAt": self.updated_at.isoformat(),
        }
