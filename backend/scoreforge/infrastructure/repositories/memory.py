"""In-memory session store shared by every request handled by the process."""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from pathlib import Path
from typing import Dict

from scoreforge.domain.errors import ConflictError, SessionNotFound, ValidationError
from scoreforge.domain.models.descriptor import Descriptor
from scoreforge.domain.models.session import Operation, Session, SessionStatus

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def validate_session_id(session_id: str) -> str:
    if not session_id:
        raise ValidationError("Session ID is required")
    if not _SESSION_ID_PATTERN.match(session_id):
        raise ValidationError(f"Invalid session ID: {session_id!r}")
    return session_id


class InMemorySessionStore:
    """Thread-safe registry mapping session ids to :class:`Session` objects.

    The registry lock only guards membership; every mutation of a session takes
    that session's own lock, so work on one session never waits on another.
    Entries live until :meth:`evict` is called (see ``SessionReaper``).
    """

    def __init__(self, root: str | Path, *, log_maxlen: int | None = 10_000) -> None:
        self.root = Path(root)
        self.log_maxlen = log_maxlen
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def workdir_for(self, session_id: str) -> Path:
        return self.root / validate_session_id(session_id)

    def get_or_create(self, session_id: str) -> Session:
        workdir = self.workdir_for(session_id)
        with self._registry_lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(
                    id=session_id,
                    workdir=workdir,
                    logs=deque(maxlen=self.log_maxlen),
                )
                self._sessions[session_id] = session
                self._locks[session_id] = threading.Lock()
                logger.info("Registered provisioning session", extra={"session_id": session_id})
            return session

    def get(self, session_id: str) -> Session:
        session, _ = self._entry(session_id)
        return session

    def set_status(
        self, session_id: str, status: SessionStatus, *, error: str | None = None
    ) -> None:
        session, lock = self._entry(session_id)
        with lock:
            session.status = status
            if error is not None:
                session.last_error = error
            session.touch()

    def append_log(self, session_id: str, line: str) -> None:
        session, lock = self._entry(session_id)
        with lock:
            session.logs.append(line)
            session.touch()

    def claim(self, session_id: str, operation: Operation) -> Session:
        """Reserve the session's single operation slot or raise :class:`ConflictError`."""
        self.get_or_create(session_id)
        session, lock = self._entry(session_id)
        with lock:
            if session.operation is not None:
                raise ConflictError(session_id, session.operation.value)
            session.operation = operation
            session.touch()
        return session

    def release(self, session_id: str) -> None:
        session, lock = self._entry(session_id)
        with lock:
            session.operation = None
            session.touch()

    def attach_descriptor(self, session_id: str, descriptor: Descriptor) -> Session:
        self.get_or_create(session_id)
        session, lock = self._entry(session_id)
        with lock:
            session.descriptor = descriptor
            session.region = descriptor.region
            session.touch()
        return session

    def set_region(self, session_id: str, region: str) -> None:
        session, lock = self._entry(session_id)
        with lock:
            session.region = region

    def snapshot(self, session_id: str) -> dict[str, object]:
        session, lock = self._entry(session_id)
        with lock:
            return session.as_dict()

    def evict(self, session_id: str) -> Session | None:
        with self._registry_lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            with self._locks[session_id]:
                if session.busy:
                    return None
                del self._sessions[session_id]
            del self._locks[session_id]
        logger.info("Evicted provisioning session", extra={"session_id": session_id})
        return session

    def list(self) -> list[Session]:
        with self._registry_lock:
            return list(self._sessions.values())

    def _entry(self, session_id: str) -> tuple[Session, threading.Lock]:
        with self._registry_lock:
            try:
                return self._sessions[session_id], self._locks[session_id]
            except KeyError as exc:
                raise SessionNotFound(session_id) from exc
