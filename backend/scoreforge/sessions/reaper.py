from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone as dt_timezone
from pathlib import Path

from django.conf import settings
from django.utils import timezone

from scoreforge.application.workspace import SessionWorkspace
from scoreforge.domain.models.session import BUSY_STATES, SessionStatus
from scoreforge.domain.providers.interfaces import SessionStore

logger = logging.getLogger(__name__)

STATE_FILENAME = "terraform.tfstate"
BUSY_STATUSES = frozenset(status.value for status in BUSY_STATES)


class SessionReaper:
    """Evicts idle provisioning sessions and removes their working directories.

    Directories that may still describe live infrastructure (a state file
    whose last recorded status is not ``destroyed``) are left in place.

    Sessions live in the memory of the serving process, so only a reaper built
    with that process's ``store`` can evict them. Without a store the reaper
    only handles directories, and skips any whose marker says an operation is
    running.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        *,
        idle_ttl_sec: int | None = None,
        root: str | Path | None = None,
    ) -> None:
        self.store = store
        if idle_ttl_sec is None:
            idle_ttl_sec = getattr(settings, "SESSION_IDLE_TTL_SEC", 24 * 60 * 60)
        self.idle_ttl = timedelta(seconds=idle_ttl_sec)
        self.root = Path(root or settings.SCOREFORGE_ENVIRONMENTS_ROOT)

    def reap(self, *, now: datetime | None = None) -> dict[str, int]:
        now = now or timezone.now()
        store = self.store
        sessions = store.list() if store is not None else []
        known = {session.id for session in sessions}
        checked = len(sessions)
        reaped = 0

        for session in sessions:
            if session.busy or session.updated_at + self.idle_ttl > now:
                continue
            workspace = SessionWorkspace(session.workdir)
            if self._holds_resources(workspace, session.status.value):
                logger.info(
                    "Keeping idle session with recorded infrastructure",
                    extra={"session_id": session.id, "status": session.status.value},
                )
                continue
            if store is None or store.evict(session.id) is None:
                continue
            self._remove(workspace, session.id)
            reaped += 1

        for workspace in self._orphans(known):
            checked += 1
            last_seen = workspace.last_modified() or _mtime(workspace.path)
            if last_seen + self.idle_ttl > now:
                continue
            marker = workspace.read_marker() or {}
            status = str(marker.get("status") or "")
            if status in BUSY_STATUSES or self._holds_resources(workspace, status):
                continue
            self._remove(workspace, workspace.path.name)
            reaped += 1

        return {"checked": checked, "reaped": reaped}

    def _orphans(self, known: set[str]) -> list[SessionWorkspace]:
        if not self.root.is_dir():
            return []
        return [
            SessionWorkspace(child)
            for child in sorted(self.root.iterdir())
            if child.is_dir() and child.name not in known
        ]

    @staticmethod
    def _holds_resources(workspace: SessionWorkspace, status: str) -> bool:
        has_state = (workspace.path / STATE_FILENAME).is_file()
        return has_state and status != SessionStatus.DESTROYED.value

    @staticmethod
    def _remove(workspace: SessionWorkspace, session_id: str) -> None:
        if not workspace.exists():
            return
        try:
            workspace.remove()
        except OSError:
            logger.warning(
                "Failed to remove session directory",
                extra={"session_id": session_id, "path": str(workspace.path)},
                exc_info=True,
            )
            return
        logger.info("Removed idle session directory", extra={"session_id": session_id})


class ReaperThread(threading.Thread):
    """Runs a reaper every ``interval_sec`` seconds until stopped."""

    def __init__(self, reaper: SessionReaper, interval_sec: float) -> None:
        super().__init__(name="scoreforge-session-reaper", daemon=True)
        self.reaper = reaper
        self.interval_sec = interval_sec
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval_sec):
            try:
                result = self.reaper.reap()
            except Exception:
                logger.exception("Session reaping failed")
                continue
            if result["reaped"]:
                logger.info("Reaped idle sessions", extra=result)

    def stop(self, timeout: float | None = None) -> None:
        self._stopped.set()
        if self.is_alive():
            self.join(timeout)


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=dt_timezone.utc)
