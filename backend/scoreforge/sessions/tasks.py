from __future__ import annotations

from celery import shared_task

from scoreforge.sessions.reaper import SessionReaper


@shared_task
def reap_sessions() -> dict[str, int]:
    """Remove session directories abandoned for longer than ``SESSION_IDLE_TTL_SEC``.

    Workers do not share the web process's session store, so this only cleans
    directories; the serving process evicts its own sessions.
    """
    reaper = SessionReaper()
    return reaper.reap()
