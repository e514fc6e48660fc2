"""Application bootstrap utilities: dependency container and the lifecycle controller."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from django.conf import settings

from scoreforge.application.lifecycle import LifecycleController
from scoreforge.domain.models.descriptor import DEFAULT_REGIONS
from scoreforge.infrastructure.event_bus import memory as memory_stream, redis_streams
from scoreforge.infrastructure.process import supervisor
from scoreforge.infrastructure.repositories import InMemorySessionStore
from scoreforge.interfaces.providers.registry import Container
from scoreforge.sessions.reaper import ReaperThread, SessionReaper


def _setting(name: str, fallback: Any) -> Any:
    return getattr(settings, name, fallback)


def _session_store() -> InMemorySessionStore:
    root = Path(_setting("SCOREFORGE_ENVIRONMENTS_ROOT", "environments"))
    return InMemorySessionStore(root, log_maxlen=_setting("SESSION_LOG_MAXLEN", 10_000))


container = Container()
container.session_stores.register("memory", _session_store)
container.run_logs.register("memory", memory_stream.from_env)
container.run_logs.register("redis", redis_streams.from_env)
container.supervisors.register("subprocess", supervisor.from_env)

_controller: LifecycleController | None = None
_reaper: ReaperThread | None = None
_controller_lock = threading.Lock()


def build_controller() -> LifecycleController:
    return LifecycleController(
        store=container.resolve_session_store(),
        streamer=container.resolve_run_log(),
        supervisor=container.resolve_supervisor(),
        terraform_binary=_setting("TERRAFORM_BINARY", "terraform"),
        regions=_setting("SCOREFORGE_REGIONS", DEFAULT_REGIONS),
        max_workers=_setting("LIFECYCLE_MAX_WORKERS", 8),
    )


def start_reaper(controller: LifecycleController) -> ReaperThread | None:
    """Evict this process's idle sessions in the background, unless disabled."""
    global _reaper
    if not _setting("SESSION_REAP_IN_PROCESS", True):
        return None
    if _reaper is not None:
        _reaper.stop()
    _reaper = ReaperThread(
        SessionReaper(controller.store), _setting("SESSION_REAP_INTERVAL_SEC", 300)
    )
    _reaper.start()
    return _reaper


def get_controller() -> LifecycleController:
    global _controller
    if _controller is None:
        with _controller_lock:
            if _controller is None:
                _controller = build_controller()
                start_reaper(_controller)
    return _controller


def set_controller(controller: LifecycleController | None) -> LifecycleController | None:
    """Swap the process-wide controller (tests, embedding); returns the previous one."""
    global _controller
    with _controller_lock:
        previous, _controller = _controller, controller
    return previous
