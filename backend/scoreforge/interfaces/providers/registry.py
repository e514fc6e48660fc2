"""Dependency container: named provider factories resolved from Django settings."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ProviderRegistry(Generic[T]):
    """Named factories whose products are built once, on first use."""

    factories: Dict[str, Callable[[], T]] = field(default_factory=dict)
    _instances: Dict[str, T] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def register(self, key: str, factory: Callable[[], T]) -> None:
        with self._lock:
            if key in self.factories:
                raise ValueError(f"Provider '{key}' already registered")
            self.factories[key] = factory

    def resolve(self, key: str) -> T:
        with self._lock:
            if key not in self._instances:
                factory = self.factories.get(key)
                if factory is None:
                    known = ", ".join(sorted(self.factories)) or "none"
                    raise KeyError(f"Provider '{key}' not found (registered: {known})")
                self._instances[key] = factory()
            return self._instances[key]


@dataclass
class Container:
    """Holds one registry per port; the settings key picks the default provider."""

    session_stores: ProviderRegistry[Any] = field(default_factory=ProviderRegistry)
    run_logs: ProviderRegistry[Any] = field(default_factory=ProviderRegistry)
    supervisors: ProviderRegistry[Any] = field(default_factory=ProviderRegistry)

    def resolve_session_store(self, key: Optional[str] = None) -> Any:
        return self.session_stores.resolve(key or _setting("SESSION_STORE", "memory"))

    def resolve_run_log(self, key: Optional[str] = None) -> Any:
        return self.run_logs.resolve(key or _setting("RUN_LOG_STREAMER", "memory"))

    def resolve_supervisor(self, key: Optional[str] = None) -> Any:
        return self.supervisors.resolve(key or _setting("PROCESS_SUPERVISOR", "subprocess"))


def _setting(name: str, fallback: str) -> str:
    from django.conf import settings
    from django.core.exceptions import ImproperlyConfigured

    try:
        return getattr(settings, name, fallback)
    except ImproperlyConfigured:
        return fallback
