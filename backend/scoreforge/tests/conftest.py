from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from scoreforge import bootstrap
from scoreforge.application.lifecycle import LifecycleController
from scoreforge.domain.errors import ExecutionError, SpawnError
from scoreforge.domain.models.process import ExitInfo, OutputChunk, OutputStream
from scoreforge.infrastructure.event_bus.memory import InMemoryRunLogStreamer
from scoreforge.infrastructure.repositories import InMemorySessionStore


class FakeTerraform:
    """Stands in for the terraform binary and leaves the artifacts it would leave."""

    def __init__(self) -> None:
        self.calls: list[tuple[list[str], Path, dict[str, str]]] = []
        self.failures: dict[str, Exception] = {}
        self.gate: threading.Event | None = None
        self.midway: threading.Event | None = None
        self._lock = threading.Lock()

    def fail(self, subcommand: str, message: str = "Error: provider rejected", exit_code: int = 1) -> None:
        self.failures[subcommand] = ExecutionError(message, exit_code=exit_code, stderr=message)

    def fail_to_spawn(self, subcommand: str) -> None:
        self.failures[subcommand] = SpawnError("Command not found: terraform")

    def commands(self, subcommand: str) -> list[list[str]]:
        return [command for command, _, _ in self.calls if command[1] == subcommand]

    def run(self, command, *, cwd, env=None, on_output):
        cwd = Path(cwd)
        subcommand = command[1]
        with self._lock:
            self.calls.append((list(command), cwd, dict(env or {})))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        failure = self.failures.get(subcommand)
        if isinstance(failure, SpawnError):
            raise failure
        on_output(OutputChunk(OutputStream.STDOUT, f"terraform {subcommand} started"))
        if self.midway is not None:
            self.midway.wait(timeout=5)
        if failure is not None:
            on_output(OutputChunk(OutputStream.STDERR, failure.message))
            raise failure
        if subcommand == "init":
            (cwd / ".terraform").mkdir(exist_ok=True)
        elif subcommand == "plan":
            (cwd / "tfplan").write_bytes(b"plan")
        elif subcommand == "apply":
            (cwd / "terraform.tfstate").write_text("{}")
        on_output(OutputChunk(OutputStream.STDOUT, f"terraform {subcommand} finished"))
        return ExitInfo(
            command=tuple(command),
            cwd=str(cwd),
            exit_code=0,
            started_at=datetime.now(timezone.utc),
            duration_sec=0.0,
        )


def _drain(controller: LifecycleController, handle) -> list[dict]:
    events = list(controller.events(handle))
    handle.future.result(timeout=5)
    return events


@pytest.fixture
def drain():
    """Consume an operation's feed to its terminal event and wait for the worker."""
    return _drain


@pytest.fixture
def environments_root(tmp_path, settings) -> Path:
    root = tmp_path / "environments"
    settings.SCOREFORGE_ENVIRONMENTS_ROOT = str(root)
    return root


@pytest.fixture
def fake_terraform() -> FakeTerraform:
    return FakeTerraform()


@pytest.fixture
def controller(environments_root, fake_terraform):
    controller = LifecycleController(
        store=InMemorySessionStore(environments_root),
        streamer=InMemoryRunLogStreamer(poll_interval=0.05),
        supervisor=fake_terraform,
        max_workers=4,
    )
    previous = bootstrap.set_controller(controller)
    yield controller
    controller.shutdown()
    bootstrap.set_controller(previous)
