"""Session lifecycle orchestration: init, plan, apply and destroy.

Every request is validated synchronously (session id, region, preconditions,
single operation per session) before the Terraform process is started on a
background worker. The worker relays each output line to the session log and
to the operation's feed, records the outcome in the session store and always
closes the feed with exactly one terminal event. Subscribers may go away at
any point; the process still runs to completion.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from scoreforge.application.workspace import PLAN_FILENAME, SessionWorkspace
from scoreforge.domain.errors import ExecutionError, PreconditionError, SpawnError
from scoreforge.domain.events.feed import FeedEvent, done_event, error_event, log_event
from scoreforge.domain.models.descriptor import (
    DEFAULT_REGIONS,
    Descriptor,
    default_descriptor,
    parse_descriptor,
    validate_region,
)
from scoreforge.domain.models.process import OutputChunk
from scoreforge.domain.models.session import (
    TRANSITIONS,
    Operation,
    Session,
    SessionStatus,
)
from scoreforge.domain.providers.interfaces import (
    ProcessSupervisor,
    RunLogStreamer,
    SessionStore,
)
from scoreforge.infrastructure.generators import render, render_score

logger = logging.getLogger(__name__)

COMMON_FLAGS: tuple[str, ...] = ("-input=false", "-no-color")

SUBCOMMANDS: Mapping[Operation, tuple[tuple[str, ...], tuple[str, ...]]] = {
    Operation.INIT: (("init",), ()),
    Operation.PLAN: (("plan",), (f"-out={PLAN_FILENAME}",)),
    Operation.APPLY: (("apply",), ("-auto-approve", PLAN_FILENAME)),
    Operation.DESTROY: (("destroy",), ("-auto-approve",)),
}


@dataclass(frozen=True)
class OperationHandle:
    session_id: str
    operation: Operation
    channel: str
    future: "Future[None]"


@dataclass(frozen=True)
class RenderResult:
    descriptor: Descriptor
    terraform: str
    score: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "terraform": self.terraform,
            "scoreFile": self.score,
            "descriptor": self.descriptor.as_dict(),
        }


class LifecycleController:
    def __init__(
        self,
        store: SessionStore,
        streamer: RunLogStreamer,
        supervisor: ProcessSupervisor,
        *,
        terraform_binary: str = "terraform",
        regions: Sequence[str] = DEFAULT_REGIONS,
        max_workers: int = 8,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.store = store
        self.streamer = streamer
        self.supervisor = supervisor
        self.terraform_binary = terraform_binary
        self.regions = tuple(regions)
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="lifecycle"
        )

    def render(self, payload: Any, *, session_id: str | None = None) -> RenderResult:
        """Render a descriptor; with ``session_id`` also attach it to that session."""
        descriptor = parse_descriptor(payload)
        result = RenderResult(
            descriptor=descriptor,
            terraform=render(descriptor, regions=self.regions),
            score=render_score(descriptor, regions=self.regions),
        )
        if session_id:
            session = self.store.attach_descriptor(session_id, descriptor)
            SessionWorkspace(session.workdir).write_score(result.score)
            logger.info(
                "Attached descriptor to session",
                extra={"session_id": session_id, "application": descriptor.name},
            )
        return result

    def init(self, session_id: str, *, region: str | None) -> OperationHandle:
        return self.start(Operation.INIT, session_id, region=region)

    def plan(self, session_id: str, *, region: str | None = None) -> OperationHandle:
        return self.start(Operation.PLAN, session_id, region=region)

    def apply(self, session_id: str, *, region: str | None = None) -> OperationHandle:
        return self.start(Operation.APPLY, session_id, region=region)

    def destroy(self, session_id: str, *, region: str | None = None) -> OperationHandle:
        return self.start(Operation.DESTROY, session_id, region=region)

    def start(
        self, operation: Operation, session_id: str, *, region: str | None = None
    ) -> OperationHandle:
        session = self.store.claim(session_id, operation)
        workspace = SessionWorkspace(session.workdir)
        try:
            init_region = self._init_region(session, region) if operation is Operation.INIT else None
            resolved_region = init_region or self._resolve_region(session, workspace, region)
            self._check_preconditions(operation, session, workspace)
            if init_region is not None:
                self._prepare_configuration(session, workspace, init_region)
        except Exception:
            self.store.release(session_id)
            raise

        if resolved_region:
            self.store.set_region(session_id, resolved_region)
        self.store.set_status(session_id, TRANSITIONS[operation].running)
        self._write_marker(session_id, workspace)

        channel = f"{session_id}:{operation.value}:{uuid.uuid4().hex[:12]}"
        self.streamer.open(channel)
        logger.info(
            "Starting lifecycle operation",
            extra={"session_id": session_id, "operation": operation.value, "channel": channel},
        )
        try:
            future = self._executor.submit(
                self._execute, operation, session_id, workspace, resolved_region, channel
            )
        except RuntimeError:
            self.store.set_status(session_id, SessionStatus.ERROR, error="Service is shutting down")
            self.store.release(session_id)
            self.streamer.detach(channel)
            raise
        return OperationHandle(
            session_id=session_id, operation=operation, channel=channel, future=future
        )

    def events(self, handle: OperationHandle) -> Iterable[FeedEvent]:
        return self.streamer.stream(handle.channel)

    def detach(self, handle: OperationHandle) -> None:
        self.streamer.detach(handle.channel)

    def status(self, session_id: str) -> dict[str, object]:
        return self.store.snapshot(session_id)

    def score(self, session_id: str) -> str | None:
        session = self.store.get(session_id)
        return SessionWorkspace(session.workdir).read_score()

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def command_for(self, operation: Operation) -> list[str]:
        head, tail = SUBCOMMANDS[operation]
        return [self.terraform_binary, *head, *COMMON_FLAGS, *tail]

    def _init_region(self, session: Session, region: str | None) -> str:
        if not region and session.descriptor is not None:
            region = session.descriptor.region
        return validate_region(region, self.regions)

    def _resolve_region(
        self, session: Session, workspace: SessionWorkspace, region: str | None
    ) -> str | None:
        if region:
            return validate_region(region, self.regions)
        if session.region:
            return session.region
        marker = workspace.read_marker() or {}
        recovered = marker.get("region")
        return str(recovered) if recovered else None

    def _check_preconditions(
        self, operation: Operation, session: Session, workspace: SessionWorkspace
    ) -> None:
        status = session.status
        allowed = status in TRANSITIONS[operation].allowed_from
        # A session that is idle in memory may only be idle because the service
        # restarted; the artifacts on disk then decide.
        recovered = status is SessionStatus.IDLE

        if operation is Operation.INIT:
            if not allowed:
                raise PreconditionError(
                    f"Cannot init session {session.id} while it is {status.value}"
                )
            return

        if not workspace.exists():
            raise PreconditionError("Environment directory not found; run init first")

        if operation is Operation.PLAN:
            if not workspace.is_initialized():
                raise PreconditionError("Working directory has not been initialized; run init first")
            if not (allowed or recovered):
                raise PreconditionError(
                    f"Cannot plan session {session.id} while it is {status.value}"
                )
        elif operation is Operation.APPLY:
            if not workspace.has_plan():
                raise PreconditionError("No plan artifact found; run plan before apply")
            if not (allowed or recovered):
                raise PreconditionError(
                    f"Cannot apply session {session.id} while it is {status.value}"
                )
        elif operation is Operation.DESTROY:
            if not workspace.has_configuration():
                raise PreconditionError("No configuration found in the environment directory")
            if not allowed:
                raise PreconditionError(
                    f"Cannot destroy session {session.id} while it is {status.value}"
                )

    def _prepare_configuration(
        self, session: Session, workspace: SessionWorkspace, region: str
    ) -> None:
        descriptor = (session.descriptor or default_descriptor(region)).with_region(region)
        configuration = render(descriptor, regions=self.regions)
        if workspace.write_configuration(configuration):
            logger.info(
                "Wrote Terraform configuration",
                extra={"session_id": session.id, "path": str(workspace.config_path)},
            )
        region_changed = session.descriptor is not None and session.descriptor.region != region
        if region_changed or workspace.read_score() is None:
            workspace.write_score(render_score(descriptor, regions=self.regions))

    def _environment(self, region: str | None) -> dict[str, str]:
        env = {"TF_IN_AUTOMATION": "1"}
        if region:
            env.update(
                {
                    "AWS_REGION": region,
                    "AWS_DEFAULT_REGION": region,
                    "TF_VAR_aws_region": region,
                }
            )
        return env

    def _execute(
        self,
        operation: Operation,
        session_id: str,
        workspace: SessionWorkspace,
        region: str | None,
        channel: str,
    ) -> None:
        transition = TRANSITIONS[operation]

        def relay(chunk: OutputChunk) -> None:
            self.store.append_log(session_id, chunk.text)
            self.streamer.publish(channel, log_event(chunk.text, stream=chunk.stream.value))
            logger.debug(
                "terraform %s [%s] %s", operation.value, chunk.stream.value, chunk.text,
                extra={"session_id": session_id},
            )

        terminal: Optional[FeedEvent] = None
        try:
            self.supervisor.run(
                self.command_for(operation),
                cwd=workspace.path,
                env=self._environment(region),
                on_output=relay,
            )
            if operation is Operation.APPLY:
                # A saved plan is stale once applied.
                workspace.discard_plan()
            self.store.set_status(session_id, transition.succeeded)
            terminal = done_event(transition.succeeded.value)
            logger.info(
                "Lifecycle operation completed",
                extra={"session_id": session_id, "operation": operation.value},
            )
        except (SpawnError, ExecutionError) as exc:
            exit_code = exc.exit_code if isinstance(exc, ExecutionError) else None
            logger.warning(
                "Lifecycle operation failed",
                extra={"session_id": session_id, "operation": operation.value, "error": exc.message},
            )
            terminal = self._record_failure(session_id, exc.message, exit_code=exit_code)
        except Exception as exc:
            logger.exception(
                "Lifecycle operation crashed",
                extra={"session_id": session_id, "operation": operation.value},
            )
            terminal = self._record_failure(session_id, f"Unexpected failure: {exc}")
        finally:
            self.store.release(session_id)
            self._write_marker(session_id, workspace)
            self.streamer.publish(
                channel, terminal or error_event(f"terraform {operation.value} was aborted")
            )

    def _record_failure(
        self, session_id: str, message: str, *, exit_code: int | None = None
    ) -> FeedEvent:
        self.store.append_log(session_id, f"Error: {message}")
        self.store.set_status(session_id, SessionStatus.ERROR, error=message)
        return error_event(message, exit_code=exit_code)

    def _write_marker(self, session_id: str, workspace: SessionWorkspace) -> None:
        try:
            workspace.write_marker(self.store.get(session_id))
        except OSError:
            logger.warning(
                "Failed to write session marker",
                extra={"session_id": session_id, "path": str(workspace.marker_path)},
                exc_info=True,
            )
