"""Child process supervision for the provisioning tool.

Each call to :meth:`SubprocessSupervisor.run` owns exactly one child process.
Both pipes are drained by dedicated reader threads into a single bounded
queue, so the child can never stall on a full stderr pipe while stdout is
being read (or the reverse). The calling thread pops chunks in arrival order
and hands them to ``on_output``.
"""

from __future__ import annotations

import logging
import os
import queue
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Callable, List, Mapping, Sequence

from scoreforge.domain.errors import ExecutionError, SpawnError
from scoreforge.domain.models.process import ExitInfo, OutputChunk, OutputStream

logger = logging.getLogger(__name__)

_EOF = object()


def _pump(pipe: IO[str], stream: OutputStream, sink: "queue.Queue[Any]") -> None:
    try:
        for line in iter(pipe.readline, ""):
            sink.put(OutputChunk(stream=stream, text=line.rstrip("\r\n")))
    except (OSError, ValueError):  # pragma: no cover - pipe torn down under us
        logger.warning("Output pipe closed unexpectedly", extra={"stream": stream.value})
    finally:
        pipe.close()
        sink.put((_EOF, stream))


@dataclass
class SubprocessSupervisor:
    """Runs commands with :class:`subprocess.Popen` and relays their output."""

    queue_size: int = 1024
    popen: Callable[..., subprocess.Popen] = field(default=subprocess.Popen, repr=False)

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
        on_output: Callable[[OutputChunk], None],
    ) -> ExitInfo:
        args = [str(part) for part in command]
        rendered = shlex.join(args)
        process_env = os.environ.copy()
        if env:
            process_env.update(env)

        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        logger.info("Starting command", extra={"command": args, "cwd": str(cwd)})
        try:
            process = self.popen(
                args,
                cwd=str(cwd),
                env=process_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except FileNotFoundError as exc:
            raise SpawnError(f"Command not found: {args[0]}") from exc
        except PermissionError as exc:
            raise SpawnError(f"Permission denied running {args[0]}") from exc
        except OSError as exc:
            raise SpawnError(f"Failed to start '{rendered}': {exc}") from exc

        chunks: "queue.Queue[Any]" = queue.Queue(maxsize=self.queue_size)
        readers = [
            threading.Thread(
                target=_pump,
                args=(process.stdout, OutputStream.STDOUT, chunks),
                name=f"supervisor-stdout-{process.pid}",
                daemon=True,
            ),
            threading.Thread(
                target=_pump,
                args=(process.stderr, OutputStream.STDERR, chunks),
                name=f"supervisor-stderr-{process.pid}",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        stderr_lines: List[str] = []
        open_streams = len(readers)
        while open_streams:
            item = chunks.get()
            if isinstance(item, tuple) and item[0] is _EOF:
                open_streams -= 1
                continue
            if item.stream is OutputStream.STDERR:
                stderr_lines.append(item.text)
            try:
                on_output(item)
            except Exception:
                # Keep draining; a failing consumer must not wedge the child on a full pipe.
                logger.exception("Output consumer failed", extra={"command": args})

        exit_code = process.wait()
        for reader in readers:
            reader.join()

        stderr = "\n".join(stderr_lines)
        info = ExitInfo(
            command=tuple(args),
            cwd=str(cwd),
            exit_code=exit_code,
            started_at=started_at,
            duration_sec=round(time.monotonic() - start, 3),
            stderr=stderr,
        )
        if exit_code != 0:
            logger.error(
                "Command failed",
                extra={"command": args, "cwd": str(cwd), "exit_code": exit_code},
            )
            raise ExecutionError(
                stderr.strip() or f"Process exited with code {exit_code}",
                exit_code=exit_code,
                stderr=stderr,
            )
        logger.info(
            "Command completed",
            extra={"command": args, "cwd": str(cwd), "duration_sec": info.duration_sec},
        )
        return info


def from_env() -> SubprocessSupervisor:
    try:
        queue_size = int(os.environ.get("SUPERVISOR_QUEUE_SIZE", "1024"))
    except ValueError:
        queue_size = 1024
    return SubprocessSupervisor(queue_size=queue_size)
