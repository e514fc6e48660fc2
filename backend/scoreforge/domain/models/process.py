"""Value objects describing one external tool invocation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Tuple


class OutputStream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True, slots=True)
class OutputChunk:
    """One line of child output, tagged by the pipe it arrived on."""

    stream: OutputStream
    text: str


@dataclass(frozen=True, slots=True)
class ExitInfo:
    command: Tuple[str, ...]
    cwd: str
    exit_code: int
    started_at: datetime
    duration_sec: float
    stderr: str = ""
