"""On-disk layout of a session's working directory.

The files in the directory, not the in-memory session, decide whether a
lifecycle step may run: after a restart the store starts empty while the
directories (and Terraform's artifacts in them) survive.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from scoreforge.domain.models.session import Session

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "main.tf"
SCORE_FILENAME = "score.yaml"
PLAN_FILENAME = "tfplan"
PROVIDER_CACHE_DIRNAME = ".terraform"
MARKER_FILENAME = ".scoreforge-session.json"


@dataclass(frozen=True)
class SessionWorkspace:
    path: Path

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILENAME

    @property
    def score_path(self) -> Path:
        return self.path / SCORE_FILENAME

    @property
    def plan_path(self) -> Path:
        return self.path / PLAN_FILENAME

    @property
    def marker_path(self) -> Path:
        return self.path / MARKER_FILENAME

    def exists(self) -> bool:
        return self.path.is_dir()

    def ensure(self) -> Path:
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    def has_configuration(self) -> bool:
        return self.config_path.is_file()

    def is_initialized(self) -> bool:
        return (self.path / PROVIDER_CACHE_DIRNAME).is_dir()

    def has_plan(self) -> bool:
        return self.plan_path.is_file()

    def write_configuration(self, text: str) -> bool:
        """Write ``main.tf`` unless one is already present; return whether it was written."""
        if self.has_configuration():
            return False
        self.ensure()
        _atomic_write(self.config_path, text)
        return True

    def write_score(self, text: str) -> None:
        self.ensure()
        _atomic_write(self.score_path, text)

    def read_score(self) -> str | None:
        try:
            return self.score_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def discard_plan(self) -> None:
        try:
            self.plan_path.unlink()
        except FileNotFoundError:
            pass

    def write_marker(self, session: Session) -> None:
        if not self.exists():
            return
        payload = {
            "session_id": session.id,
            "status": session.status.value,
            "region": session.region,
            "updated_at": session.updated_at.isoformat(),
        }
        _atomic_write(self.marker_path, json.dumps(payload, indent=2) + "\n")

    def read_marker(self) -> dict[str, Any] | None:
        try:
            raw = self.marker_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable session marker", extra={"path": str(self.marker_path)})
            return None
        return payload if isinstance(payload, dict) else None

    def last_modified(self) -> datetime | None:
        marker = self.read_marker()
        if marker and marker.get("updated_at"):
            try:
                return datetime.fromisoformat(str(marker["updated_at"]))
            except ValueError:
                pass
        return None

    def remove(self) -> None:
        shutil.rmtree(self.path)


def _atomic_write(path: Path, text: str) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_text(text, encoding="utf-8")
    os.replace(tmp_path, path)
