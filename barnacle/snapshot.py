"""Audit state files: the last snapshot, the last report and the alert.

All three live in one state directory and are overwritten in place; only
the most recent of each exists.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from barnacle.models import AuditSnapshot, Project, SnapshotEntry
from barnacle.store import write_text_atomic
from barnacle.timeutil import isoformat

logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "last-audit.json"
REPORT_FILE = "last-report.json"
ALERT_FILE = "alert.json"


def build_snapshot(projects: Iterable[Project], now: datetime) -> AuditSnapshot:
    """Project every record down to the fields the no-progress rule compares."""
    return AuditSnapshot(
        timestamp=isoformat(now),
        projects={
            p.id: SnapshotEntry(updated_at=p.updated_at, phase=p.phase, next_action=p.next_action)
            for p in projects
        },
    )


def _dump(document: dict[str, Any]) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def _read_json(path: Path) -> Any | None:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable state file %s: %s", path, exc)
        return None


class SnapshotStore:
    """Reads and writes the audit state files under *state_dir*."""

    def __init__(self, state_dir: str | os.PathLike[str]) -> None:
        self.state_dir = Path(state_dir).expanduser()

    @property
    def snapshot_path(self) -> Path:
        return self.state_dir / SNAPSHOT_FILE

    @property
    def report_path(self) -> Path:
        return self.state_dir / REPORT_FILE

    @property
    def alert_path(self) -> Path:
        return self.state_dir / ALERT_FILE

    # -- snapshot ---------------------------------------------------------

    async def load(self) -> AuditSnapshot | None:
        """Return the previous cycle's snapshot, or ``None`` before the first cycle."""
        raw = await asyncio.to_thread(_read_json, self.snapshot_path)
        if raw is None:
            return None
        try:
            return AuditSnapshot.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed snapshot %s: %s", self.snapshot_path, exc)
            return None

    async def capture(self, projects: Iterable[Project], now: datetime) -> AuditSnapshot:
        """Replace the stored snapshot with one taken from *projects*."""
        snapshot = build_snapshot(projects, now)
        await asyncio.to_thread(write_text_atomic, self.snapshot_path, snapshot.to_json())
        return snapshot

    # -- report -----------------------------------------------------------

    async def write_report(
        self,
        *,
        timestamp: str,
        report: str,
        total_issues: int,
        critical_count: int,
        project_count: int,
    ) -> None:
        document = {
            "timestamp": timestamp,
            "report": report,
            "totalIssues": total_issues,
            "criticalCount": critical_count,
            "projectCount": project_count,
        }
        await asyncio.to_thread(write_text_atomic, self.report_path, _dump(document))

    async def load_report(self) -> dict[str, Any] | None:
        return await asyncio.to_thread(_read_json, self.report_path)

    # -- alert ------------------------------------------------------------

    async def write_alert(
        self,
        *,
        timestamp: str,
        critical: list[dict[str, Any]],
        report: str,
    ) -> None:
        document = {"timestamp": timestamp, "critical": critical, "report": report}
        await asyncio.to_thread(write_text_atomic, self.alert_path, _dump(document))

    async def clear_alert(self) -> bool:
        """Delete the alert file.  Returns True if one was present."""
        return await asyncio.to_thread(self._unlink_alert)

    async def load_alert(self) -> dict[str, Any] | None:
        return await asyncio.to_thread(_read_json, self.alert_path)

    def _unlink_alert(self) -> bool:
        with contextlib.suppress(FileNotFoundError):
            self.alert_path.unlink()
            return True
        return False
