"""Record store: one JSON file per project.

``ProjectStore`` is the capability set the rest of the planner depends on
(list / read / write by identifier).  ``FileProjectStore`` is the only
implementation; a transactional backend can replace it without touching
the rules or the verifier.

The store does no locking.  One writer per identifier is assumed; writes go
through a temp file and ``os.replace`` so concurrent writers degrade to
last-write-wins instead of a torn file.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from barnacle.exceptions import InvalidIdentifierError, StorageError
from barnacle.models import Project

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"


@runtime_checkable
class ProjectStore(Protocol):
    async def list(self) -> list[Project]: ...

    async def read(self, project_id: str) -> Project | None: ...

    async def exists(self, project_id: str) -> bool: ...

    async def write(self, project_id: str, project: Project) -> None: ...


def validate_identifier(project_id: str) -> str:
    """Reject identifiers that would not map onto a single file name."""
    if (
        not project_id
        or project_id.startswith(".")
        or "/" in project_id
        or "\\" in project_id
        or "\x00" in project_id
    ):
        raise InvalidIdentifierError(project_id)
    return project_id


def write_text_atomic(path: Path, text: str) -> None:
    """Replace *path* with *text* so readers only ever see a complete file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


class FileProjectStore:
    """Projects persisted as ``<directory>/<id>.json``."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, project_id: str) -> Path:
        return self.directory / f"{validate_identifier(project_id)}{RECORD_SUFFIX}"

    async def list(self) -> list[Project]:
        return await asyncio.to_thread(self._list_sync)

    async def read(self, project_id: str) -> Project | None:
        path = self.path_for(project_id)
        return await asyncio.to_thread(self._read_sync, path)

    async def exists(self, project_id: str) -> bool:
        """True if a record file is present, parsable or not."""
        path = self.path_for(project_id)
        return await asyncio.to_thread(path.exists)

    async def write(self, project_id: str, project: Project) -> None:
        path = self.path_for(project_id)
        try:
            await asyncio.to_thread(write_text_atomic, path, project.to_json())
        except OSError as exc:
            raise StorageError(f"Failed to write project {project_id!r}: {exc}") from exc

    # -- blocking helpers -------------------------------------------------

    def _list_sync(self) -> list[Project]:
        self.directory.mkdir(parents=True, exist_ok=True)
        projects: list[Project] = []
        for path in sorted(self.directory.iterdir()):
            if path.suffix != RECORD_SUFFIX or not path.is_file():
                continue
            try:
                projects.append(Project.from_json(path.read_text(encoding="utf-8")))
            except (OSError, UnicodeDecodeError, ValidationError) as exc:
                logger.warning("Skipping unreadable project file %s: %s", path.name, exc)
        return projects

    def _read_sync(self, path: Path) -> Project | None:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Project file %s is unreadable: %s", path.name, exc)
            return None
        try:
            return Project.from_json(text)
        except ValidationError as exc:
            logger.warning("Project file %s failed to parse: %s", path.name, exc)
            return None
