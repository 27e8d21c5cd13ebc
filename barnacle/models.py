"""Persisted record schema for the planner.

Records are stored as camelCase JSON (``nextAction``, ``reviewBy`` ...) so
the files stay readable by the tools that wrote them originally; in Python
the fields use snake_case.  Timestamps are kept as ISO-8601 strings and
compared as strings by the snapshot diff, so they round-trip byte for byte.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

#: Conventional values for ``Project.phase``.  Not enforced.
CONVENTIONAL_PHASES = ("research", "building", "testing", "done")
DEFAULT_PHASE = "research"


class EvidenceKind(str, Enum):
    """Evidence kinds the verifier knows how to check."""

    COMMIT = "commit"
    URL = "url"
    FILE = "file"
    COMMAND = "command"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Evidence(_CamelModel):
    """An externally checkable claim attached to a reported action.

    ``kind`` is a plain string so records carrying a kind this version does
    not know survive a read/write cycle; the verifier fails them instead.
    """

    kind: str
    value: str
    repo: str | None = None  # commit only
    expect: str | None = None  # command only
    verified: bool | None = None
    verified_at: str | None = None
    verify_error: str | None = None


class KPI(_CamelModel):
    name: str
    metric: str = ""
    baseline: str | None = None
    target: str | None = None
    current: str | None = None
    measured_at: str | None = None


class LastAction(_CamelModel):
    description: str = ""
    result: str = ""
    date: str
    evidence: list[Evidence] = Field(default_factory=list)


class LogEntry(_CamelModel):
    date: str
    action: str
    result: str | None = None


class VerificationRun(_CamelModel):
    """Summary of one pass of the verifier over a record's evidence."""

    date: str
    passed: int = 0
    failed: int = 0
    details: list[str] = Field(default_factory=list)


class Project(_CamelModel):
    """A hypothesis record, stored as one JSON file per ``id``."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    goal: str
    hypothesis: str | None = None
    phase: str = DEFAULT_PHASE
    next_action: str | None = None
    last_action: LastAction | None = None
    review_by: str | None = None
    limitations: list[str] = Field(default_factory=list)
    outcome: str | None = None
    outcome_reached: bool | None = None
    kpis: list[KPI] = Field(default_factory=list)
    verifications: list[VerificationRun] = Field(default_factory=list)
    log: list[LogEntry] = Field(default_factory=list)
    created_at: str
    updated_at: str

    @property
    def evidence(self) -> list[Evidence]:
        if self.last_action is None:
            return []
        return self.last_action.evidence

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        """Pretty-printed JSON with a trailing newline."""
        return json.dumps(self.to_document(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def from_json(cls, text: str) -> Project:
        return cls.model_validate_json(text)


# ---------------------------------------------------------------------------
# Create / update payloads
# ---------------------------------------------------------------------------


class EvidenceInput(_CamelModel):
    """Evidence as supplied by a caller; verdict fields belong to the verifier."""

    kind: str
    value: str
    repo: str | None = None
    expect: str | None = None

    def to_evidence(self) -> Evidence:
        return Evidence(kind=self.kind, value=self.value, repo=self.repo, expect=self.expect)


class LastActionInput(_CamelModel):
    description: str = ""
    result: str = ""
    date: str | None = None
    evidence: list[EvidenceInput] = Field(default_factory=list)


class LogInput(_CamelModel):
    action: str
    result: str | None = None


class ProjectPayload(_CamelModel):
    """Fields accepted by create and update.

    Presence matters: update applies exactly the keys listed in
    ``model_fields_set`` and leaves every other field alone.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    goal: str | None = None
    hypothesis: str | None = None
    phase: str | None = None
    next_action: str | None = None
    review_by: str | None = None
    limitations: list[str] | None = None
    outcome: str | None = None
    outcome_reached: bool | None = None
    kpis: list[KPI] | None = None
    last_action: LastActionInput | None = None
    log: LogInput | None = None


# ---------------------------------------------------------------------------
# Audit snapshot
# ---------------------------------------------------------------------------


class SnapshotEntry(_CamelModel):
    updated_at: str
    phase: str
    next_action: str | None = None


class AuditSnapshot(_CamelModel):
    """Projection of every record taken at the end of an audit cycle."""

    timestamp: str
    projects: dict[str, SnapshotEntry] = Field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False) + "\n"
