"""Barnacle: a periodic auditor for file-persisted hypothesis records.

Components:
- ``barnacle.verifier``: checks commit / url / file / command evidence
- ``barnacle.store``: one JSON file per project
- ``barnacle.rules``: heuristic rules producing warning/critical issues
- ``barnacle.snapshot``: last snapshot, report and alert files
- ``barnacle.auditor``: one audit cycle
- ``barnacle.scheduler``: interval timer with start/stop lifecycle
- ``barnacle.service``: create/get/list/update/status/trigger queries
"""

from __future__ import annotations

from barnacle.auditor import Auditor, CycleResult
from barnacle.models import KPI, AuditSnapshot, Evidence, EvidenceKind, LastAction, Project
from barnacle.rules import Issue, Severity, evaluate
from barnacle.scheduler import AuditScheduler, SchedulerState
from barnacle.service import PlannerService, dispatch
from barnacle.snapshot import SnapshotStore
from barnacle.store import FileProjectStore, ProjectStore
from barnacle.verifier import EvidenceVerifier, Verdict

__all__ = [
    "KPI",
    "AuditScheduler",
    "AuditSnapshot",
    "Auditor",
    "CycleResult",
    "Evidence",
    "EvidenceKind",
    "EvidenceVerifier",
    "FileProjectStore",
    "Issue",
    "LastAction",
    "PlannerService",
    "Project",
    "ProjectStore",
    "SchedulerState",
    "Severity",
    "SnapshotStore",
    "Verdict",
    "dispatch",
    "evaluate",
]
