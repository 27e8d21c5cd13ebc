"""Shared test fixtures for the planner."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from barnacle.auditor import Auditor
from barnacle.models import Project
from barnacle.service import PlannerService
from barnacle.snapshot import SnapshotStore
from barnacle.store import FileProjectStore
from barnacle.timeutil import isoformat
from barnacle.verifier import EvidenceVerifier

T0 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    """Keep developer BARNACLE_* variables out of the tests."""
    for name in (
        "BARNACLE_PROJECTS_DIR",
        "BARNACLE_STATE_DIR",
        "BARNACLE_AUDIT_INTERVAL_MINUTES",
        "BARNACLE_URL_TIMEOUT_SECONDS",
        "BARNACLE_COMMAND_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> FileProjectStore:
    return FileProjectStore(tmp_path / "projects")


@pytest.fixture
def snapshots(tmp_path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "state")


@pytest.fixture
def verifier() -> EvidenceVerifier:
    return EvidenceVerifier(command_timeout=5.0)


@pytest.fixture
def auditor(store, snapshots, verifier, clock) -> Auditor:
    return Auditor(store, snapshots, verifier, clock=clock)


@pytest.fixture
def service(store, snapshots, auditor, clock) -> PlannerService:
    return PlannerService(store, snapshots, auditor, clock=clock)


@pytest.fixture
def make_project():
    """Build a fully populated project; override any field by keyword."""

    def _make(project_id: str = "alpha", **overrides) -> Project:
        stamp = isoformat(T0)
        fields = {
            "id": project_id,
            "goal": "Cut checkout latency",
            "hypothesis": "Caching the cart halves p95",
            "phase": "building",
            "next_action": "Benchmark the cache",
            "limitations": ["Only measured on staging"],
            "outcome": "pending",
            "kpis": [{"name": "p95", "metric": "checkout p95 ms", "baseline": "800", "target": "400"}],
            "log": [{"date": stamp, "action": "Project created"}],
            "created_at": stamp,
            "updated_at": stamp,
        }
        fields.update(overrides)
        return Project.model_validate(fields)

    return _make
