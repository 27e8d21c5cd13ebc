"""Tests for the query surface (barnacle/service.py)."""

import asyncio
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from barnacle.exceptions import (
    InvalidIdentifierError,
    InvalidPayloadError,
    MissingFieldError,
    ProjectExistsError,
    ProjectNotFoundError,
)
from barnacle.service import CREATED_LOG_ACTION, PlannerService, dispatch
from barnacle.snapshot import SnapshotStore
from barnacle.store import FileProjectStore


class TestCreate:
    @pytest.mark.asyncio
    async def test_goal_only_defaults(self, service, clock):
        project = await service.create("ship-x", {"goal": "Ship X"})
        assert project.phase == "research"
        assert project.hypothesis is None
        assert project.limitations == [] and project.kpis == []
        assert [entry.action for entry in project.log] == [CREATED_LOG_ACTION]
        assert project.created_at == project.updated_at

    @pytest.mark.asyncio
    async def test_persists_all_given_fields(self, service, store):
        await service.create(
            "ship-x",
            {
                "goal": "Ship X",
                "hypothesis": "Users want X",
                "phase": "building",
                "nextAction": "Draft API",
                "reviewBy": "2026-11-01",
                "limitations": ["small sample"],
                "kpis": [{"name": "signups", "metric": "weekly signups"}],
                "log": {"action": "Kickoff", "result": "agreed scope"},
            },
        )
        stored = await store.read("ship-x")
        assert stored.next_action == "Draft API"
        assert stored.kpis[0].name == "signups"
        assert stored.log[0].action == "Kickoff"
        assert stored.log[0].result == "agreed scope"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("project_id", "data", "error"),
        [
            (None, {"goal": "g"}, MissingFieldError),
            ("", {"goal": "g"}, MissingFieldError),
            ("ship-x", None, MissingFieldError),
            ("ship-x", {"goal": ""}, MissingFieldError),
            ("a/b", {"goal": "g"}, InvalidIdentifierError),
            (".hidden", {"goal": "g"}, InvalidIdentifierError),
            ("ship-x", {"goal": "g", "limitations": "not a list"}, InvalidPayloadError),
        ],
    )
    async def test_rejected_input(self, service, store, project_id, data, error):
        with pytest.raises(error):
            await service.create(project_id, data)
        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_duplicate_rejected_without_touching_existing(self, service, store):
        await service.create("ship-x", {"goal": "original"})
        before = store.path_for("ship-x").read_text()
        with pytest.raises(ProjectExistsError):
            await service.create("ship-x", {"goal": "replacement"})
        assert store.path_for("ship-x").read_text() == before

    @pytest.mark.asyncio
    async def test_unparsable_existing_file_is_not_overwritten(self, service, store):
        store.directory.mkdir(parents=True)
        store.path_for("ship-x").write_text('{"id": "ship-x", "goal": "precious"')
        with pytest.raises(ProjectExistsError):
            await service.create("ship-x", {"goal": "new"})
        assert "precious" in store.path_for("ship-x").read_text()

    @pytest.mark.asyncio
    async def test_last_action_ignored_on_create(self, service, store):
        project = await service.create(
            "ship-x",
            {"goal": "Ship X", "lastAction": {"description": "d", "result": "r"}},
        )
        assert project.last_action is None
        assert (await store.read("ship-x")).last_action is None


class TestGetAndList:
    @pytest.mark.asyncio
    async def test_get_returns_live_issues(self, service):
        await service.create("ship-x", {"goal": "Ship X"})
        result = await service.get("ship-x")
        assert result["project"]["id"] == "ship-x"
        assert "⚠️ NO HYPOTHESIS" in result["issues"]

    @pytest.mark.asyncio
    async def test_get_ignores_snapshot(self, service, snapshots, store):
        project = await service.create("ship-x", {"goal": "Ship X"})
        await snapshots.capture([project], service._clock())
        issues = (await service.get("ship-x"))["issues"]
        assert not any("NO PROGRESS" in issue for issue in issues)

    @pytest.mark.asyncio
    async def test_get_missing(self, service):
        with pytest.raises(ProjectNotFoundError):
            await service.get("ghost")
        with pytest.raises(MissingFieldError):
            await service.get(None)

    @pytest.mark.asyncio
    async def test_list_summary(self, service):
        await service.create("b", {"goal": "B"})
        await service.create("a", {"goal": "A", "nextAction": "start"})
        summary = await service.list()
        assert [row["id"] for row in summary] == ["a", "b"]
        assert summary[0]["nextAction"] == "start"
        # a: hypothesis, limitations, outcome, kpis
        assert summary[0]["issueCount"] == 4
        assert summary[1]["issueCount"] == 5


class TestUpdate:
    @pytest.mark.asyncio
    async def test_partial_update(self, service, clock):
        await service.create("ship-x", {"goal": "Ship X", "hypothesis": "H1"})
        clock.advance(minutes=5)
        project = await service.update("ship-x", {"nextAction": "Write tests"})
        assert project.next_action == "Write tests"
        assert project.hypothesis == "H1"
        assert project.goal == "Ship X"
        assert project.updated_at > project.created_at

    @pytest.mark.asyncio
    async def test_explicit_null_clears_nullable_field(self, service):
        await service.create("ship-x", {"goal": "Ship X", "hypothesis": "H1"})
        project = await service.update("ship-x", {"hypothesis": None})
        assert project.hypothesis is None

    @pytest.mark.asyncio
    async def test_null_goal_rejected(self, service):
        await service.create("ship-x", {"goal": "Ship X"})
        with pytest.raises(InvalidPayloadError):
            await service.update("ship-x", {"goal": None})

    @pytest.mark.asyncio
    async def test_empty_update_with_frozen_clock_still_advances(self, service):
        created = await service.create("ship-x", {"goal": "Ship X"})
        first = await service.update("ship-x", {})
        second = await service.update("ship-x", {})
        assert created.updated_at < first.updated_at < second.updated_at

    @pytest.mark.asyncio
    async def test_log_appends(self, service):
        await service.create("ship-x", {"goal": "Ship X"})
        project = await service.update("ship-x", {"log": {"action": "Spike", "result": "works"}})
        assert [entry.action for entry in project.log] == [CREATED_LOG_ACTION, "Spike"]

    @pytest.mark.asyncio
    async def test_last_action_defaults_date_and_resets_evidence(self, service, clock):
        await service.create("ship-x", {"goal": "Ship X"})
        project = await service.update(
            "ship-x",
            {
                "lastAction": {
                    "description": "ran suite",
                    "result": "green",
                    "evidence": [{"kind": "command", "value": "true", "verified": True}],
                }
            },
        )
        assert project.last_action.date.startswith("2026-10-01T09:00")
        assert project.last_action.evidence[0].verified is None

    @pytest.mark.asyncio
    async def test_missing_record(self, service):
        with pytest.raises(ProjectNotFoundError):
            await service.update("ghost", {"nextAction": "x"})
        with pytest.raises(MissingFieldError):
            await service.update(None, {"nextAction": "x"})


_UPDATE_FIELDS = {
    "hypothesis": st.one_of(st.none(), st.text(max_size=20)),
    "phase": st.sampled_from(["research", "building", "testing", "done", "blocked"]),
    "nextAction": st.one_of(st.none(), st.text(max_size=20)),
    "reviewBy": st.one_of(st.none(), st.just("2026-12-01")),
    "limitations": st.lists(st.text(max_size=10), max_size=3),
    "outcome": st.one_of(st.none(), st.text(max_size=20)),
    "outcomeReached": st.one_of(st.none(), st.booleans()),
}


class TestUpdateProperties:
    @settings(max_examples=40, deadline=None)
    @given(payload=st.fixed_dictionaries({}, optional=_UPDATE_FIELDS))
    def test_only_payload_fields_change(self, payload):
        async def scenario(root: Path):
            service = PlannerService(FileProjectStore(root / "p"), SnapshotStore(root / "s"))
            before = (await service.create("prop", {"goal": "G", "hypothesis": "H", "nextAction": "N"})).to_document()
            after = (await service.update("prop", payload)).to_document()
            return before, after

        with tempfile.TemporaryDirectory() as tmp:
            before, after = asyncio.run(scenario(Path(tmp)))

        assert after["updatedAt"] > before["updatedAt"]
        for key, value in before.items():
            if key == "updatedAt":
                continue
            expected = payload.get(key, value)
            assert after[key] == expected, key


class TestStatusAndTrigger:
    @pytest.mark.asyncio
    async def test_status_before_any_audit(self, service):
        await service.create("ship-x", {"goal": "Ship X"})
        status = await service.status()
        assert status["lastAudit"] is None
        row = status["projects"][0]
        assert row["id"] == "ship-x" and row["phase"] == "research"
        assert "hypothesis" in row

    @pytest.mark.asyncio
    async def test_status_uses_last_snapshot(self, service):
        await service.create("ship-x", {"goal": "Ship X"})
        assert (await service.trigger())["ok"] is True
        status = await service.status()
        assert status["lastAudit"] is not None
        assert "⚠️ NO PROGRESS since last audit" in status["projects"][0]["issues"]

    @pytest.mark.asyncio
    async def test_trigger_reports_counts(self, service):
        await service.create("ship-x", {"goal": "Ship X"})
        result = await service.trigger()
        assert result["projectCount"] == 1
        assert result["criticalCount"] == 0
        assert result["alert"] is False


class TestDispatch:
    @pytest.mark.asyncio
    async def test_errors_become_results(self, service):
        assert await dispatch(service, "create", None, {"goal": "g"}) == {"error": "id required"}
        assert await dispatch(service, "create", "x", {}) == {"error": "data.goal required"}
        assert await dispatch(service, "get", "ghost") == {"error": "Project 'ghost' not found"}
        assert await dispatch(service, "explode") == {"error": "Unknown action: explode"}

    @pytest.mark.asyncio
    async def test_round_trip_through_actions(self, service):
        created = await dispatch(service, "create", "x", {"goal": "g"})
        assert created["created"] is True
        updated = await dispatch(service, "update", "x", {"phase": "testing"})
        assert updated["updated"] is True and updated["project"]["phase"] == "testing"
        listed = await dispatch(service, "list")
        assert [row["id"] for row in listed["projects"]] == ["x"]
        assert (await dispatch(service, "audit"))["ok"] is True
        assert (await dispatch(service, "status"))["lastAudit"] is not None

    @pytest.mark.asyncio
    async def test_undecodable_record_reads_as_not_found(self, service, store):
        store.directory.mkdir(parents=True)
        store.path_for("ship-x").write_bytes(b'{"id": "ship-x", "goal": "\xff\xfe"}')
        assert await dispatch(service, "get", "ship-x") == {"error": "Project 'ship-x' not found"}
        assert await dispatch(service, "list") == {"projects": []}

    @pytest.mark.asyncio
    async def test_dot_prefixed_id_is_rejected(self, service):
        result = await dispatch(service, "create", ".hidden", {"goal": "g"})
        assert "error" in result
        assert await dispatch(service, "list") == {"projects": []}
