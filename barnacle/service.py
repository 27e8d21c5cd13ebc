"""Query surface over the record store and the auditor.

``PlannerService`` implements create / get / list / update plus the status
and trigger queries.  User input problems raise ``PlannerError``;
``dispatch`` is the adapter for tool-call style callers and turns those
into ``{"error": ...}`` results.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from barnacle.auditor import Auditor
from barnacle.config import BarnacleSettings
from barnacle.exceptions import (
    InvalidPayloadError,
    MissingFieldError,
    PlannerError,
    ProjectExistsError,
    ProjectNotFoundError,
)
from barnacle.models import (
    DEFAULT_PHASE,
    LastAction,
    LogEntry,
    Project,
    ProjectPayload,
)
from barnacle.rules import evaluate
from barnacle.scheduler import AuditScheduler
from barnacle.snapshot import SnapshotStore
from barnacle.store import FileProjectStore, ProjectStore, validate_identifier
from barnacle.timeutil import advance_timestamp, isoformat, utcnow
from barnacle.verifier import EvidenceVerifier

logger = logging.getLogger(__name__)

CREATED_LOG_ACTION = "Project created"

# Fields that may not be cleared with an explicit null.
_REQUIRED_ON_UPDATE = frozenset({"goal", "phase", "limitations", "kpis"})
_SCALAR_FIELDS = (
    "goal",
    "hypothesis",
    "phase",
    "next_action",
    "review_by",
    "limitations",
    "outcome",
    "outcome_reached",
    "kpis",
)


def parse_payload(data: Mapping[str, Any] | None) -> ProjectPayload:
    try:
        return ProjectPayload.model_validate(dict(data or {}))
    except ValidationError as exc:
        detail = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'data'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidPayloadError(detail) from exc


class PlannerService:
    """Create, read and update projects; expose audit status."""

    def __init__(
        self,
        store: ProjectStore,
        snapshots: SnapshotStore,
        auditor: Auditor | None = None,
        *,
        scheduler: AuditScheduler | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.snapshots = snapshots
        self.auditor = auditor
        self.scheduler = scheduler
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: BarnacleSettings) -> PlannerService:
        """Wire the file store, state files, verifier and scheduler from *settings*."""
        store = FileProjectStore(settings.projects_dir)
        snapshots = SnapshotStore(settings.state_dir)
        verifier = EvidenceVerifier(
            url_timeout=settings.url_timeout_seconds,
            command_timeout=settings.command_timeout_seconds,
        )
        auditor = Auditor(store, snapshots, verifier)
        scheduler = AuditScheduler(auditor, settings.audit_interval_minutes)
        return cls(store, snapshots, auditor, scheduler=scheduler)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def _require(self, project_id: str | None) -> Project:
        if not project_id:
            raise MissingFieldError("id")
        project = await self.store.read(validate_identifier(project_id))
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def create(self, project_id: str | None, data: Mapping[str, Any] | None) -> Project:
        if not project_id:
            raise MissingFieldError("id")
        validate_identifier(project_id)
        payload = parse_payload(data)
        if not payload.goal:
            raise MissingFieldError("data.goal")
        if await self.store.exists(project_id):
            raise ProjectExistsError(project_id)

        now = isoformat(self._clock())
        project = Project(
            id=project_id,
            goal=payload.goal,
            hypothesis=payload.hypothesis or None,
            phase=payload.phase or DEFAULT_PHASE,
            next_action=payload.next_action or None,
            review_by=payload.review_by or None,
            limitations=list(payload.limitations or []),
            outcome=payload.outcome or None,
            outcome_reached=payload.outcome_reached,
            kpis=list(payload.kpis or []),
            log=[
                LogEntry(
                    date=now,
                    action=payload.log.action if payload.log else CREATED_LOG_ACTION,
                    result=payload.log.result if payload.log else None,
                )
            ],
            created_at=now,
            updated_at=now,
        )
        await self.store.write(project_id, project)
        logger.info("Created project %s", project_id)
        return project

    async def get(self, project_id: str | None) -> dict[str, Any]:
        """The record plus issues computed without the snapshot comparison."""
        project = await self._require(project_id)
        return {
            "project": project.to_document(),
            "issues": [str(issue) for issue in evaluate(project, now=self._clock())],
        }

    async def list(self) -> list[dict[str, Any]]:
        now = self._clock()
        return [
            {
                "id": p.id,
                "goal": p.goal,
                "phase": p.phase,
                "nextAction": p.next_action,
                "updatedAt": p.updated_at,
                "issueCount": len(evaluate(p, now=now)),
            }
            for p in await self.store.list()
        ]

    async def update(self, project_id: str | None, data: Mapping[str, Any] | None) -> Project:
        """Apply the keys present in *data*; everything else is left untouched."""
        project = await self._require(project_id)
        payload = parse_payload(data)
        present = payload.model_fields_set

        for name in _REQUIRED_ON_UPDATE & present:
            if getattr(payload, name) is None:
                raise InvalidPayloadError(f"{name} cannot be null")
        if "goal" in present and not payload.goal:
            raise MissingFieldError("data.goal")

        moment = self._clock()
        now = isoformat(moment)
        for name in _SCALAR_FIELDS:
            if name in present:
                setattr(project, name, getattr(payload, name))
        if "last_action" in present:
            project.last_action = self._last_action(payload, now)
        if payload.log is not None:
            project.log.append(LogEntry(date=now, action=payload.log.action, result=payload.log.result))
        project.updated_at = advance_timestamp(project.updated_at, moment)

        await self.store.write(project.id, project)
        logger.info("Updated project %s (%s)", project.id, ", ".join(sorted(present)) or "touch")
        return project

    @staticmethod
    def _last_action(payload: ProjectPayload, now: str) -> LastAction | None:
        given = payload.last_action
        if given is None:
            return None
        return LastAction(
            description=given.description,
            result=given.result,
            date=given.date or now,
            evidence=[item.to_evidence() for item in given.evidence],
        )

    # ------------------------------------------------------------------
    # Audit queries
    # ------------------------------------------------------------------

    async def status(self) -> dict[str, Any]:
        """Per-project issues against the last persisted snapshot."""
        projects = await self.store.list()
        prior = await self.snapshots.load()
        now = self._clock()
        return {
            "projects": [
                {
                    "id": p.id,
                    "phase": p.phase,
                    "hypothesis": p.hypothesis,
                    "nextAction": p.next_action,
                    "issues": [str(issue) for issue in evaluate(p, prior, now=now)],
                }
                for p in projects
            ],
            "lastAudit": prior.timestamp if prior is not None else None,
        }

    async def trigger(self) -> dict[str, Any]:
        """Force one audit cycle and report completion."""
        if self.scheduler is not None:
            result = await self.scheduler.trigger_now()
            ok = self.scheduler.last_error is None
        elif self.auditor is not None:
            result = await self.auditor.run_cycle()
            ok = True
        else:
            raise PlannerError("No auditor configured")
        response: dict[str, Any] = {"ok": ok}
        if result is not None:
            response.update(
                projectCount=result.project_count,
                totalIssues=result.total_issues,
                criticalCount=result.critical_count,
                alert=result.alert_raised,
            )
        return response


async def dispatch(
    service: PlannerService,
    action: str,
    project_id: str | None = None,
    data: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Tool-call adapter: run *action* and return a JSON-ready result.

    ``PlannerError`` never escapes; it becomes ``{"error": message}``.
    """
    try:
        if action == "list":
            return {"projects": await service.list()}
        if action == "get":
            return await service.get(project_id)
        if action == "create":
            project = await service.create(project_id, data)
            return {"created": True, "project": project.to_document()}
        if action == "update":
            project = await service.update(project_id, data)
            return {"updated": True, "project": project.to_document()}
        if action == "status":
            return await service.status()
        if action == "audit":
            return await service.trigger()
    except PlannerError as exc:
        return {"error": str(exc)}
    return {"error": f"Unknown action: {action}"}
