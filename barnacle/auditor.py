"""One audit cycle: verify evidence, evaluate rules, persist state.

Order of a cycle:

1. list every project (an empty store makes the cycle a no-op, so "never
   ran" stays distinguishable from "ran against nothing");
2. load the previous snapshot;
3. verify the evidence attached to each project's last action, append a
   verification run and write the project back;
4. evaluate the rules against the previous snapshot and build the report;
5. write the new snapshot;
6. write the report, even when nothing was found;
7. write the alert file if any critical issue exists, otherwise remove it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from barnacle.models import Project, VerificationRun
from barnacle.report import format_report
from barnacle.rules import Issue, critical_issues, evaluate
from barnacle.snapshot import SnapshotStore
from barnacle.store import ProjectStore
from barnacle.timeutil import isoformat, utcnow
from barnacle.verifier import EvidenceVerifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleResult:
    """Outcome of one completed audit cycle."""

    timestamp: str
    project_count: int
    total_issues: int
    report: str
    issues: dict[str, list[Issue]] = field(default_factory=dict)
    critical: dict[str, list[Issue]] = field(default_factory=dict)
    verified_projects: int = 0
    alert_raised: bool = False

    @property
    def critical_count(self) -> int:
        return sum(len(found) for found in self.critical.values())


class Auditor:
    """Runs audit cycles over a project store."""

    def __init__(
        self,
        store: ProjectStore,
        snapshots: SnapshotStore,
        verifier: EvidenceVerifier,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.snapshots = snapshots
        self.verifier = verifier
        self._clock = clock

    async def verify_project(self, project: Project) -> VerificationRun | None:
        """Verify the evidence on *project*'s last action and persist it.

        ``updatedAt`` is left alone: verdicts are the auditor's bookkeeping,
        not progress on the project.
        """
        if not project.evidence:
            return None
        run = await self.verifier.verify_all(project.evidence)
        project.verifications.append(run)
        await self.store.write(project.id, project)
        if run.failed:
            logger.info(
                "Evidence for %s: %d passed, %d failed", project.id, run.passed, run.failed
            )
        return run

    async def run_cycle(self) -> CycleResult | None:
        projects = await self.store.list()
        if not projects:
            logger.info("Audit skipped: no projects")
            return None

        prior = await self.snapshots.load()

        verified = 0
        for project in projects:
            if await self.verify_project(project) is not None:
                verified += 1

        now = self._clock()
        all_issues: dict[str, list[Issue]] = {}
        critical: dict[str, list[Issue]] = {}
        for project in projects:
            found = evaluate(project, prior, now=now)
            all_issues[project.id] = found
            crit = critical_issues(found)
            if crit:
                critical[project.id] = crit
        total = sum(len(found) for found in all_issues.values())
        report = format_report(projects, all_issues)

        await self.snapshots.capture(projects, now)

        result = CycleResult(
            timestamp=isoformat(now),
            project_count=len(projects),
            total_issues=total,
            report=report,
            issues=all_issues,
            critical=critical,
            verified_projects=verified,
        )
        await self.snapshots.write_report(
            timestamp=result.timestamp,
            report=report,
            total_issues=total,
            critical_count=result.critical_count,
            project_count=len(projects),
        )

        if critical:
            await self.snapshots.write_alert(
                timestamp=result.timestamp,
                critical=[
                    {"id": pid, "issues": [str(issue) for issue in found]}
                    for pid, found in critical.items()
                ],
                report=report,
            )
            result.alert_raised = True
            logger.warning(
                "Audit alert: %d critical issue(s) in %s",
                result.critical_count, ", ".join(critical),
            )
        elif await self.snapshots.clear_alert():
            logger.info("Audit alert cleared")

        logger.info("Audit: %d projects, %d issues", len(projects), total)
        return result
