"""Heuristic audit rules for a single project.

``evaluate`` applies every rule in ``RULES`` (no short-circuiting) and
returns the issues in rule order.  The order is part of the output format:
reports and tests rely on it.

All rules are warnings except EVIDENCE_FAILED, the only critical finding
and the only one that raises an alert.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from barnacle.models import AuditSnapshot, Project
from barnacle.timeutil import parse_timestamp, utcnow

STALE_AFTER = timedelta(days=2)


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def marker(self) -> str:
        return "🚨" if self is Severity.CRITICAL else "⚠️"


@dataclass(frozen=True, slots=True)
class Issue:
    code: str
    message: str
    severity: Severity = Severity.WARNING

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def __str__(self) -> str:
        return f"{self.severity.marker} {self.message}"


@dataclass(frozen=True, slots=True)
class RuleContext:
    now: datetime
    prior: AuditSnapshot | None


Rule = Callable[[Project, RuleContext], Issue | None]


def _blank(value: str | None) -> bool:
    return not (value or "").strip()


# ---------------------------------------------------------------------------
# Rules, in report order
# ---------------------------------------------------------------------------


def check_stale(project: Project, ctx: RuleContext) -> Issue | None:
    updated = parse_timestamp(project.updated_at)
    if updated is None:
        return None
    elapsed = ctx.now - updated
    if elapsed <= STALE_AFTER:
        return None
    days = elapsed // timedelta(days=1)
    return Issue("STALE", f"STALE: no updates in {days} days")


def check_next_action(project: Project, ctx: RuleContext) -> Issue | None:
    if _blank(project.next_action):
        return Issue("NO_NEXT_ACTION", "NO NEXT ACTION")
    return None


def check_hypothesis(project: Project, ctx: RuleContext) -> Issue | None:
    if _blank(project.hypothesis):
        return Issue("NO_HYPOTHESIS", "NO HYPOTHESIS")
    return None


def check_limitations(project: Project, ctx: RuleContext) -> Issue | None:
    if not project.limitations:
        return Issue("NO_LIMITATIONS", "NO LIMITATIONS")
    return None


def check_outcome(project: Project, ctx: RuleContext) -> Issue | None:
    if _blank(project.outcome):
        return Issue("NO_OUTCOME", "NO OUTCOME")
    return None


def check_kpis(project: Project, ctx: RuleContext) -> Issue | None:
    if not project.kpis:
        return Issue("NO_KPIS", "NO KPIs")
    return None


def check_review_due(project: Project, ctx: RuleContext) -> Issue | None:
    due = parse_timestamp(project.review_by)
    if due is not None and due < ctx.now:
        return Issue("OVERDUE_REVIEW", f"OVERDUE REVIEW: was due {project.review_by}")
    return None


def check_progress(project: Project, ctx: RuleContext) -> Issue | None:
    # Only updatedAt and nextAction are compared.
    if ctx.prior is None:
        return None
    prev = ctx.prior.projects.get(project.id)
    if prev is None:
        return None
    if prev.updated_at == project.updated_at and prev.next_action == project.next_action:
        return Issue("NO_PROGRESS", "NO PROGRESS since last audit")
    return None


def check_log(project: Project, ctx: RuleContext) -> Issue | None:
    if not project.log:
        return Issue("EMPTY_LOG", "EMPTY LOG")
    return None


def check_last_result(project: Project, ctx: RuleContext) -> Issue | None:
    if project.last_action is not None and _blank(project.last_action.result):
        return Issue("NO_RESULT", "LAST ACTION HAS NO RESULT")
    return None


def check_evidence_present(project: Project, ctx: RuleContext) -> Issue | None:
    if project.last_action is not None and not project.last_action.evidence:
        return Issue("NO_EVIDENCE", "NO EVIDENCE for last action")
    return None


def check_evidence_failed(project: Project, ctx: RuleContext) -> Issue | None:
    failed = sum(1 for item in project.evidence if item.verified is False)
    if failed:
        return Issue(
            "EVIDENCE_FAILED",
            f"EVIDENCE FAILED: {failed} item(s) could not be verified",
            Severity.CRITICAL,
        )
    return None


RULES: tuple[Rule, ...] = (
    check_stale,
    check_next_action,
    check_hypothesis,
    check_limitations,
    check_outcome,
    check_kpis,
    check_review_due,
    check_progress,
    check_log,
    check_last_result,
    check_evidence_present,
    check_evidence_failed,
)


def evaluate(
    project: Project,
    prior: AuditSnapshot | None = None,
    *,
    now: datetime | None = None,
) -> list[Issue]:
    """Run every rule against *project*.

    Args:
        project: The record to audit.
        prior: Snapshot from the previous cycle, or ``None`` to skip the
            no-progress comparison (first cycle, ad-hoc queries).
        now: Evaluation time; defaults to the current UTC time.
    """
    ctx = RuleContext(now=now or utcnow(), prior=prior)
    issues: list[Issue] = []
    for rule in RULES:
        issue = rule(project, ctx)
        if issue is not None:
            issues.append(issue)
    return issues


def critical_issues(issues: Sequence[Issue]) -> list[Issue]:
    return [issue for issue in issues if issue.is_critical]
