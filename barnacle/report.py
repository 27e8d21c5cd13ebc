"""Human readable audit report."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from barnacle.models import Project
from barnacle.rules import Issue

TITLE = "📋 **Planner Audit**"


def format_report(projects: Sequence[Project], issues: Mapping[str, Sequence[Issue]]) -> str:
    """Render one block per project followed by a one-line total."""
    if not projects:
        return f"{TITLE}\nNo projects found."

    lines = [TITLE, ""]
    total = 0
    for project in projects:
        found = issues.get(project.id, ())
        total += len(found)
        status = "🔴" if found else "✅"
        lines.append(f"{status} **{project.id}** ({project.phase})")
        if project.next_action:
            lines.append(f"   Next: {project.next_action}")
        lines.extend(f"   {issue}" for issue in found)
        lines.append("")

    lines.append(f"_{total} issue(s) found._" if total else "_All projects on track._")
    return "\n".join(lines)
