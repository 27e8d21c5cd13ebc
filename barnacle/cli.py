"""Command line entry point for the planner.

Usage:
    python -m barnacle create ship-x --data '{"goal": "Ship feature X"}'
    python -m barnacle update ship-x --data '{"nextAction": "write tests"}'
    python -m barnacle get ship-x
    python -m barnacle list
    python -m barnacle status
    python -m barnacle audit                # run one cycle now
    python -m barnacle run --interval 15    # audit every 15 minutes until Ctrl-C
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from barnacle.config import BarnacleSettings, get_settings
from barnacle.exceptions import BarnacleError
from barnacle.service import PlannerService, dispatch

logger = logging.getLogger(__name__)


def _load_data(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("--data must be a JSON object")
    return data


def _settings_from_args(args: argparse.Namespace) -> BarnacleSettings:
    settings = get_settings()
    overrides: dict[str, Any] = {}
    if args.projects_dir:
        overrides["projects_dir"] = Path(args.projects_dir)
    if args.state_dir:
        overrides["state_dir"] = Path(args.state_dir)
    if getattr(args, "interval", None):
        overrides["audit_interval_minutes"] = args.interval
    return settings.model_copy(update=overrides) if overrides else settings


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def _run_forever(service: PlannerService) -> None:
    if service.scheduler is None:
        raise BarnacleError("No scheduler configured")
    await service.scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        service.scheduler.stop()


def cmd_action(args: argparse.Namespace) -> int:
    try:
        data = _load_data(getattr(args, "data", None))
    except (OSError, ValueError) as exc:
        print(f"ERROR: bad --data: {exc}", file=sys.stderr)
        return 2
    service = PlannerService.from_settings(_settings_from_args(args))
    result = asyncio.run(dispatch(service, args.command, getattr(args, "id", None), data))
    _print(result)
    return 1 if "error" in result else 0


def cmd_run(args: argparse.Namespace) -> int:
    service = PlannerService.from_settings(_settings_from_args(args))
    try:
        asyncio.run(_run_forever(service))
    except KeyboardInterrupt:
        pass
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="barnacle", description="Hypothesis planner and auditor")
    parser.add_argument("--projects-dir", help="directory holding <id>.json records")
    parser.add_argument("--state-dir", help="directory for snapshot, report and alert files")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("create", "update"):
        p = sub.add_parser(name, help=f"{name} a project")
        p.add_argument("id")
        p.add_argument("--data", help="JSON object, or @path to a JSON file")
        p.set_defaults(func=cmd_action)

    p = sub.add_parser("get", help="show a project and its live issues")
    p.add_argument("id")
    p.set_defaults(func=cmd_action)

    for name, help_text in (
        ("list", "list projects with issue counts"),
        ("status", "issues against the last audit snapshot"),
        ("audit", "run one audit cycle now"),
    ):
        sub.add_parser(name, help=help_text).set_defaults(func=cmd_action)

    p = sub.add_parser("run", help="run the audit scheduler in the foreground")
    p.add_argument("--interval", type=int, help="minutes between cycles")
    p.set_defaults(func=cmd_run)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
