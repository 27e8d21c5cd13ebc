"""Evidence verification against live system state.

Each evidence kind has one async handler:

- ``commit``:  ``git log --oneline -1 <hash>`` in the named repository
- ``url``:     HEAD request with redirects followed; any HTTP status passes
- ``file``:    the path is accessible right now
- ``command``: exit status 0 and, when ``expect`` is set, expected stdout

``EvidenceVerifier.verify`` never raises: timeouts, missing binaries and
handler bugs all come back as a failed ``Verdict``.  The evidence object is
updated in place; persisting the owning record is the caller's job.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shlex
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

import httpx

from barnacle.models import Evidence, EvidenceKind, VerificationRun
from barnacle.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

URL_TIMEOUT_SECONDS = 5.0
COMMAND_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class Verdict:
    passed: bool
    detail: str


@dataclass(frozen=True, slots=True)
class CommandOutput:
    returncode: int
    stdout: str
    stderr: str


class CommandTimeoutError(Exception):
    def __init__(self, argv: Sequence[str], timeout: float) -> None:
        super().__init__(f"timed out after {timeout:g}s: {shlex.join(argv)}")
        self.argv = list(argv)
        self.timeout = timeout


async def run_command(
    argv: Sequence[str],
    *,
    timeout: float,
    cwd: str | None = None,
) -> CommandOutput:
    """Run *argv* without a shell and collect its output.

    The child is killed if it outlives *timeout*.
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        raise CommandTimeoutError(argv, timeout) from None
    return CommandOutput(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


Handler = Callable[[Evidence], Awaitable[Verdict]]


class EvidenceVerifier:
    """Dispatches evidence items to per-kind checks.

    Args:
        url_timeout: Seconds allowed for a URL reachability check.
        command_timeout: Seconds allowed for ``command`` and ``commit`` checks.
        default_repo: Repository used for commits without ``repo``
            (defaults to the process working directory).
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        clock: Source of ``verifiedAt`` timestamps.
    """

    def __init__(
        self,
        *,
        url_timeout: float = URL_TIMEOUT_SECONDS,
        command_timeout: float = COMMAND_TIMEOUT_SECONDS,
        default_repo: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.url_timeout = url_timeout
        self.command_timeout = command_timeout
        self.default_repo = default_repo
        self._transport = transport
        self._clock = clock
        self._handlers: dict[str, Handler] = {
            EvidenceKind.COMMIT: self._check_commit,
            EvidenceKind.URL: self._check_url,
            EvidenceKind.FILE: self._check_file,
            EvidenceKind.COMMAND: self._check_command,
        }

    async def check(self, evidence: Evidence) -> Verdict:
        """Run the check for *evidence* without touching it."""
        handler = self._handlers.get(evidence.kind)
        if handler is None:
            return Verdict(False, f"Unknown evidence kind: {evidence.kind!r}")
        try:
            return await handler(evidence)
        except Exception as exc:
            return Verdict(False, f"{type(exc).__name__}: {exc}")

    async def verify(self, evidence: Evidence) -> Verdict:
        """Check *evidence* and record the verdict on it."""
        verdict = await self.check(evidence)
        evidence.verified = verdict.passed
        evidence.verified_at = isoformat(self._clock())
        evidence.verify_error = None if verdict.passed else verdict.detail
        logger.debug(
            "Evidence %s %r: %s (%s)",
            evidence.kind, evidence.value, "pass" if verdict.passed else "FAIL", verdict.detail,
        )
        return verdict

    async def verify_all(self, items: Sequence[Evidence]) -> VerificationRun:
        """Verify *items* one after another and summarise the run."""
        passed = failed = 0
        details: list[str] = []
        for item in items:
            verdict = await self.verify(item)
            if verdict.passed:
                passed += 1
            else:
                failed += 1
            mark = "✓" if verdict.passed else "✗"
            details.append(f"{item.kind} {item.value}: {mark} {verdict.detail}")
        return VerificationRun(
            date=isoformat(self._clock()),
            passed=passed,
            failed=failed,
            details=details,
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _check_commit(self, evidence: Evidence) -> Verdict:
        if not evidence.value or evidence.value.startswith("-"):
            return Verdict(False, f"Invalid commit reference: {evidence.value!r}")
        repo = os.path.expanduser(evidence.repo or self.default_repo or os.getcwd())
        try:
            out = await run_command(
                ["git", "-C", repo, "log", "--oneline", "-1", evidence.value],
                timeout=self.command_timeout,
            )
        except FileNotFoundError:
            return Verdict(False, "git executable not found")
        except CommandTimeoutError as exc:
            return Verdict(False, str(exc))
        line = _first_line(out.stdout)
        if out.returncode != 0:
            return Verdict(False, _first_line(out.stderr) or f"git exited with {out.returncode}")
        if not line:
            return Verdict(False, f"Commit {evidence.value} not found in {repo}")
        return Verdict(True, line)

    async def _check_url(self, evidence: Evidence) -> Verdict:
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.url_timeout,
                transport=self._transport,
            ) as client:
                resp = await client.head(evidence.value)
        except httpx.TimeoutException:
            return Verdict(False, f"Timed out after {self.url_timeout:g}s")
        except httpx.HTTPError as exc:
            return Verdict(False, f"{type(exc).__name__}: {exc}")
        return Verdict(True, f"HTTP {resp.status_code}")

    async def _check_file(self, evidence: Evidence) -> Verdict:
        path = os.path.expanduser(evidence.value)
        if await asyncio.to_thread(os.access, path, os.F_OK):
            return Verdict(True, f"{path} exists")
        return Verdict(False, f"{path} not found")

    async def _check_command(self, evidence: Evidence) -> Verdict:
        argv = shlex.split(evidence.value)
        if not argv:
            return Verdict(False, "Empty command")
        try:
            out = await run_command(argv, timeout=self.command_timeout)
        except FileNotFoundError:
            return Verdict(False, f"Command not found: {argv[0]}")
        except CommandTimeoutError as exc:
            return Verdict(False, str(exc))
        if out.returncode != 0:
            stderr = _first_line(out.stderr)
            suffix = f": {stderr}" if stderr else ""
            return Verdict(False, f"Exited with {out.returncode}{suffix}")
        if evidence.expect and evidence.expect not in out.stdout:
            return Verdict(False, f"Output does not contain {evidence.expect!r}")
        return Verdict(True, _first_line(out.stdout) or "Exited with 0")
