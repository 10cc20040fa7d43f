"""
Diagnostic parser and checker.

Parses compiler/type-checker output into :class:`Diagnostic` records and
runs the external checker on generated artifacts. Two output styles are
understood::

    src/app.ts(12,5): error TS2304: Cannot find name 'foo'.
    src/app.py:12:5: error: Name "foo" is not defined  [name-defined]
"""

import asyncio
import re
import shlex
import tempfile
from pathlib import Path

from loguru import logger

from foreman.core.config import Settings
from foreman.core.errors import DiagnosticCheckError
from foreman.refinement.models import Diagnostic

TSC_PATTERN = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\):\s+error\s+(?P<code>TS\d+):\s+(?P<message>.+)$"
)
COLON_PATTERN = re.compile(
    r"^(?P<file>[^:\s][^:]*):(?P<line>\d+):(?:(?P<column>\d+):)?\s*error:\s*"
    r"(?P<message>.+?)(?:\s+\[(?P<code>[\w-]+)\])?$"
)

TIMEOUT_CODE = "TIMEOUT"
UNKNOWN_CODE = "UNKNOWN"


def parse_diagnostics(output: str) -> list[Diagnostic]:
    """Parse checker output into diagnostics.

    Lines that match neither format are ignored.

    Example:
        >>> parse_diagnostics("a.ts(3,7): error TS2304: Cannot find name 'x'.")
        [Diagnostic(code='TS2304', message="Cannot find name 'x'.", line=3, column=7, file='a.ts')]
    """
    diagnostics = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = TSC_PATTERN.match(line)
        if match:
            diagnostics.append(
                Diagnostic(
                    code=match["code"],
                    message=match["message"].strip(),
                    line=int(match["line"]),
                    column=int(match["column"]),
                    file=match["file"],
                )
            )
            continue

        match = COLON_PATTERN.match(line)
        if match:
            diagnostics.append(
                Diagnostic(
                    code=match["code"] or "error",
                    message=match["message"].strip(),
                    line=int(match["line"]),
                    column=int(match["column"] or 0),
                    file=match["file"],
                )
            )

    return diagnostics


def format_diagnostic_summary(diagnostics: list[Diagnostic]) -> str:
    """One summary line per diagnostic."""
    return "\n".join(d.summary_line() for d in diagnostics)


class DiagnosticChecker:
    """
    Run an external static checker on an artifact.

    The artifact is written to a temporary file whose path is appended to
    ``command``. Exit code zero means no diagnostics. A checker that runs
    past ``timeout`` is killed and reported as a single TIMEOUT diagnostic.

    Example:
        >>> checker = DiagnosticChecker("npx tsc --noEmit", suffix=".ts")
        >>> await checker.check("const x: number = 'a';")
        [Diagnostic(code='TS2322', ...)]
    """

    def __init__(
        self,
        command: str | list[str],
        suffix: str = ".ts",
        timeout: float = 60.0,
        workdir: str | Path | None = None,
    ) -> None:
        """
        Initialize the checker.

        Args:
            command: Checker command line (string or argv list).
            suffix: Suffix of the transient artifact file.
            timeout: Hard timeout in seconds.
            workdir: Working directory for the checker process.
        """
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("Diagnostic command must not be empty")
        self.suffix = suffix
        self.timeout = timeout
        self.workdir = Path(workdir) if workdir else None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DiagnosticChecker":
        """Build a checker from configuration."""
        return cls(
            settings.foreman_diagnostic_command,
            suffix=settings.foreman_diagnostic_suffix,
            timeout=settings.foreman_diagnostic_timeout,
        )

    async def check(self, artifact: str) -> list[Diagnostic]:
        """
        Check ``artifact`` and return its diagnostics.

        Raises:
            DiagnosticCheckError: If the checker executable cannot be started.
        """
        with tempfile.TemporaryDirectory(prefix="foreman-check-") as tmp:
            path = Path(tmp) / f"artifact{self.suffix}"
            path.write_text(artifact, encoding="utf-8")
            return await self._run(path)

    async def _run(self, path: Path) -> list[Diagnostic]:
        command = [*self.command, str(path)]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.workdir) if self.workdir else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise DiagnosticCheckError(f"Checker not found: {self.command[0]}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"Diagnostic check timed out after {self.timeout}s")
            return [
                Diagnostic(
                    code=TIMEOUT_CODE,
                    message=f"Diagnostic check timed out after {self.timeout}s",
                )
            ]

        if process.returncode == 0:
            return []

        output = stdout.decode("utf-8", errors="replace") + "\n" + stderr.decode(
            "utf-8", errors="replace"
        )
        diagnostics = parse_diagnostics(output)
        if not diagnostics:
            first_line = next((line for line in output.splitlines() if line.strip()), "")
            diagnostics = [
                Diagnostic(
                    code=UNKNOWN_CODE,
                    message=(
                        f"Checker exited with code {process.returncode}: "
                        f"{first_line.strip()[:200]}"
                    ),
                )
            ]

        logger.debug(f"Diagnostic check found {len(diagnostics)} errors")
        return diagnostics
