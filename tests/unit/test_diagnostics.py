"""Unit tests for diagnostic parsing and the external checker."""

from pathlib import Path

import pytest

from foreman.core.config import Settings
from foreman.core.errors import DiagnosticCheckError
from foreman.refinement.diagnostics import (
    TIMEOUT_CODE,
    UNKNOWN_CODE,
    DiagnosticChecker,
    format_diagnostic_summary,
    parse_diagnostics,
)
from foreman.refinement.models import Diagnostic


class TestParseDiagnostics:
    """Tests for parse_diagnostics."""

    def test_tsc_format(self) -> None:
        """Test the parenthesized TypeScript format."""
        output = (
            "src/app.ts(12,5): error TS2304: Cannot find name 'foo'.\n"
            "src/app.ts(20,1): error TS2322: Type 'string' is not assignable to type 'number'.\n"
        )

        diagnostics = parse_diagnostics(output)

        assert len(diagnostics) == 2
        assert diagnostics[0] == Diagnostic(
            code="TS2304",
            message="Cannot find name 'foo'.",
            line=12,
            column=5,
            file="src/app.ts",
        )
        assert diagnostics[1].code == "TS2322"

    def test_colon_format(self) -> None:
        """Test file:line:col: error: message [code]."""
        diagnostics = parse_diagnostics(
            'src/app.py:12:5: error: Name "foo" is not defined  [name-defined]'
        )

        assert len(diagnostics) == 1
        assert diagnostics[0].code == "name-defined"
        assert diagnostics[0].line == 12
        assert diagnostics[0].column == 5
        assert diagnostics[0].message == 'Name "foo" is not defined'

    def test_colon_format_without_column_or_code(self) -> None:
        """Test missing column and code fall back to defaults."""
        diagnostics = parse_diagnostics("lib/x.py:3: error: bad thing")

        assert diagnostics[0].column == 0
        assert diagnostics[0].code == "error"

    def test_noise_ignored(self) -> None:
        """Test non-diagnostic lines are skipped."""
        assert parse_diagnostics("Found 0 errors.\n\nwatching for changes") == []

    def test_summary_lines(self) -> None:
        """Test summary rendering."""
        summary = format_diagnostic_summary(
            [Diagnostic(code="TS2304", message="Cannot find name 'x'.", line=3, column=7)]
        )

        assert summary == "- Line 3, Column 7: TS2304 - Cannot find name 'x'."


class TestDiagnosticChecker:
    """Tests for running the external checker."""

    @pytest.mark.asyncio
    async def test_clean_exit(self) -> None:
        """Test exit code zero means no diagnostics."""
        checker = DiagnosticChecker(["true"])

        assert await checker.check("const a = 1;") == []

    @pytest.mark.asyncio
    async def test_parses_failing_output(self) -> None:
        """Test checker output is parsed on a non-zero exit."""
        checker = DiagnosticChecker(
            ["sh", "-c", "echo \"$1(1,2): error TS2304: Cannot find name 'y'.\"; exit 1", "sh"]
        )

        diagnostics = await checker.check("y;")

        assert len(diagnostics) == 1
        assert diagnostics[0].code == "TS2304"
        assert diagnostics[0].file.endswith("artifact.ts")

    @pytest.mark.asyncio
    async def test_artifact_written_to_file(self, tmp_path: Path) -> None:
        """Test the checker sees the artifact content."""
        copy = tmp_path / "seen.ts"
        checker = DiagnosticChecker(["sh", "-c", f'cp "$1" {copy}', "sh"])

        await checker.check("export const x = 1;")

        assert copy.read_text() == "export const x = 1;"

    @pytest.mark.asyncio
    async def test_unparseable_failure(self) -> None:
        """Test a failing run with unrecognized output yields one UNKNOWN diagnostic."""
        checker = DiagnosticChecker(["sh", "-c", "echo boom; exit 2", "sh"])

        diagnostics = await checker.check("x")

        assert len(diagnostics) == 1
        assert diagnostics[0].code == UNKNOWN_CODE
        assert "code 2: boom" in diagnostics[0].message

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_timeout(self) -> None:
        """Test a hung checker is killed and reported as a timeout."""
        checker = DiagnosticChecker(["sh", "-c", "exec sleep 5", "sh"], timeout=0.2)

        diagnostics = await checker.check("x")

        assert len(diagnostics) == 1
        assert diagnostics[0].code == TIMEOUT_CODE

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        """Test a checker that cannot start raises DiagnosticCheckError."""
        checker = DiagnosticChecker(["foreman-no-such-checker-binary"])

        with pytest.raises(DiagnosticCheckError, match="Checker not found"):
            await checker.check("x")

    def test_empty_command(self) -> None:
        """Test an empty command is rejected."""
        with pytest.raises(ValueError):
            DiagnosticChecker("")

    def test_from_settings(self) -> None:
        """Test the command string is split into argv."""
        checker = DiagnosticChecker.from_settings(
            Settings(foreman_diagnostic_command="npx tsc --noEmit", foreman_diagnostic_timeout=5)
        )

        assert checker.command == ["npx", "tsc", "--noEmit"]
        assert checker.timeout == 5
        assert checker.suffix == ".ts"
