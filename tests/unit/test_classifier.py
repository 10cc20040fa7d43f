"""Unit tests for failure classification."""

import pytest

from foreman.core.errors import DiagnosticCheckError, GenerationError
from foreman.refinement.classifier import FailureClass, classify_failure, classify_refinement
from foreman.refinement.models import BreakingChange, Diagnostic, RefinementResult


def result(**overrides) -> RefinementResult:
    """Build a refinement result with sensible defaults."""
    values = {
        "content": "x",
        "refinement_count": 1,
        "initial_errors": 2,
        "final_errors": 0,
        "refinement_success": True,
    }
    values.update(overrides)
    return RefinementResult(**values)


class TestClassifyFailure:
    """Tests for classify_failure."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Cannot find module 'express'", FailureClass.DEPENDENCY_MISSING),
            ("error TS2322: Type 'x' is not assignable to type 'y'", FailureClass.COMPILE_ERROR),
            ("3 tests failed", FailureClass.TEST_FAIL),
            ("eslint found 4 problems", FailureClass.LINT_ERROR),
            ("Daily budget limit would be exceeded", FailureClass.BUDGET_EXCEEDED),
            ("Request timed out", FailureClass.TIMEOUT),
            ("merge conflict in routes.ts", FailureClass.ORCHESTRATION_ERROR),
            ("something odd happened", FailureClass.UNKNOWN),
        ],
    )
    def test_keywords(self, message: str, expected: FailureClass) -> None:
        """Test keyword classification of messages."""
        assert classify_failure(message) == expected

    def test_contract_flag_wins(self) -> None:
        """Test contract violations take precedence over message keywords."""
        assert (
            classify_failure("TS2304 compile failure", has_contract_violations=True)
            == FailureClass.CONTRACT_VIOLATION
        )

    def test_timeout_exception(self) -> None:
        """Test TimeoutError instances classify as timeouts."""
        assert classify_failure(TimeoutError()) == FailureClass.TIMEOUT

    def test_orchestration_exceptions(self) -> None:
        """Test framework errors without keywords are orchestration errors."""
        assert classify_failure(GenerationError("provider unavailable")) == (
            FailureClass.ORCHESTRATION_ERROR
        )
        assert classify_failure(DiagnosticCheckError("Checker not found: npx")) == (
            FailureClass.ORCHESTRATION_ERROR
        )

    def test_plain_exception(self) -> None:
        """Test unrecognized exceptions are unknown."""
        assert classify_failure(ValueError("bad value")) == FailureClass.UNKNOWN


class TestClassifyRefinement:
    """Tests for classify_refinement."""

    def test_converged(self) -> None:
        """Test a clean result has no failure class."""
        assert classify_refinement(result()) is None

    def test_remaining_errors(self) -> None:
        """Test leftover diagnostics are compile errors."""
        outcome = result(
            final_errors=1, error_details=[Diagnostic(code="TS2304", message="x")]
        )

        assert classify_refinement(outcome) == FailureClass.COMPILE_ERROR

    def test_timeout_diagnostic(self) -> None:
        """Test a timed out check is reported as a timeout."""
        outcome = result(final_errors=1, error_details=[Diagnostic(code="TIMEOUT", message="t")])

        assert classify_refinement(outcome) == FailureClass.TIMEOUT

    def test_remaining_violations(self) -> None:
        """Test leftover violations win over diagnostics."""
        outcome = result(
            final_errors=1,
            error_details=[Diagnostic(code="TS2304", message="x")],
            remaining_violations=[BreakingChange(type="field_removed")],
        )

        assert classify_refinement(outcome) == FailureClass.CONTRACT_VIOLATION
