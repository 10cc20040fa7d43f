"""Failure classification for work order outcomes."""

from enum import Enum

from foreman.core.errors import (
    DiagnosticCheckError,
    GenerationError,
    RoutingError,
)
from foreman.refinement.models import RefinementResult


class FailureClass(str, Enum):
    """Structured failure categories."""

    COMPILE_ERROR = "compile_error"
    CONTRACT_VIOLATION = "contract_violation"
    TEST_FAIL = "test_fail"
    LINT_ERROR = "lint_error"
    ORCHESTRATION_ERROR = "orchestration_error"
    BUDGET_EXCEEDED = "budget_exceeded"
    DEPENDENCY_MISSING = "dependency_missing"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


# Checked in order; dependency terms come before compile terms because
# "cannot find module" would otherwise read as a compile error.
_KEYWORD_RULES: list[tuple[FailureClass, tuple[str, ...]]] = [
    (
        FailureClass.DEPENDENCY_MISSING,
        ("cannot find module", "module not found", "blocked by", "waiting for", "prerequisite"),
    ),
    (
        FailureClass.COMPILE_ERROR,
        ("typescript", "tsc", "type error", "cannot find name", "is not assignable to",
         "syntaxerror", "compile"),
    ),
    (FailureClass.CONTRACT_VIOLATION, ("contract violation", "breaking change")),
    (FailureClass.TEST_FAIL, ("test failed", "tests failed", "assertion", "pytest", "jest", "vitest")),
    (FailureClass.LINT_ERROR, ("eslint", "lint error", "prettier", "ruff", "flake8")),
    (FailureClass.BUDGET_EXCEEDED, ("budget", "cost limit", "spend limit", "emergency kill")),
    (FailureClass.TIMEOUT, ("timeout", "timed out", "deadline exceeded")),
    (FailureClass.ORCHESTRATION_ERROR, ("git", "worktree", "pull request", "merge conflict")),
]


def classify_failure(
    error: BaseException | str,
    has_contract_violations: bool = False,
) -> FailureClass:
    """Classify an error or error message.

    Example:
        >>> classify_failure("Cannot find module 'express'")
        <FailureClass.DEPENDENCY_MISSING: 'dependency_missing'>
    """
    if has_contract_violations:
        return FailureClass.CONTRACT_VIOLATION

    if isinstance(error, TimeoutError):
        return FailureClass.TIMEOUT

    message = str(error).lower()
    for failure_class, keywords in _KEYWORD_RULES:
        if any(kw in message for kw in keywords):
            return failure_class

    if isinstance(error, (GenerationError, RoutingError, DiagnosticCheckError)):
        return FailureClass.ORCHESTRATION_ERROR

    return FailureClass.UNKNOWN


def classify_refinement(result: RefinementResult) -> FailureClass | None:
    """Classify a refinement that did not converge. None when it did."""
    if result.remaining_violations:
        return FailureClass.CONTRACT_VIOLATION
    if any(d.code == "TIMEOUT" for d in result.error_details):
        return FailureClass.TIMEOUT
    if result.final_errors:
        return FailureClass.COMPILE_ERROR
    return None
