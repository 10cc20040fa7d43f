"""Self-refinement - driving generated artifacts to a clean state.

- Diagnostic parsing and external checker invocation
- Deterministic sanitizer
- Multi-cycle refinement loop
- Failure classification
"""

from foreman.refinement.classifier import FailureClass, classify_failure, classify_refinement
from foreman.refinement.diagnostics import (
    DiagnosticChecker,
    format_diagnostic_summary,
    parse_diagnostics,
)
from foreman.refinement.models import (
    BreakingChange,
    ContractReport,
    ContractRiskLevel,
    Diagnostic,
    RefinementCycle,
    RefinementResult,
)
from foreman.refinement.refiner import SelfRefiner, build_refinement_prompt, strategy_for_cycle
from foreman.refinement.sanitizer import SanitizerSummary, sanitize

__all__ = [
    # Models
    "BreakingChange",
    "ContractReport",
    "ContractRiskLevel",
    "Diagnostic",
    "RefinementCycle",
    "RefinementResult",
    # Diagnostics
    "DiagnosticChecker",
    "format_diagnostic_summary",
    "parse_diagnostics",
    # Sanitizer
    "SanitizerSummary",
    "sanitize",
    # Refinement
    "SelfRefiner",
    "build_refinement_prompt",
    "strategy_for_cycle",
    # Classification
    "FailureClass",
    "classify_failure",
    "classify_refinement",
]
