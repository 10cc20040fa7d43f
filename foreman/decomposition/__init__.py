"""Work order decomposition - turning specifications into work order graphs.

This module provides the complete decomposition pipeline:
- Complexity estimation (specification -> batch plan)
- Batch planning (batch plan -> work orders)
- Dependency validation (work orders -> validated, auto-fixed graph)
"""

from foreman.decomposition.models import (
    Batch,
    BatchProgress,
    BatchStatus,
    ComplexityEstimate,
    DecompositionOutput,
    FixStrategy,
    FixType,
    IssueSeverity,
    IssueType,
    RiskLevel,
    TechnicalSpecification,
    ValidationIssue,
    ValidationResult,
    WorkOrder,
    bind_positional_dependencies,
    to_positional,
)
from foreman.decomposition.dependency_validator import (
    DependencyValidator,
    GenerativePrerequisiteSynthesizer,
)
from foreman.decomposition.estimator import ComplexityEstimator, create_default_batches
from foreman.decomposition.planner import BatchPlanner, build_context_summary

__all__ = [
    # Models
    "Batch",
    "BatchProgress",
    "BatchStatus",
    "ComplexityEstimate",
    "DecompositionOutput",
    "FixStrategy",
    "FixType",
    "IssueSeverity",
    "IssueType",
    "RiskLevel",
    "TechnicalSpecification",
    "ValidationIssue",
    "ValidationResult",
    "WorkOrder",
    "bind_positional_dependencies",
    "to_positional",
    # Estimation
    "ComplexityEstimator",
    "create_default_batches",
    # Planning
    "BatchPlanner",
    "build_context_summary",
    # Validation
    "DependencyValidator",
    "GenerativePrerequisiteSynthesizer",
]
