"""Pydantic models for specification decomposition.

This module defines the data structures shared by the complexity estimator,
the batch planner and the dependency validator: the immutable technical
specification, work orders, batches, estimates and validation reports.

Work orders reference each other through stable ids assigned at creation
time. Decomposition calls return positional indices ("0", "1", ...), which
are bound to ids once with :func:`bind_positional_dependencies` and turned
back into indices only when serializing with :func:`to_positional`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_work_order_id() -> str:
    """Generate a stable opaque work order id."""
    return f"wo-{uuid4().hex[:12]}"


def parse_index(reference: str) -> int | None:
    """Parse a positional dependency token.

    Returns:
        The integer value (possibly negative), or None if the token is not
        an integer.
    """
    try:
        return int(str(reference).strip())
    except ValueError:
        return None


# =============================================================================
# ENUMS
# =============================================================================


class RiskLevel(str, Enum):
    """Risk level of a work order."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueType(str, Enum):
    """Kind of problem found in a work order graph."""

    MISSING_DEPENDENCY = "missing_dependency"
    CIRCULAR_DEPENDENCY = "circular_dependency"
    DUPLICATE_FILES = "duplicate_files"
    INVALID_REFERENCE = "invalid_reference"


class IssueSeverity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"


class FixType(str, Enum):
    """Kind of corrective action on a work order graph."""

    INSERT = "insert"
    RENUMBER = "renumber"
    SPLIT = "split"
    MERGE = "merge"
    REORDER = "reorder"


class BatchStatus(str, Enum):
    """Progress state of a decomposition batch."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# SPECIFICATION
# =============================================================================


class TechnicalSpecification(BaseModel):
    """High-level technical specification handed to the decomposer.

    Immutable once constructed.

    Example:
        >>> spec = TechnicalSpecification(
        ...     feature_name="OAuth login",
        ...     objectives=["Google and GitHub sign in"],
        ...     constraints=["No new database"],
        ...     acceptance_criteria=["User can sign in with Google"],
        ... )
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    feature_name: str = Field(
        ...,
        min_length=1,
        description="Name of the feature to build",
    )
    objectives: list[str] = Field(
        default_factory=list,
        description="Ordered objectives",
    )
    constraints: list[str] = Field(
        default_factory=list,
        description="Ordered constraints",
    )
    acceptance_criteria: list[str] = Field(
        default_factory=list,
        description="Ordered acceptance criteria",
    )
    budget_estimate: float | None = Field(
        default=None,
        ge=0,
        description="Optional budget in USD",
    )
    time_estimate: str | None = Field(
        default=None,
        description="Optional timeline, free text",
    )


# =============================================================================
# WORK ORDERS
# =============================================================================


class WorkOrder(BaseModel):
    """One atomic implementation task.

    ``dependencies`` holds ids of other work orders. A reference that could
    not be bound to an id (an out-of-range index, a malformed token) is kept
    verbatim so the dependency validator can report it.

    Example:
        >>> wo = WorkOrder(
        ...     title="Create OAuth provider config",
        ...     files_in_scope=["config/oauth.ts"],
        ...     context_budget_estimate=800,
        ... )
        >>> wo.id.startswith("wo-")
        True
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(
        default_factory=new_work_order_id,
        description="Stable opaque identifier",
    )
    title: str = Field(
        ...,
        min_length=1,
        description="Short title",
    )
    description: str = Field(
        default="",
        description="What to implement",
    )
    acceptance_criteria: list[str] = Field(
        default_factory=list,
        description="Ordered acceptance criteria",
    )
    files_in_scope: list[str] = Field(
        default_factory=list,
        description="Files this work order owns",
    )
    context_budget_estimate: int = Field(
        default=2000,
        ge=0,
        description="Estimated context/token budget",
    )
    risk_level: RiskLevel = Field(
        default=RiskLevel.LOW,
        description="Risk assessment",
    )
    dependencies: list[str] = Field(
        default_factory=list,
        description="Ids (or unbound raw references) of prerequisite work orders",
    )

    @field_validator("dependencies", mode="before")
    @classmethod
    def coerce_references(cls, v: Any) -> list[str]:
        """Accept integers and strings as references."""
        if v is None:
            return []
        return [str(item).strip() for item in v]

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk(cls, v: Any) -> Any:
        """Lower-case risk levels coming from model output."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def primary_file(self) -> str | None:
        """First file in scope, if any."""
        return self.files_in_scope[0] if self.files_in_scope else None


def bind_positional_dependencies(work_orders: list[WorkOrder]) -> None:
    """Replace positional index references with work order ids in place.

    Indices are resolved against the list as given. Tokens that are not a
    valid index into the list are left untouched.
    """
    for work_order in work_orders:
        bound: list[str] = []
        for reference in work_order.dependencies:
            index = parse_index(reference)
            if index is not None and 0 <= index < len(work_orders):
                bound.append(work_orders[index].id)
            else:
                bound.append(reference)
        work_order.dependencies = bound


def positional_dependencies(
    work_order: WorkOrder,
    index_by_id: dict[str, int],
) -> list[str]:
    """Translate a work order's id references into positional indices.

    Unbound references are dropped; they are reported by the validator.
    """
    return [
        str(index_by_id[ref]) for ref in work_order.dependencies if ref in index_by_id
    ]


def to_positional(work_orders: list[WorkOrder]) -> list[dict[str, Any]]:
    """Serialize work orders with positional dependency indices."""
    index_by_id = {wo.id: i for i, wo in enumerate(work_orders)}
    records = []
    for work_order in work_orders:
        record = work_order.model_dump(mode="json")
        record["dependencies"] = positional_dependencies(work_order, index_by_id)
        records.append(record)
    return records


# =============================================================================
# PLANNING
# =============================================================================


class Batch(BaseModel):
    """A named subdivision of a large decomposition job."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    description: str = ""
    estimated_work_orders: int = Field(default=0, ge=0)
    focus_areas: list[str] = Field(default_factory=list)


class ComplexityEstimate(BaseModel):
    """Result of estimating how large a decomposition will be."""

    total_work_orders: int = Field(..., ge=0)
    requires_batching: bool = False
    batches: list[Batch] = Field(default_factory=list)
    reasoning: str = ""
    estimated_cost: float = Field(default=0.0, ge=0)
    estimated_time_seconds: int = Field(default=0, ge=0)


@dataclass
class BatchProgress:
    """Progress notification for one batch of a batched decomposition."""

    batch_number: int
    total_batches: int
    batch_name: str
    status: BatchStatus
    work_orders_generated: int = 0


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationIssue(BaseModel):
    """A problem found in a work order graph."""

    type: IssueType
    severity: IssueSeverity
    work_order_ids: list[str] = Field(default_factory=list)
    description: str
    auto_fixable: bool = False
    resolved: bool = False


class FixStrategy(BaseModel):
    """A proposed (and possibly applied) correction."""

    type: FixType
    description: str
    target_work_orders: list[str] = Field(default_factory=list)
    new_work_orders: list[WorkOrder] = Field(default_factory=list)
    applied: bool = False


class ValidationResult(BaseModel):
    """Outcome of validating a work order graph."""

    valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    fix_strategies: list[FixStrategy] = Field(default_factory=list)
    auto_fixed: bool = False

    @property
    def errors(self) -> list[ValidationIssue]:
        """Issues that block the graph from being used."""
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        """Non-blocking issues."""
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    @property
    def blocking(self) -> list[ValidationIssue]:
        """Errors that auto-fix did not resolve."""
        return [i for i in self.errors if not i.resolved]

    def blocked_work_order_ids(self) -> dict[str, str]:
        """Map each work order named by a blocking issue to its description."""
        blocked: dict[str, str] = {}
        for issue in self.blocking:
            for wo_id in issue.work_order_ids:
                blocked.setdefault(wo_id, issue.description)
        return blocked


# =============================================================================
# OUTPUT
# =============================================================================


class DecompositionOutput(BaseModel):
    """Validated decomposition of one specification."""

    work_orders: list[WorkOrder] = Field(default_factory=list)
    decomposition_doc: str = ""
    total_estimated_cost: float = 0.0
    estimate: ComplexityEstimate | None = None
    validation: ValidationResult | None = None
    warnings: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain data with positional dependency indices."""
        return {
            "work_orders": to_positional(self.work_orders),
            "decomposition_doc": self.decomposition_doc,
            "total_estimated_cost": self.total_estimated_cost,
            "estimate": self.estimate.model_dump(mode="json") if self.estimate else None,
            "validation": (
                self.validation.model_dump(mode="json") if self.validation else None
            ),
            "warnings": self.warnings,
        }
