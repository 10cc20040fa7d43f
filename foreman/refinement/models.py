"""Pydantic models for self-refinement: diagnostics, contracts and results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Diagnostic(BaseModel):
    """One error reported by a static checker."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    line: int = 0
    column: int = 0
    file: str | None = None

    def summary_line(self) -> str:
        """Render as ``- Line L, Column C: CODE - message``."""
        return f"- Line {self.line}, Column {self.column}: {self.code} - {self.message}"


class ContractRiskLevel(str, Enum):
    """Overall risk of the contract changes in an artifact."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BreakingChange(BaseModel):
    """A change that breaks a versioned interface or schema."""

    model_config = ConfigDict(frozen=True)

    type: str
    severity: str = "high"
    field_path: str = ""
    old_value: str | None = None
    new_value: str | None = None
    impact_description: str = ""
    migration_suggestion: str | None = None


class ContractReport(BaseModel):
    """Answer from the contract boundary for one artifact."""

    violations: list[BreakingChange] = Field(default_factory=list)
    risk_level: ContractRiskLevel = ContractRiskLevel.LOW


class RefinementCycle(BaseModel):
    """History entry for one refinement cycle."""

    model_config = ConfigDict(frozen=True)

    cycle: int
    errors_before: int
    errors_after: int
    improvement_rate: float
    prompt_strategy: str
    contract_violations: int | None = None
    cost_multiplier: float = 1.0


class RefinementResult(BaseModel):
    """Outcome of refining one artifact. Immutable once returned."""

    model_config = ConfigDict(frozen=True)

    content: str
    refinement_count: int
    initial_errors: int
    final_errors: int
    refinement_success: bool
    error_details: list[Diagnostic] = Field(default_factory=list)
    contract_violations: list[int] | None = None
    remaining_violations: list[BreakingChange] = Field(default_factory=list)
    cycle_history: list[RefinementCycle] = Field(default_factory=list)
    sanitizer_changes: list[str] = Field(default_factory=list)
    cancelled: bool = False
    abort_reason: str | None = None

    @property
    def converged(self) -> bool:
        """True when no diagnostics or contract violations remain."""
        return self.final_errors == 0 and not self.remaining_violations
