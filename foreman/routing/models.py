"""Pydantic models for proposer routing.

Proposer profiles are configuration and never change after loading.
Routing decisions and retry strategies are records of history: they are
frozen, and later attempts produce new records instead of editing old ones.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class Provider(str, Enum):
    """Text-generation provider behind a proposer."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class BudgetStatus(str, Enum):
    """Where today's spend sits relative to the configured limits."""

    NORMAL = "normal"
    WARNING = "warning"
    HARD_CAP_EXCEEDED = "hard_cap_exceeded"
    EMERGENCY_KILL = "emergency_kill"


class RoutingStrategy(str, Enum):
    """Which routing rule produced a decision."""

    HARD_STOP_OVERRIDE = "hard_stop_override"
    BUDGET_FORCED = "budget_forced_optimization"
    COMPLEXITY_CEILING = "max_complexity_ceiling_with_cost_optimization"
    RETRY_SWITCH = "retry_switch"


class RetryAction(str, Enum):
    """Next step on the retry ladder."""

    SAME_MODEL = "same_model"
    SWITCH_MODEL = "switch_model"
    ESCALATE = "escalate"


# =============================================================================
# CONFIGURATION
# =============================================================================


class ProposerProfile(BaseModel):
    """A code-generation agent with a cost profile and a complexity ceiling.

    Example:
        >>> profile = ProposerProfile(
        ...     name="gpt-4o-mini",
        ...     provider=Provider.OPENAI,
        ...     context_limit=128000,
        ...     input_cost_per_1k=0.00015,
        ...     output_cost_per_1k=0.0006,
        ...     complexity_ceiling=0.3,
        ... )
        >>> profile.estimate_cost(2000, 1000)
        0.0009
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1, description="Unique proposer name")
    provider: Provider = Field(..., description="Generation provider")
    model: str | None = Field(
        default=None,
        description="Provider model id (defaults to the proposer name)",
    )
    context_limit: int = Field(default=128000, gt=0)
    input_cost_per_1k: float = Field(default=0.0, ge=0)
    output_cost_per_1k: float = Field(default=0.0, ge=0)
    complexity_ceiling: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Maximum complexity score this proposer is certified for",
    )
    strengths: list[str] = Field(default_factory=list)
    is_active: bool = True

    @property
    def api_model(self) -> str:
        """Model id sent to the provider."""
        return self.model or self.name

    def estimate_cost(self, input_units: int, output_units: int) -> float:
        """Estimate the dollar cost of one call."""
        cost = (
            input_units / 1000 * self.input_cost_per_1k
            + output_units / 1000 * self.output_cost_per_1k
        )
        return round(cost, 6)


class BudgetLimits(BaseModel):
    """Daily spend thresholds in USD."""

    model_config = ConfigDict(frozen=True)

    daily_soft_cap: float = Field(default=20.0, ge=0)
    daily_hard_cap: float = Field(default=50.0, ge=0)
    emergency_kill: float = Field(default=100.0, ge=0)

    @model_validator(mode="after")
    def check_ordering(self) -> "BudgetLimits":
        """Soft cap <= hard cap <= emergency kill."""
        if not (self.daily_soft_cap <= self.daily_hard_cap <= self.emergency_kill):
            raise ValueError(
                "Budget limits must satisfy soft cap <= hard cap <= emergency kill"
            )
        return self


# =============================================================================
# ROUTING RECORDS
# =============================================================================


class RoutingContext(BaseModel):
    """Inputs for one routing decision. Built fresh for every work order."""

    model_config = ConfigDict(frozen=True)

    task_description: str
    complexity_score: float = Field(..., ge=0.0, le=1.0)
    context_requirements: list[str] = Field(default_factory=list)
    hard_stop_required: bool = False
    daily_spend: float = Field(default=0.0, ge=0)


class RoutingMetadata(BaseModel):
    """Diagnostic details attached to a routing decision."""

    model_config = ConfigDict(frozen=True)

    complexity_score: float
    hard_stop_required: bool
    daily_spend: float
    budget_status: BudgetStatus
    available_proposers: int
    candidates_count: int | None = None
    routing_strategy: RoutingStrategy
    selection_timestamp: datetime = Field(default_factory=datetime.utcnow)
    budget_reservation_id: str | None = None


class RoutingDecision(BaseModel):
    """Immutable record of which proposer was selected and why."""

    model_config = ConfigDict(frozen=True)

    selected_proposer: str
    reason: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    fallback_proposer: str | None = None
    routing_metadata: RoutingMetadata

    def with_reservation(self, reservation_id: str) -> "RoutingDecision":
        """Return a copy that records the budget reservation backing it."""
        metadata = self.routing_metadata.model_copy(
            update={"budget_reservation_id": reservation_id}
        )
        return self.model_copy(update={"routing_metadata": metadata})


class RetryStrategy(BaseModel):
    """What to do after a failed generation attempt."""

    model_config = ConfigDict(frozen=True)

    should_retry: bool
    attempt_number: int = Field(..., ge=1, description="Number of the next attempt")
    max_attempts: int
    next_proposer: str | None = None
    action: RetryAction
    reasoning: str
    failure_context: str = ""
