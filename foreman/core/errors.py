"""Exception hierarchy for Foreman.

Only :class:`EstimationError`, :class:`BatchGenerationError` and
:class:`RoutingRefusedError` escape a full execution run; the other errors
are caught by the orchestrator and turned into structured outcomes.
"""


class ForemanError(Exception):
    """Base exception for Foreman errors."""

    pass


class ConfigurationError(ForemanError):
    """Invalid or missing configuration."""

    pass


class EstimationError(ForemanError):
    """Complexity estimation produced unusable output."""

    pass


class DecompositionError(ForemanError):
    """Failed to decompose a specification into work orders."""

    pass


class DecompositionValidationError(DecompositionError):
    """Decomposition output violated the work order rules."""

    pass


class BatchGenerationError(DecompositionError):
    """One batch of a batched decomposition failed."""

    def __init__(self, batch_number: int, reason: str) -> None:
        self.batch_number = batch_number
        self.reason = reason
        super().__init__(f"Batch {batch_number} failed: {reason}")


class DecompositionCancelledError(DecompositionError):
    """Decomposition was cancelled between batches."""

    def __init__(self, completed_batches: int, total_batches: int) -> None:
        self.completed_batches = completed_batches
        self.total_batches = total_batches
        super().__init__(
            f"Decomposition cancelled after {completed_batches}/{total_batches} batches"
        )


class RoutingError(ForemanError):
    """No routing decision could be made."""

    pass


class RoutingRefusedError(RoutingError):
    """Routing refused because the emergency budget kill switch is engaged."""

    def __init__(self, daily_spend: float, emergency_kill: float) -> None:
        self.daily_spend = daily_spend
        self.emergency_kill = emergency_kill
        super().__init__(
            f"EMERGENCY KILL: daily spend ${daily_spend:.2f} "
            f"reached limit ${emergency_kill:.2f}"
        )


class GenerationError(ForemanError):
    """The text-generation service failed or returned nothing usable."""

    pass


class DiagnosticCheckError(ForemanError):
    """The external diagnostic tool could not be run at all."""

    pass


class BudgetExceededError(ForemanError):
    """A budget reservation for one generation call was refused."""

    def __init__(self, estimated_cost: float, current_total: float) -> None:
        self.estimated_cost = estimated_cost
        self.current_total = current_total
        super().__init__(
            f"Budget reservation of ${estimated_cost:.2f} refused "
            f"(current total ${current_total:.2f})"
        )
