"""
Routing policy for Foreman.

Turns a work order's complexity score, security sensitivity and today's
spend into a proposer selection, and decides what to do after a failed
generation attempt. Rules are evaluated in a fixed order and the first
match wins:

1. Spend at or above the emergency kill: refuse.
2. Hard stop required and spend below the hard cap: designated proposer.
3. Spend at or above the hard cap: cheapest active proposer.
4. Otherwise: cheapest proposer whose ceiling covers the complexity score,
   or the highest-ceiling proposer when none does.
"""

from dataclasses import dataclass, field

from loguru import logger

from foreman.core.errors import RoutingError, RoutingRefusedError
from foreman.routing.models import (
    BudgetLimits,
    BudgetStatus,
    ProposerProfile,
    RetryAction,
    RetryStrategy,
    RoutingContext,
    RoutingDecision,
    RoutingMetadata,
    RoutingStrategy,
)

# =============================================================================
# CONSTANTS
# =============================================================================

SECURITY_KEYWORDS = [
    "sql injection",
    "injection",
    "xss",
    "csrf",
    "authentication",
    "authorization",
    "encryption",
    "password hashing",
    "api keys",
    "secrets management",
    "access control",
    "input validation",
    "sanitization",
]

ARCHITECTURE_KEYWORDS = [
    "api contract",
    "schema change",
    "breaking change",
    "database migration",
    "migration",
    "event schema",
    "integration contract",
    "system design",
    "architectural decision",
]

HARD_STOP_PROPOSER = "claude-sonnet-4-5"
MAX_RETRY_ATTEMPTS = 3

# Routing cost estimates used for budget reservations (USD)
ROUTING_COST_HIGH = 2.50
ROUTING_COST_MEDIUM = 1.00
ROUTING_COST_LOW = 0.10
LOW_COMPLEXITY_THRESHOLD = 0.3


# =============================================================================
# RULE HELPERS
# =============================================================================


@dataclass
class HardStopResult:
    """Outcome of scanning a description for hard-stop keywords."""

    required: bool
    matched_keywords: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)


@dataclass
class BudgetCheck:
    """Outcome of comparing today's spend with the limits."""

    can_proceed: bool
    status: BudgetStatus
    force_cheapest: bool
    reason: str


def detect_hard_stop(description: str) -> HardStopResult:
    """Scan a task description for security or architecture terms.

    Matching is a case-insensitive substring test.

    Example:
        >>> detect_hard_stop("Add password hashing to signup").required
        True
    """
    text = description.lower()
    matched: list[str] = []
    categories: list[str] = []

    security = [kw for kw in SECURITY_KEYWORDS if kw in text]
    if security:
        matched.extend(security)
        categories.append("security")

    architecture = [kw for kw in ARCHITECTURE_KEYWORDS if kw in text]
    if architecture:
        matched.extend(architecture)
        categories.append("architecture")

    if matched:
        logger.debug(f"Hard stop keywords matched: {matched}")

    return HardStopResult(required=bool(matched), matched_keywords=matched, categories=categories)


def check_budget_status(daily_spend: float, limits: BudgetLimits) -> BudgetCheck:
    """Classify today's spend against the budget limits."""
    if daily_spend >= limits.emergency_kill:
        return BudgetCheck(
            can_proceed=False,
            status=BudgetStatus.EMERGENCY_KILL,
            force_cheapest=False,
            reason=(
                f"EMERGENCY KILL: Daily spend ${daily_spend:.2f} "
                f"exceeds ${limits.emergency_kill:.2f}"
            ),
        )

    if daily_spend >= limits.daily_hard_cap:
        return BudgetCheck(
            can_proceed=True,
            status=BudgetStatus.HARD_CAP_EXCEEDED,
            force_cheapest=True,
            reason=(
                f"Hard cap exceeded (${daily_spend:.2f} >= "
                f"${limits.daily_hard_cap:.2f}), forcing cheapest proposer"
            ),
        )

    if daily_spend >= limits.daily_soft_cap:
        return BudgetCheck(
            can_proceed=True,
            status=BudgetStatus.WARNING,
            force_cheapest=False,
            reason=(
                f"Soft cap reached (${daily_spend:.2f} >= "
                f"${limits.daily_soft_cap:.2f})"
            ),
        )

    return BudgetCheck(
        can_proceed=True,
        status=BudgetStatus.NORMAL,
        force_cheapest=False,
        reason="Within budget",
    )


def cheapest_proposer(proposers: list[ProposerProfile]) -> ProposerProfile:
    """Pick the proposer with the lowest per-input-unit cost (name breaks ties)."""
    return min(proposers, key=lambda p: (p.input_cost_per_1k, p.name))


def highest_ceiling_proposer(proposers: list[ProposerProfile]) -> ProposerProfile:
    """Pick the proposer certified for the most complex work (cheapest on ties)."""
    return min(proposers, key=lambda p: (-p.complexity_ceiling, p.input_cost_per_1k, p.name))


def select_by_complexity(
    proposers: list[ProposerProfile],
    complexity_score: float,
) -> tuple[ProposerProfile, int, str]:
    """Select a proposer by complexity ceiling with cost optimization.

    Returns:
        Tuple of (selected proposer, number of qualifying candidates, reason).
    """
    candidates = [p for p in proposers if p.complexity_ceiling >= complexity_score]

    if not candidates:
        best = highest_ceiling_proposer(proposers)
        return (
            best,
            0,
            (
                f"No proposer certified for complexity {complexity_score:.2f}; "
                f"using highest ceiling {best.name} ({best.complexity_ceiling:.2f})"
            ),
        )

    if len(candidates) == 1:
        only = candidates[0]
        return (
            only,
            1,
            f"{only.name} is the only proposer with ceiling >= {complexity_score:.2f}",
        )

    best = cheapest_proposer(candidates)
    return (
        best,
        len(candidates),
        (
            f"Cheapest of {len(candidates)} proposers with ceiling >= "
            f"{complexity_score:.2f}: {best.name}"
        ),
    )


def estimate_routing_cost(complexity_score: float, hard_stop_required: bool) -> float:
    """Estimate what one generation call will cost, for budget reservation."""
    if hard_stop_required or complexity_score >= 1.0:
        return ROUTING_COST_HIGH
    if complexity_score < LOW_COMPLEXITY_THRESHOLD:
        return ROUTING_COST_LOW
    return ROUTING_COST_MEDIUM


# =============================================================================
# ROUTING POLICY
# =============================================================================


class RoutingPolicy:
    """
    Select proposers for work orders and plan retries.

    The policy is stateless; proposers and limits are passed on every call
    so the same instance can serve any registry.

    Example:
        >>> policy = RoutingPolicy()
        >>> decision = policy.route(context, registry.active(), limits)
        >>> decision.selected_proposer
        'claude-haiku-4-5'
    """

    def __init__(
        self,
        hard_stop_proposer: str = HARD_STOP_PROPOSER,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
    ) -> None:
        """
        Initialize the policy.

        Args:
            hard_stop_proposer: Name of the proposer forced for hard stops.
            max_attempts: Attempts before a work order is escalated.
        """
        self.hard_stop_proposer = hard_stop_proposer
        self.max_attempts = max_attempts

    def route(
        self,
        context: RoutingContext,
        proposers: list[ProposerProfile],
        limits: BudgetLimits,
    ) -> RoutingDecision:
        """
        Make a routing decision.

        Args:
            context: Routing inputs for one work order.
            proposers: Candidate proposers (inactive ones are ignored).
            limits: Daily budget limits.

        Returns:
            A new RoutingDecision.

        Raises:
            RoutingError: If no active proposer is available.
            RoutingRefusedError: If the emergency kill threshold is reached.
        """
        active = [p for p in proposers if p.is_active]
        if not active:
            raise RoutingError("No active proposers available")

        budget = check_budget_status(context.daily_spend, limits)
        if not budget.can_proceed:
            logger.error(budget.reason)
            raise RoutingRefusedError(context.daily_spend, limits.emergency_kill)

        if context.hard_stop_required and not budget.force_cheapest:
            decision = self._route_hard_stop(context, active, budget)
        elif budget.force_cheapest:
            decision = self._route_cheapest(context, active, budget)
        else:
            decision = self._route_by_complexity(context, active, budget)

        logger.info(
            f"Routed to {decision.selected_proposer} "
            f"({decision.routing_metadata.routing_strategy.value}): {decision.reason}"
        )
        return decision

    def _route_hard_stop(
        self,
        context: RoutingContext,
        active: list[ProposerProfile],
        budget: BudgetCheck,
    ) -> RoutingDecision:
        designated = next((p for p in active if p.name == self.hard_stop_proposer), None)
        if designated is None:
            designated = highest_ceiling_proposer(active)
            logger.warning(
                f"Hard stop proposer {self.hard_stop_proposer} is not active, "
                f"using {designated.name}"
            )

        fallback = next((p.name for p in active if p.name != designated.name), None)
        return RoutingDecision(
            selected_proposer=designated.name,
            reason="Hard stop: security or architecture sensitive task requires "
            f"{designated.name}",
            confidence=1.0,
            fallback_proposer=fallback,
            routing_metadata=self._metadata(
                context, active, budget, RoutingStrategy.HARD_STOP_OVERRIDE
            ),
        )

    def _route_cheapest(
        self,
        context: RoutingContext,
        active: list[ProposerProfile],
        budget: BudgetCheck,
    ) -> RoutingDecision:
        cheapest = cheapest_proposer(active)
        return RoutingDecision(
            selected_proposer=cheapest.name,
            reason=budget.reason,
            confidence=0.8,
            routing_metadata=self._metadata(
                context, active, budget, RoutingStrategy.BUDGET_FORCED
            ),
        )

    def _route_by_complexity(
        self,
        context: RoutingContext,
        active: list[ProposerProfile],
        budget: BudgetCheck,
    ) -> RoutingDecision:
        selected, candidates, reason = select_by_complexity(active, context.complexity_score)
        fallback = None
        higher = [p for p in active if p.complexity_ceiling > selected.complexity_ceiling]
        if higher:
            fallback = highest_ceiling_proposer(higher).name

        return RoutingDecision(
            selected_proposer=selected.name,
            reason=reason,
            confidence=0.95,
            fallback_proposer=fallback,
            routing_metadata=self._metadata(
                context,
                active,
                budget,
                RoutingStrategy.COMPLEXITY_CEILING,
                candidates_count=candidates,
            ),
        )

    def _metadata(
        self,
        context: RoutingContext,
        active: list[ProposerProfile],
        budget: BudgetCheck,
        strategy: RoutingStrategy,
        candidates_count: int | None = None,
    ) -> RoutingMetadata:
        return RoutingMetadata(
            complexity_score=context.complexity_score,
            hard_stop_required=context.hard_stop_required,
            daily_spend=context.daily_spend,
            budget_status=budget.status,
            available_proposers=len(active),
            candidates_count=candidates_count,
            routing_strategy=strategy,
        )

    # =========================================================================
    # RETRY LADDER
    # =========================================================================

    def next_attempt(
        self,
        proposer: ProposerProfile,
        attempt_number: int,
        reason: str,
        proposers: list[ProposerProfile],
    ) -> RetryStrategy:
        """
        Decide what to do after attempt ``attempt_number`` failed.

        Attempt 1 retries the same proposer with the failure appended to the
        prompt, attempt 2 moves to a proposer with a strictly higher
        complexity ceiling when one exists, and anything later escalates.

        Args:
            proposer: Proposer used for the failed attempt.
            attempt_number: Number of the attempt that just failed (1-based).
            reason: Failure description, carried into the next prompt.
            proposers: Proposers eligible for a switch.

        Returns:
            An explicit RetryStrategy.
        """
        if attempt_number >= self.max_attempts:
            return RetryStrategy(
                should_retry=False,
                attempt_number=attempt_number,
                max_attempts=self.max_attempts,
                action=RetryAction.ESCALATE,
                reasoning=f"Max retries ({self.max_attempts}) exceeded. Escalating.",
                failure_context=reason,
            )

        if attempt_number == 1:
            return RetryStrategy(
                should_retry=True,
                attempt_number=2,
                max_attempts=self.max_attempts,
                next_proposer=proposer.name,
                action=RetryAction.SAME_MODEL,
                reasoning=f"Retry {proposer.name} with failure context",
                failure_context=reason,
            )

        higher = [
            p
            for p in proposers
            if p.is_active and p.complexity_ceiling > proposer.complexity_ceiling
        ]
        if higher:
            # Next rung up: the smallest ceiling above the current one
            target = min(higher, key=lambda p: (p.complexity_ceiling, p.input_cost_per_1k, p.name))
            return RetryStrategy(
                should_retry=True,
                attempt_number=attempt_number + 1,
                max_attempts=self.max_attempts,
                next_proposer=target.name,
                action=RetryAction.SWITCH_MODEL,
                reasoning=(
                    f"Switch from {proposer.name} ({proposer.complexity_ceiling:.2f}) "
                    f"to {target.name} ({target.complexity_ceiling:.2f})"
                ),
                failure_context=reason,
            )

        return RetryStrategy(
            should_retry=False,
            attempt_number=attempt_number,
            max_attempts=self.max_attempts,
            action=RetryAction.ESCALATE,
            reasoning=f"No proposer with a higher ceiling than {proposer.name}. Escalating.",
            failure_context=reason,
        )
