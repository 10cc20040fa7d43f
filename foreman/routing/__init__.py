"""Routing - selecting proposers under a budget.

- Proposer profiles and registry
- Routing policy and retry ladder
- Budget reservation boundary
- Work order complexity scoring
"""

from foreman.routing.budget import BudgetReservation, BudgetService, InMemoryBudgetLedger
from foreman.routing.complexity import estimate_work_order_complexity
from foreman.routing.models import (
    BudgetLimits,
    BudgetStatus,
    Provider,
    ProposerProfile,
    RetryAction,
    RetryStrategy,
    RoutingContext,
    RoutingDecision,
    RoutingMetadata,
    RoutingStrategy,
)
from foreman.routing.policy import (
    RoutingPolicy,
    check_budget_status,
    detect_hard_stop,
    estimate_routing_cost,
)
from foreman.routing.registry import DEFAULT_PROPOSERS, ProposerRegistry

__all__ = [
    # Models
    "BudgetLimits",
    "BudgetStatus",
    "Provider",
    "ProposerProfile",
    "RetryAction",
    "RetryStrategy",
    "RoutingContext",
    "RoutingDecision",
    "RoutingMetadata",
    "RoutingStrategy",
    # Policy
    "RoutingPolicy",
    "check_budget_status",
    "detect_hard_stop",
    "estimate_routing_cost",
    # Registry
    "DEFAULT_PROPOSERS",
    "ProposerRegistry",
    # Budget
    "BudgetReservation",
    "BudgetService",
    "InMemoryBudgetLedger",
    # Complexity
    "estimate_work_order_complexity",
]
