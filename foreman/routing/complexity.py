"""Work order complexity scoring.

A cheap structural heuristic used to build routing contexts: more
acceptance criteria, more files and a larger context budget all push the
score toward 1.0.
"""

from foreman.decomposition.models import WorkOrder

CRITERIA_WEIGHT = 0.1
CRITERIA_CAP = 0.5
FILES_WEIGHT = 0.05
FILES_CAP = 0.3
BASELINE_BUDGET = 2000
BUDGET_SCALE = 8000
BUDGET_CAP = 0.2


def estimate_work_order_complexity(work_order: WorkOrder) -> float:
    """Score a work order in [0, 1].

    Example:
        >>> wo = WorkOrder(title="t", acceptance_criteria=["a", "b"], files_in_scope=["x.ts"])
        >>> estimate_work_order_complexity(wo)
        0.25
    """
    criteria = len(work_order.acceptance_criteria) or 1
    files = len(work_order.files_in_scope) or 1
    budget = work_order.context_budget_estimate or BASELINE_BUDGET

    score = min(criteria * CRITERIA_WEIGHT, CRITERIA_CAP)
    score += min(files * FILES_WEIGHT, FILES_CAP)
    score += max(0.0, min((budget - BASELINE_BUDGET) / BUDGET_SCALE, BUDGET_CAP))

    return round(min(score, 1.0), 4)
