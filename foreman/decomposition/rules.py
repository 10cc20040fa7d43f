"""
Architect decomposition rules.

Thresholds, prompt construction and the sanity checks applied to every
decomposition call. The batching and cost-variance constants are
empirically tuned; keep them as named values and override them through the
planner's constructor rather than editing call sites.
"""

import json
import re
from typing import Any

from loguru import logger

from foreman.core.errors import DecompositionValidationError
from foreman.decomposition.models import TechnicalSpecification, WorkOrder

# =============================================================================
# THRESHOLDS
# =============================================================================

MIN_WORK_ORDERS = 3
MAX_WORK_ORDERS = 8
MAX_TOKENS_PER_WORK_ORDER = 4000
COST_UNITS_PER_DOLLAR = 1000
COST_VARIANCE_TOLERANCE = 0.5

TOKEN_ESTIMATION_RULES = {
    "low": (500, 1000),
    "medium": (1000, 2000),
    "high": (2000, 4000),
}

_FENCE_OPEN = re.compile(r"^\s*```[\w-]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


# =============================================================================
# RESPONSE PARSING
# =============================================================================


def strip_markdown_code_blocks(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_json_response(text: str) -> Any:
    """Parse a JSON document returned by a generation call.

    Raises:
        ValueError: If the text is not valid JSON.
    """
    cleaned = strip_markdown_code_blocks(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        # Models sometimes wrap the JSON in prose; fall back to the outermost object
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Response does not contain a JSON object") from None
        try:
            return json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in response: {e}") from e


# =============================================================================
# PROMPTS
# =============================================================================


def format_specification(spec: TechnicalSpecification, numbered: bool = False) -> str:
    """Render a specification as prompt text."""

    def items(values: list[str]) -> str:
        if not values:
            return "- None specified"
        if numbered:
            return "\n".join(f"{i}. {v}" for i, v in enumerate(values, 1))
        return "\n".join(f"- {v}" for v in values)

    return (
        f"Feature: {spec.feature_name}\n\n"
        f"Objectives:\n{items(spec.objectives)}\n\n"
        f"Constraints:\n{items(spec.constraints)}\n\n"
        f"Acceptance Criteria:\n{items(spec.acceptance_criteria)}"
    )


def build_architect_prompt(
    spec: TechnicalSpecification,
    min_work_orders: int = MIN_WORK_ORDERS,
    max_work_orders: int = MAX_WORK_ORDERS,
) -> str:
    """Build the decomposition prompt for one architect call."""
    return f"""You are an expert technical architect decomposing specifications into Work Orders.

INPUT:
{format_specification(spec)}

YOUR TASK:
1. Analyze complexity and scope
2. Decompose into {min_work_orders}-{max_work_orders} Work Orders
3. Identify sequential dependencies (A must complete before B)
4. Estimate tokens per Work Order (warn if >{MAX_TOKENS_PER_WORK_ORDER})
5. Assess risk level (low/medium/high) per Work Order
6. Generate decomposition documentation

TOKEN ESTIMATES:
- low complexity (CRUD, config): {TOKEN_ESTIMATION_RULES["low"][0]}-{TOKEN_ESTIMATION_RULES["low"][1]}
- medium complexity (business logic, API): {TOKEN_ESTIMATION_RULES["medium"][0]}-{TOKEN_ESTIMATION_RULES["medium"][1]}
- high complexity (architecture, security): {TOKEN_ESTIMATION_RULES["high"][0]}-{TOKEN_ESTIMATION_RULES["high"][1]}

OUTPUT FORMAT (valid JSON only, no markdown, no commentary):
{{
  "work_orders": [
    {{
      "title": "Create OAuth provider config",
      "description": "Implement Google/GitHub OAuth configuration. Handle token refresh.",
      "acceptance_criteria": ["Config validates credentials", "Tokens refresh before expiry"],
      "files_in_scope": ["config/oauth.ts", "types/auth.ts"],
      "context_budget_estimate": 800,
      "risk_level": "low",
      "dependencies": []
    }},
    {{
      "title": "Create session management",
      "description": "Implement Redis session storage. Enable automatic expiration.",
      "acceptance_criteria": ["Sessions persist in Redis", "Expired sessions cleared"],
      "files_in_scope": ["lib/session.ts"],
      "context_budget_estimate": 1500,
      "risk_level": "medium",
      "dependencies": ["0"]
    }}
  ],
  "decomposition_doc": "# Implementation Plan\\n\\n...",
  "total_estimated_cost": 2.30
}}

RULES:
- Dependencies are zero-based indices of earlier work orders, as strings
- Titles: maximum 8 words
- Descriptions: maximum 3 sentences describing WHAT to do
- Acceptance criteria: maximum 5 bullet points, each 10 words or fewer
- Files in scope: paths only, no explanations
- Each file should be owned by exactly one work order"""


# =============================================================================
# VALIDATION
# =============================================================================


def validate_work_order_count(
    count: int,
    min_work_orders: int = MIN_WORK_ORDERS,
    max_work_orders: int = MAX_WORK_ORDERS,
) -> None:
    """Check a fast-path decomposition size.

    Raises:
        DecompositionValidationError: If the count falls outside the band.
    """
    if count < min_work_orders:
        raise DecompositionValidationError(
            f"Too few work orders: {count} (minimum {min_work_orders})"
        )
    if count > max_work_orders:
        raise DecompositionValidationError(
            f"Too many work orders: {count} (maximum {max_work_orders})"
        )


def check_token_budgets(
    work_orders: list[WorkOrder],
    max_tokens: int = MAX_TOKENS_PER_WORK_ORDER,
) -> list[str]:
    """Warn about work orders whose context budget exceeds the limit."""
    warnings = []
    for index, work_order in enumerate(work_orders):
        if work_order.context_budget_estimate > max_tokens:
            warnings.append(
                f"WO-{index} ({work_order.title}) exceeds token limit: "
                f"{work_order.context_budget_estimate} > {max_tokens}"
            )
    for warning in warnings:
        logger.warning(warning)
    return warnings


def estimate_total_cost(
    work_orders: list[WorkOrder],
    cost_units_per_dollar: int = COST_UNITS_PER_DOLLAR,
) -> float:
    """Total estimated cost: context budgets divided by the cost unit."""
    total = sum(wo.context_budget_estimate for wo in work_orders)
    return round(total / cost_units_per_dollar, 4)


def check_cost_estimate(
    stated_cost: float | None,
    computed_cost: float,
    tolerance: float = COST_VARIANCE_TOLERANCE,
) -> str | None:
    """Compare the model's stated total cost with the computed one.

    Returns:
        A warning message when they differ by more than ``tolerance``
        (relative to the computed cost), otherwise None.
    """
    if stated_cost is None or computed_cost <= 0:
        return None

    variance = abs(stated_cost - computed_cost) / computed_cost
    if variance > tolerance:
        warning = (
            f"Stated cost ${stated_cost:.2f} differs from computed "
            f"${computed_cost:.2f} by {variance * 100:.0f}%"
        )
        logger.warning(warning)
        return warning
    return None
