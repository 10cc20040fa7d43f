"""Complexity estimator - decides whether a decomposition needs batching.

Asks the architect proposer how many work orders a specification needs
and, for large specifications, how to split the work into feature batches.
Malformed estimator output is fatal: there is no fallback to "no batching".
"""

import math

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from foreman.core.errors import EstimationError, GenerationError
from foreman.decomposition.models import Batch, ComplexityEstimate, TechnicalSpecification
from foreman.decomposition.rules import format_specification, parse_json_response
from foreman.generation.base import Generator
from foreman.routing.models import ProposerProfile

# =============================================================================
# CONSTANTS
# =============================================================================

BATCHING_THRESHOLD = 20
MAX_WORK_ORDERS_PER_BATCH = 5
DEFAULT_BATCH_SIZE = 10

# Cost model (USD) and time model (seconds) for a decomposition run
ESTIMATION_CALL_COST = 0.02
SINGLE_CALL_COST = 0.15
BATCH_CALL_COST = 0.10
VALIDATION_CALL_COST = 0.03
ESTIMATION_CALL_SECONDS = 15
SINGLE_CALL_SECONDS = 30
BATCH_CALL_SECONDS = 35
VALIDATION_SECONDS = 10


def create_default_batches(
    total_work_orders: int,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[Batch]:
    """Divide ``total_work_orders`` into fixed-size batches.

    Example:
        >>> [b.estimated_work_orders for b in create_default_batches(45)]
        [10, 10, 10, 10, 5]
    """
    batches = []
    for index in range(math.ceil(total_work_orders / batch_size)):
        start = index * batch_size
        count = min(batch_size, total_work_orders - start)
        batches.append(
            Batch(
                name=f"Batch {index + 1}",
                description=f"Work orders {start + 1}-{start + count}",
                estimated_work_orders=count,
                focus_areas=["General implementation"],
            )
        )
    return batches


def split_oversized_batches(
    batches: list[Batch],
    max_per_batch: int = MAX_WORK_ORDERS_PER_BATCH,
) -> list[Batch]:
    """Split any batch targeting more than ``max_per_batch`` work orders.

    Parts are as even as possible, so a batch of 7 becomes 4 + 3.
    """
    result: list[Batch] = []
    for batch in batches:
        if batch.estimated_work_orders <= max_per_batch:
            result.append(batch)
            continue

        parts = math.ceil(batch.estimated_work_orders / max_per_batch)
        base, extra = divmod(batch.estimated_work_orders, parts)
        logger.debug(f"Splitting batch {batch.name} ({batch.estimated_work_orders}) into {parts}")
        for part in range(parts):
            result.append(
                Batch(
                    name=f"{batch.name} ({part + 1}/{parts})",
                    description=batch.description,
                    estimated_work_orders=base + (1 if part < extra else 0),
                    focus_areas=list(batch.focus_areas),
                )
            )
    return result


def calculate_estimated_cost(estimate: ComplexityEstimate) -> float:
    """Dollar cost of running the decomposition described by ``estimate``."""
    if not estimate.requires_batching:
        return round(ESTIMATION_CALL_COST + SINGLE_CALL_COST, 4)
    n_batches = len(estimate.batches) or math.ceil(
        estimate.total_work_orders / DEFAULT_BATCH_SIZE
    )
    return round(
        ESTIMATION_CALL_COST + n_batches * BATCH_CALL_COST + VALIDATION_CALL_COST, 4
    )


def calculate_estimated_time(estimate: ComplexityEstimate) -> int:
    """Wall-clock seconds for the decomposition described by ``estimate``."""
    if not estimate.requires_batching:
        return ESTIMATION_CALL_SECONDS + SINGLE_CALL_SECONDS
    n_batches = len(estimate.batches) or math.ceil(
        estimate.total_work_orders / DEFAULT_BATCH_SIZE
    )
    return ESTIMATION_CALL_SECONDS + n_batches * BATCH_CALL_SECONDS + VALIDATION_SECONDS


def validate_batches(estimate: ComplexityEstimate) -> list[str]:
    """Sanity-check a batch plan. Returns human-readable warnings."""
    if not estimate.requires_batching:
        return []

    warnings = []
    batches = estimate.batches
    if len(batches) < 2:
        warnings.append("Batching required but fewer than 2 batches planned")
    if len(batches) > 10:
        warnings.append(f"Many batches planned ({len(batches)}), consider larger batches")

    planned = sum(b.estimated_work_orders for b in batches)
    if abs(planned - estimate.total_work_orders) > 5:
        warnings.append(
            f"Batch totals ({planned}) differ from estimated total "
            f"({estimate.total_work_orders})"
        )

    for batch in batches:
        if batch.estimated_work_orders < 3:
            warnings.append(f"Batch {batch.name} is very small ({batch.estimated_work_orders})")
        if batch.estimated_work_orders > 18:
            warnings.append(f"Batch {batch.name} is very large ({batch.estimated_work_orders})")

    return warnings


class ComplexityEstimator:
    """
    Estimate decomposition size and plan batches.

    Example:
        >>> estimator = ComplexityEstimator(generator, architect)
        >>> estimate = await estimator.estimate(spec)
        >>> estimate.requires_batching
        True
        >>> len(estimate.batches)
        5
    """

    def __init__(
        self,
        generator: Generator,
        proposer: ProposerProfile,
        batching_threshold: int = BATCHING_THRESHOLD,
        max_per_batch: int = MAX_WORK_ORDERS_PER_BATCH,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """
        Initialize the estimator.

        Args:
            generator: Generation service.
            proposer: Proposer used for the estimation call.
            batching_threshold: Work order count above which batching is forced.
            max_per_batch: Largest batch a proposed plan may keep.
            default_batch_size: Chunk size when no batches are proposed.
        """
        self.generator = generator
        self.proposer = proposer
        self.batching_threshold = batching_threshold
        self.max_per_batch = max_per_batch
        self.default_batch_size = default_batch_size

    async def estimate(self, spec: TechnicalSpecification) -> ComplexityEstimate:
        """
        Estimate how many work orders ``spec`` needs.

        Args:
            spec: Specification to estimate.

        Returns:
            ComplexityEstimate with batches filled in when batching is required.

        Raises:
            EstimationError: If the generation call fails or its output
                cannot be parsed.
        """
        logger.info(f"Estimating complexity for {spec.feature_name}")

        try:
            result = await self.generator.generate(self.build_prompt(spec), self.proposer)
        except GenerationError as e:
            raise EstimationError(f"Complexity estimation call failed: {e}") from e

        estimate = self.parse_response(result.content)
        estimate = self.finalize(estimate)

        for warning in validate_batches(estimate):
            logger.warning(f"Batch plan: {warning}")

        logger.info(
            f"Estimated {estimate.total_work_orders} work orders, "
            f"batching={estimate.requires_batching}, batches={len(estimate.batches)}"
        )
        return estimate

    def build_prompt(self, spec: TechnicalSpecification) -> str:
        """Build the estimation prompt."""
        budget = f"${spec.budget_estimate}" if spec.budget_estimate is not None else "Not specified"
        timeline = spec.time_estimate or "Not specified"

        return f"""You are analyzing a technical specification to estimate project complexity and plan decomposition strategy.

**Technical Specification:**
{format_specification(spec, numbered=True)}

Budget: {budget}
Timeline: {timeline}

---

**Your Task:**

1. **Total Work Orders**: How many work orders will this project require?
   - Consider setup, infrastructure, core features, UI, testing, polish
   - Each work order should need roughly 800-2000 tokens of context

2. **Batching Required**: Does this exceed {self.batching_threshold} work orders?

3. **Feature-Based Batches** (only if batching is required):
   - Each batch should be cohesive (related work orders)
   - Aim for 4-{self.max_per_batch} work orders per batch, never more than {self.max_per_batch}
   - If a feature needs 7 work orders, split it into two batches of 3-4 each

4. **Reasoning**: Brief explanation of your estimation logic

**Output Format (JSON only, no markdown):**
{{
  "total_work_orders": <number>,
  "requires_batching": <boolean>,
  "batches": [
    {{
      "name": "Infrastructure",
      "description": "Project setup, build system",
      "estimated_work_orders": 4,
      "focus_areas": ["Build config", "IPC layer"]
    }}
  ],
  "reasoning": "This project requires X work orders because..."
}}"""

    def parse_response(self, content: str) -> ComplexityEstimate:
        """Parse estimator output.

        Raises:
            EstimationError: If the output is not a valid estimate.
        """
        try:
            parsed = parse_json_response(content)
        except ValueError as e:
            raise EstimationError(f"Failed to parse complexity estimation: {e}") from e

        if not isinstance(parsed, dict):
            raise EstimationError("Failed to parse complexity estimation: expected a JSON object")

        try:
            return ComplexityEstimate(
                total_work_orders=parsed["total_work_orders"],
                requires_batching=bool(parsed.get("requires_batching", False)),
                batches=parsed.get("batches") or [],
                reasoning=parsed.get("reasoning") or "",
            )
        except (KeyError, TypeError, PydanticValidationError) as e:
            raise EstimationError(f"Failed to parse complexity estimation: {e}") from e

    def finalize(self, estimate: ComplexityEstimate) -> ComplexityEstimate:
        """Apply the batching rules and fill in cost and time."""
        requires_batching = (
            estimate.requires_batching or estimate.total_work_orders > self.batching_threshold
        )

        batches: list[Batch] = []
        if requires_batching:
            if estimate.batches:
                batches = split_oversized_batches(estimate.batches, self.max_per_batch)
            else:
                logger.debug("No batches proposed, using default batch plan")
                batches = create_default_batches(
                    estimate.total_work_orders, self.default_batch_size
                )

        finalized = estimate.model_copy(
            update={"requires_batching": requires_batching, "batches": batches}
        )
        return finalized.model_copy(
            update={
                "estimated_cost": calculate_estimated_cost(finalized),
                "estimated_time_seconds": calculate_estimated_time(finalized),
            }
        )
