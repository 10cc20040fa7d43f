"""
Batch planner - turns a specification into a validated work order list.

Small specifications take the fast path: one architect call whose result
must fall within the work order band. Large specifications are generated
batch by batch, strictly in order. Each batch only sees a compact summary
of the work orders emitted so far (index, title, primary file, inferred
exports, dependencies), never their full bodies.
"""

import asyncio
import re
from collections.abc import Callable

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from foreman.core.errors import (
    BatchGenerationError,
    DecompositionCancelledError,
    DecompositionError,
    DecompositionValidationError,
    GenerationError,
)
from foreman.decomposition.dependency_validator import DependencyValidator
from foreman.decomposition.estimator import ComplexityEstimator
from foreman.decomposition.models import (
    Batch,
    BatchProgress,
    BatchStatus,
    ComplexityEstimate,
    DecompositionOutput,
    TechnicalSpecification,
    ValidationResult,
    WorkOrder,
    bind_positional_dependencies,
)
from foreman.decomposition.rules import (
    COST_UNITS_PER_DOLLAR,
    COST_VARIANCE_TOLERANCE,
    MAX_WORK_ORDERS,
    MIN_WORK_ORDERS,
    build_architect_prompt,
    check_cost_estimate,
    check_token_budgets,
    estimate_total_cost,
    parse_json_response,
    validate_work_order_count,
)
from foreman.generation.base import Generator
from foreman.routing.models import ProposerProfile

ProgressCallback = Callable[[BatchProgress], None]

MAX_SUMMARY_EXPORTS = 3

_TYPE_NAME = re.compile(r"\b([A-Z][a-zA-Z0-9]*(?:Service|Manager|Handler|Controller|Component))\b")
_CALL_NAME = re.compile(r"\b([a-z][a-zA-Z0-9]*)\(\)")


# =============================================================================
# CONTEXT SUMMARY
# =============================================================================


def extract_exports(work_order: WorkOrder, limit: int = MAX_SUMMARY_EXPORTS) -> list[str]:
    """Infer exported symbols from a work order description.

    Type-like names (``AuthService``, ``SessionManager``) come first, then
    function-call-like tokens (``createSession()``).

    Example:
        >>> wo = WorkOrder(title="t", description="Add AuthService with login() and logout()")
        >>> extract_exports(wo)
        ['AuthService', 'login', 'logout']
    """
    names = _TYPE_NAME.findall(work_order.description)[:3]
    names += _CALL_NAME.findall(work_order.description)[:2]
    return list(dict.fromkeys(names))[:limit]


def build_context_summary(work_orders: list[WorkOrder]) -> str:
    """One line per prior work order.

    Format: ``WO-<idx>: <title> | File: <file> | Exports: a, b | Deps: 0, 1``
    """
    lines = []
    for index, work_order in enumerate(work_orders):
        line = f"WO-{index}: {work_order.title} | File: {work_order.primary_file or 'N/A'}"
        exports = extract_exports(work_order)
        if exports:
            line += f" | Exports: {', '.join(exports)}"
        if work_order.dependencies:
            line += f" | Deps: {', '.join(work_order.dependencies)}"
        lines.append(line)
    return "\n".join(lines)


# =============================================================================
# PLANNER
# =============================================================================


class BatchPlanner:
    """
    Decompose a specification into a validated list of work orders.

    Example:
        >>> planner = BatchPlanner(generator, architect)
        >>> output = await planner.decompose(spec)
        >>> len(output.work_orders)
        6
        >>> output.validation.valid
        True
    """

    def __init__(
        self,
        generator: Generator,
        proposer: ProposerProfile,
        estimator: ComplexityEstimator | None = None,
        validator: DependencyValidator | None = None,
        min_work_orders: int = MIN_WORK_ORDERS,
        max_work_orders: int = MAX_WORK_ORDERS,
        cost_units_per_dollar: int = COST_UNITS_PER_DOLLAR,
        cost_variance_tolerance: float = COST_VARIANCE_TOLERANCE,
    ) -> None:
        """
        Initialize the planner.

        Args:
            generator: Generation service used for architect calls.
            proposer: Proposer used for architect calls.
            estimator: Complexity estimator (built from generator if omitted).
            validator: Dependency validator (default validator if omitted).
            min_work_orders: Lower bound of the fast-path band.
            max_work_orders: Upper bound of the fast-path band.
            cost_units_per_dollar: Context units per dollar for cost totals.
            cost_variance_tolerance: Allowed relative gap between the stated
                and computed cost before warning.
        """
        self.generator = generator
        self.proposer = proposer
        self.estimator = estimator or ComplexityEstimator(generator, proposer)
        self.validator = validator or DependencyValidator()
        self.min_work_orders = min_work_orders
        self.max_work_orders = max_work_orders
        self.cost_units_per_dollar = cost_units_per_dollar
        self.cost_variance_tolerance = cost_variance_tolerance
        self._callbacks: list[ProgressCallback] = []

    def add_callback(self, callback: ProgressCallback) -> None:
        """Add a callback for batch progress events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: ProgressCallback) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _emit_progress(self, progress: BatchProgress) -> None:
        for callback in self._callbacks:
            try:
                callback(progress)
            except Exception as e:
                logger.warning(f"Progress callback error: {e}")

    # =========================================================================
    # PRIMARY INTERFACE
    # =========================================================================

    async def decompose(
        self,
        spec: TechnicalSpecification,
        estimate: ComplexityEstimate | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DecompositionOutput:
        """
        Decompose ``spec`` into work orders.

        Args:
            spec: Specification to decompose.
            estimate: Precomputed estimate. Estimated here when omitted.
            cancel_event: Checked between batches; when set, the
                decomposition stops with DecompositionCancelledError.

        Returns:
            DecompositionOutput with validated work orders.

        Raises:
            EstimationError: If estimation fails.
            BatchGenerationError: If any batch fails.
            DecompositionValidationError: If the fast path returns a count
                outside the band.
            DecompositionCancelledError: If cancelled between batches.
        """
        if estimate is None:
            estimate = await self.estimator.estimate(spec)

        if estimate.requires_batching and estimate.batches:
            return await self._decompose_batched(spec, estimate, cancel_event)
        return await self._decompose_single(spec, estimate)

    # =========================================================================
    # FAST PATH
    # =========================================================================

    async def _decompose_single(
        self,
        spec: TechnicalSpecification,
        estimate: ComplexityEstimate,
    ) -> DecompositionOutput:
        logger.info(f"Decomposing {spec.feature_name} with a single architect call")

        prompt = build_architect_prompt(spec, self.min_work_orders, self.max_work_orders)
        try:
            result = await self.generator.generate(prompt, self.proposer)
        except GenerationError as e:
            raise DecompositionError(f"Architect call failed: {e}") from e

        try:
            parsed = parse_json_response(result.content)
            work_orders = self._parse_work_orders(parsed)
        except (ValueError, TypeError, PydanticValidationError) as e:
            raise DecompositionError(f"Failed to parse decomposition: {e}") from e

        validate_work_order_count(len(work_orders), self.min_work_orders, self.max_work_orders)

        bind_positional_dependencies(work_orders)
        validation = await self.validator.validate(work_orders, auto_fix=True)
        if not validation.valid:
            for issue in validation.blocking:
                logger.warning(f"Unresolved dependency issue: {issue.description}")

        warnings = check_token_budgets(work_orders)
        total_cost = estimate_total_cost(work_orders, self.cost_units_per_dollar)
        stated = parsed.get("total_estimated_cost")
        variance = check_cost_estimate(
            float(stated) if isinstance(stated, (int, float)) else None,
            total_cost,
            self.cost_variance_tolerance,
        )
        if variance:
            warnings.append(variance)

        return DecompositionOutput(
            work_orders=work_orders,
            decomposition_doc=str(parsed.get("decomposition_doc", "")),
            total_estimated_cost=total_cost,
            estimate=estimate,
            validation=validation,
            warnings=warnings,
        )

    # =========================================================================
    # BATCHED PATH
    # =========================================================================

    async def _decompose_batched(
        self,
        spec: TechnicalSpecification,
        estimate: ComplexityEstimate,
        cancel_event: asyncio.Event | None,
    ) -> DecompositionOutput:
        batches = estimate.batches
        total = len(batches)
        logger.info(
            f"Decomposing {spec.feature_name} in {total} batches "
            f"(~{estimate.total_work_orders} work orders)"
        )

        all_work_orders: list[WorkOrder] = []
        batch_docs: list[str] = []

        for index, batch in enumerate(batches):
            number = index + 1
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Decomposition cancelled before batch {number}/{total}")
                raise DecompositionCancelledError(index, total)

            self._emit_progress(
                BatchProgress(number, total, batch.name, BatchStatus.IN_PROGRESS)
            )
            logger.info(f"Generating batch {number}/{total}: {batch.name}")

            try:
                work_orders, doc = await self._generate_batch(
                    spec, batch, all_work_orders, number, total
                )
            except (
                GenerationError,
                ValueError,
                TypeError,
                PydanticValidationError,
            ) as e:
                self._emit_progress(
                    BatchProgress(number, total, batch.name, BatchStatus.FAILED)
                )
                raise BatchGenerationError(number, str(e)) from e

            all_work_orders.extend(work_orders)
            batch_docs.append(doc)
            self._emit_progress(
                BatchProgress(number, total, batch.name, BatchStatus.COMPLETED, len(work_orders))
            )
            logger.info(f"Batch {number} produced {len(work_orders)} work orders")

        bind_positional_dependencies(all_work_orders)
        validation = await self.validator.validate(all_work_orders, auto_fix=True)
        if not validation.valid:
            for issue in validation.blocking:
                logger.warning(f"Unresolved dependency issue: {issue.description}")

        warnings = check_token_budgets(all_work_orders)
        return DecompositionOutput(
            work_orders=all_work_orders,
            decomposition_doc=self.build_combined_doc(estimate, batch_docs, validation),
            total_estimated_cost=estimate_total_cost(all_work_orders, self.cost_units_per_dollar),
            estimate=estimate,
            validation=validation,
            warnings=warnings,
        )

    async def _generate_batch(
        self,
        spec: TechnicalSpecification,
        batch: Batch,
        previous: list[WorkOrder],
        number: int,
        total: int,
    ) -> tuple[list[WorkOrder], str]:
        prompt = self.build_batch_prompt(spec, batch, previous, number, total)
        result = await self.generator.generate(prompt, self.proposer)
        parsed = parse_json_response(result.content)
        work_orders = self._parse_work_orders(parsed)
        if not work_orders:
            raise ValueError("batch produced no work orders")
        return work_orders, str(parsed.get("decomposition_doc", ""))

    def build_batch_prompt(
        self,
        spec: TechnicalSpecification,
        batch: Batch,
        previous: list[WorkOrder],
        number: int,
        total: int,
    ) -> str:
        """Architect prompt plus the batching context for batch ``number``."""
        base = build_architect_prompt(spec, self.min_work_orders, self.max_work_orders)
        summary = build_context_summary(previous)
        if summary:
            previous_section = (
                "**Previous Work Orders (from earlier batches):**\n"
                f"{summary}\n\n"
                "IMPORTANT: Build on the foundation established by previous batches. "
                "Reference existing files, modules, and patterns."
            )
        else:
            previous_section = "**Previous Work Orders:** None (this is the first batch)"

        return f"""{base}

---

**BATCHING CONTEXT:**

This is batch {number} of {total} for this project.

**Current Batch Focus:**
- **Name:** {batch.name}
- **Description:** {batch.description}
- **Target:** {batch.estimated_work_orders} work orders
- **Focus Areas:** {', '.join(batch.focus_areas)}

{previous_section}

**Your Task:**
Generate ONLY the work orders for this batch ({batch.name}). Focus exclusively on the areas listed above.

- Number work orders starting from {len(previous)}
- Dependencies use global indices; reference previous work orders where appropriate
- Maintain consistency with established patterns and file structures
- Generate approximately {batch.estimated_work_orders} work orders (+/-2 is acceptable)
- The work order count band above does not apply to a single batch

**Output Format (JSON only):**
{{
  "work_orders": [ ... ],
  "decomposition_doc": "# {batch.name}\\n\\nRationale and strategy for this batch..."
}}"""

    def build_combined_doc(
        self,
        estimate: ComplexityEstimate,
        batch_docs: list[str],
        validation: ValidationResult,
    ) -> str:
        """Combine the estimation, batch plan, batch docs and validation summary."""
        batch_sections = "\n".join(
            f"### Batch {i}: {b.name}\n"
            f"- **Work Orders:** {b.estimated_work_orders}\n"
            f"- **Focus:** {b.description}\n"
            f"- **Areas:** {', '.join(b.focus_areas)}\n"
            for i, b in enumerate(estimate.batches, 1)
        )
        if validation.valid:
            validation_line = "All dependencies validated successfully"
        else:
            validation_line = f"Issues found: {len(validation.issues)}"
        fixed_line = "Auto-fixes applied to resolve issues" if validation.auto_fixed else ""

        return f"""# Project Decomposition (Batched)

## Overview
This project was decomposed using batched decomposition to handle {estimate.total_work_orders} work orders.

## Estimation
{estimate.reasoning}

## Batches
{batch_sections}
## Batch Details
{chr(10).join(doc for doc in batch_docs if doc)}

## Validation
{validation_line}
{fixed_line}
"""

    @staticmethod
    def _parse_work_orders(parsed: object) -> list[WorkOrder]:
        if not isinstance(parsed, dict):
            raise ValueError("expected a JSON object with a work_orders list")
        raw = parsed.get("work_orders")
        if not isinstance(raw, list):
            raise ValueError("work_orders is missing or not a list")

        work_orders = []
        for item in raw:
            if not isinstance(item, dict):
                raise ValueError("work order entries must be objects")
            # Ids are ours to assign
            item = {k: v for k, v in item.items() if k != "id"}
            work_orders.append(WorkOrder.model_validate(item))
        return work_orders
