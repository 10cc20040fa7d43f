"""Dependency validator - keeps the work order graph acyclic and complete.

Every call runs four checks:

1. Missing dependency: a reference to a work order that does not exist.
   Auto-fixed by inserting a synthesized prerequisite immediately before
   the dependent work order.
2. Circular dependency: DFS cycle detection. Auto-fixed by removing the
   back-edge that closes each cycle.
3. Duplicate file ownership: warning plus a merge suggestion, never fixed.
4. Invalid reference: a malformed reference (non-numeric or negative).
   Never auto-fixed.

Dependencies are stable ids, so inserting work orders never invalidates
existing references. Positional indices are recomputed only when the list
is serialized, and the missing-dependency check is re-run after any
insertion before returning.
"""

from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from foreman.core.errors import GenerationError
from foreman.decomposition.models import (
    FixStrategy,
    FixType,
    IssueSeverity,
    IssueType,
    RiskLevel,
    ValidationIssue,
    ValidationResult,
    WorkOrder,
    parse_index,
)
from foreman.decomposition.rules import parse_json_response
from foreman.generation.base import Generator
from foreman.routing.models import ProposerProfile

PrerequisiteSynthesizer = Callable[[WorkOrder, list[WorkOrder]], Awaitable[WorkOrder | None]]


# =============================================================================
# PREREQUISITE SYNTHESIS
# =============================================================================


async def synthesize_prerequisite(
    dependent: WorkOrder,
    existing: list[WorkOrder],
) -> WorkOrder | None:
    """Build a minimal prerequisite from the dependent work order's needs.

    Deterministic: no generation call is made.
    """
    needs = dependent.description.strip() or dependent.title
    return WorkOrder(
        title=f"Prerequisite for {dependent.title}"[:120],
        description=(
            f"Provide the foundations that '{dependent.title}' relies on. "
            f"Context: {needs}"
        ),
        acceptance_criteria=[
            f"Interfaces required by '{dependent.title}' exist",
            "Code compiles without errors",
        ],
        files_in_scope=[],
        context_budget_estimate=1000,
        risk_level=RiskLevel.LOW,
        dependencies=[],
    )


class GenerativePrerequisiteSynthesizer:
    """Ask a proposer to design the missing prerequisite work order."""

    def __init__(self, generator: Generator, proposer: ProposerProfile) -> None:
        self.generator = generator
        self.proposer = proposer

    def build_prompt(self, dependent: WorkOrder, existing: list[WorkOrder]) -> str:
        """Build the prompt describing the dependent and the existing work orders."""
        existing_lines = "\n".join(
            f"{i}. {wo.title}: {wo.description[:100]}" for i, wo in enumerate(existing)
        )
        criteria = "\n".join(f"- {c}" for c in dependent.acceptance_criteria) or "- None"
        files = ", ".join(dependent.files_in_scope) or "None"

        return f"""A work order depends on a prerequisite that does not exist yet.

Dependent Work Order: {dependent.title}
Description: {dependent.description}
Acceptance Criteria:
{criteria}
Files: {files}

Existing Work Orders:
{existing_lines}

Generate ONE prerequisite work order that must be completed before this one.
Output JSON only:
{{
  "title": "...",
  "description": "...",
  "acceptance_criteria": ["..."],
  "files_in_scope": ["..."],
  "context_budget_estimate": 1000,
  "risk_level": "low"
}}"""

    async def __call__(
        self,
        dependent: WorkOrder,
        existing: list[WorkOrder],
    ) -> WorkOrder | None:
        try:
            result = await self.generator.generate(
                self.build_prompt(dependent, existing), self.proposer
            )
            parsed = parse_json_response(result.content)
            parsed.pop("id", None)
            parsed["dependencies"] = []
            return WorkOrder.model_validate(parsed)
        except (GenerationError, ValueError, AttributeError, PydanticValidationError) as e:
            logger.warning(f"Failed to synthesize prerequisite for {dependent.title}: {e}")
            return None


# =============================================================================
# VALIDATOR
# =============================================================================


class DependencyValidator:
    """
    Validate and heal work order dependency graphs.

    Example:
        >>> validator = DependencyValidator()
        >>> result = await validator.validate(work_orders, auto_fix=True)
        >>> result.valid
        True
    """

    def __init__(self, synthesizer: PrerequisiteSynthesizer | None = None) -> None:
        """
        Initialize the validator.

        Args:
            synthesizer: Builds prerequisite work orders for missing
                dependencies. Defaults to deterministic synthesis.
        """
        self.synthesizer = synthesizer or synthesize_prerequisite

    async def validate(
        self,
        work_orders: list[WorkOrder],
        auto_fix: bool = True,
    ) -> ValidationResult:
        """
        Validate ``work_orders``, applying auto-fixes in place when enabled.

        Args:
            work_orders: Work orders with bound dependencies. Modified in
                place when fixes are applied.
            auto_fix: Insert prerequisites and break cycles.

        Returns:
            ValidationResult. ``valid`` is False while any error remains.
        """
        logger.info(f"Validating dependencies for {len(work_orders)} work orders")

        issues: list[ValidationIssue] = []
        strategies: list[FixStrategy] = []
        auto_fixed = False

        # 1. Missing dependencies
        missing = self.find_missing_dependencies(work_orders)
        if missing and auto_fix:
            applied = await self._insert_prerequisites(work_orders, missing, strategies)
            auto_fixed = auto_fixed or applied
            # Re-verify after insertion
            missing = self.find_missing_dependencies(work_orders)
        issues.extend(missing)

        # 2. Cycles
        cycles = self.find_cycles(work_orders)
        for cycle in cycles:
            issue = self._cycle_issue(cycle)
            issue.resolved = auto_fix
            issues.append(issue)
        if cycles and auto_fix:
            removed = self.break_cycles(work_orders)
            strategies.append(
                FixStrategy(
                    type=FixType.REORDER,
                    description=f"Removed {len(removed)} back-edge(s) closing dependency cycles",
                    target_work_orders=[dependent for dependent, _ in removed],
                    applied=True,
                )
            )
            auto_fixed = True

        # 3. Duplicate file ownership
        duplicates = self.find_duplicate_files(work_orders)
        for file_path, owners in duplicates.items():
            issues.append(
                ValidationIssue(
                    type=IssueType.DUPLICATE_FILES,
                    severity=IssueSeverity.WARNING,
                    work_order_ids=owners,
                    description=f"File {file_path} is in scope of {len(owners)} work orders",
                    auto_fixable=False,
                )
            )
            strategies.append(
                FixStrategy(
                    type=FixType.MERGE,
                    description=f"Consider merging work orders that share {file_path}",
                    target_work_orders=owners,
                )
            )

        # 4. Malformed references
        issues.extend(self.find_invalid_references(work_orders))

        if auto_fixed:
            strategies.append(
                FixStrategy(
                    type=FixType.RENUMBER,
                    description="Positional indices recomputed from stable ids",
                    target_work_orders=[wo.id for wo in work_orders],
                    applied=True,
                )
            )

        remaining = [
            issue
            for issue in issues
            if issue.severity == IssueSeverity.ERROR and not issue.resolved
        ]
        result = ValidationResult(
            valid=not remaining,
            issues=issues,
            fix_strategies=strategies,
            auto_fixed=auto_fixed,
        )

        logger.info(
            f"Dependency validation: valid={result.valid}, "
            f"{len(result.errors)} errors, {len(result.warnings)} warnings, "
            f"auto_fixed={auto_fixed}"
        )
        return result

    # =========================================================================
    # CHECKS
    # =========================================================================

    def find_missing_dependencies(self, work_orders: list[WorkOrder]) -> list[ValidationIssue]:
        """Find references that look valid but point at no work order.

        A non-negative integer that is not a valid index (and was therefore
        never bound to an id), or an id-shaped reference to a work order
        that is no longer in the list.
        """
        known = {wo.id for wo in work_orders}
        issues = []
        for work_order in work_orders:
            unresolved = [
                ref
                for ref in work_order.dependencies
                if ref not in known and self._is_missing_reference(ref)
            ]
            if unresolved:
                issues.append(
                    ValidationIssue(
                        type=IssueType.MISSING_DEPENDENCY,
                        severity=IssueSeverity.ERROR,
                        work_order_ids=[work_order.id],
                        description=(
                            f"'{work_order.title}' depends on non-existent work "
                            f"order(s): {', '.join(unresolved)}"
                        ),
                        auto_fixable=True,
                    )
                )
        return issues

    def find_invalid_references(self, work_orders: list[WorkOrder]) -> list[ValidationIssue]:
        """Find malformed references (non-numeric tokens, negative indices)."""
        known = {wo.id for wo in work_orders}
        issues = []
        for work_order in work_orders:
            invalid = [
                ref
                for ref in work_order.dependencies
                if ref not in known and not self._is_missing_reference(ref)
            ]
            if invalid:
                issues.append(
                    ValidationIssue(
                        type=IssueType.INVALID_REFERENCE,
                        severity=IssueSeverity.ERROR,
                        work_order_ids=[work_order.id],
                        description=(
                            f"'{work_order.title}' has invalid dependency "
                            f"reference(s): {', '.join(invalid)}"
                        ),
                        auto_fixable=False,
                    )
                )
        return issues

    @staticmethod
    def _is_missing_reference(reference: str) -> bool:
        if reference.startswith("wo-"):
            return True
        index = parse_index(reference)
        return index is not None and index >= 0

    def find_cycles(self, work_orders: list[WorkOrder]) -> list[list[str]]:
        """
        Detect cycles using DFS.

        Returns:
            Cycle paths as lists of ids, first node repeated at the end.
            The final edge (last -> first) is the back-edge closing the cycle.

        Example:
            >>> validator.find_cycles(work_orders)
            [["wo-a", "wo-b", "wo-a"]]
        """
        graph = self._graph(work_orders)
        WHITE, GRAY, BLACK = 0, 1, 2
        colors: dict[str, int] = {node: WHITE for node in graph}
        cycles: list[list[str]] = []

        def dfs(node: str, path: list[str]) -> None:
            colors[node] = GRAY
            path.append(node)

            for neighbor in graph[node]:
                if colors[neighbor] == GRAY:
                    cycle_start = path.index(neighbor)
                    cycles.append(path[cycle_start:] + [neighbor])
                elif colors[neighbor] == WHITE:
                    dfs(neighbor, path)

            path.pop()
            colors[node] = BLACK

        for node in graph:
            if colors[node] == WHITE:
                dfs(node, [])

        return cycles

    def find_duplicate_files(self, work_orders: list[WorkOrder]) -> dict[str, list[str]]:
        """Map each file owned by more than one work order to its owners."""
        owners: dict[str, list[str]] = {}
        for work_order in work_orders:
            for file_path in dict.fromkeys(work_order.files_in_scope):
                owners.setdefault(file_path, []).append(work_order.id)
        return {path: ids for path, ids in owners.items() if len(ids) > 1}

    # =========================================================================
    # FIXES
    # =========================================================================

    async def _insert_prerequisites(
        self,
        work_orders: list[WorkOrder],
        missing: list[ValidationIssue],
        strategies: list[FixStrategy],
    ) -> bool:
        applied = False
        known = {wo.id for wo in work_orders}

        for issue in missing:
            dependent_id = issue.work_order_ids[0]
            dependent = next(wo for wo in work_orders if wo.id == dependent_id)
            prerequisite = await self.synthesizer(dependent, list(work_orders))
            if prerequisite is None:
                strategies.append(
                    FixStrategy(
                        type=FixType.INSERT,
                        description=f"Could not synthesize a prerequisite for '{dependent.title}'",
                        target_work_orders=[dependent_id],
                    )
                )
                continue

            position = work_orders.index(dependent)
            work_orders.insert(position, prerequisite)
            known.add(prerequisite.id)

            replaced = False
            new_dependencies: list[str] = []
            for ref in dependent.dependencies:
                if ref not in known and self._is_missing_reference(ref):
                    if not replaced:
                        new_dependencies.append(prerequisite.id)
                        replaced = True
                else:
                    new_dependencies.append(ref)
            dependent.dependencies = new_dependencies

            logger.info(
                f"Inserted prerequisite '{prerequisite.title}' before '{dependent.title}'"
            )
            strategies.append(
                FixStrategy(
                    type=FixType.INSERT,
                    description=f"Inserted prerequisite before '{dependent.title}'",
                    target_work_orders=[dependent_id],
                    new_work_orders=[prerequisite],
                    applied=True,
                )
            )
            applied = True

        return applied

    def break_cycles(self, work_orders: list[WorkOrder]) -> list[tuple[str, str]]:
        """
        Remove back-edges until the graph is acyclic.

        For each detected cycle ``[n0, ..., nk, n0]`` the dependency of
        ``nk`` on ``n0`` is removed; forward edges are kept.

        Returns:
            Removed edges as (dependent id, dependency id) pairs.
        """
        by_id = {wo.id: wo for wo in work_orders}
        removed: list[tuple[str, str]] = []
        max_rounds = sum(len(wo.dependencies) for wo in work_orders) + 1

        for _ in range(max_rounds):
            cycles = self.find_cycles(work_orders)
            if not cycles:
                break
            for cycle in cycles:
                last, first = cycle[-2], cycle[-1]
                dependent = by_id[last]
                if first in dependent.dependencies:
                    dependent.dependencies = [d for d in dependent.dependencies if d != first]
                    removed.append((last, first))
                    logger.info(f"Broke dependency cycle: removed {last} -> {first}")

        return removed

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _graph(work_orders: list[WorkOrder]) -> dict[str, list[str]]:
        known = {wo.id for wo in work_orders}
        return {
            wo.id: [ref for ref in dict.fromkeys(wo.dependencies) if ref in known]
            for wo in work_orders
        }

    @staticmethod
    def _cycle_issue(cycle: list[str]) -> ValidationIssue:
        return ValidationIssue(
            type=IssueType.CIRCULAR_DEPENDENCY,
            severity=IssueSeverity.ERROR,
            work_order_ids=cycle[:-1],
            description=f"Circular dependency: {' -> '.join(cycle)}",
            auto_fixable=True,
        )

