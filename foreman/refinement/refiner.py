"""
Self-refinement loop.

Drives one generated artifact toward a clean diagnostic run. Each cycle
regenerates the artifact with the remaining diagnostics (and contract
violations, when a contract checker is supplied) in the prompt, using a
cycle-specific strategy:

- cycle 1: syntax and imports
- cycle 2: type and declaration correctness
- cycle 3+: aggressive fixes, framed as the final attempt

The loop stops when the artifact is clean, when the cycle budget is spent,
or after two consecutive cycles without any net reduction in errors.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from loguru import logger

from foreman.core.errors import GenerationError
from foreman.refinement.diagnostics import DiagnosticChecker, format_diagnostic_summary
from foreman.refinement.models import (
    BreakingChange,
    ContractReport,
    Diagnostic,
    RefinementCycle,
    RefinementResult,
)
from foreman.refinement.sanitizer import sanitize

# =============================================================================
# THRESHOLDS
# =============================================================================

MAX_CYCLES = 3
MIN_ERROR_IMPROVEMENT = 0.25
ZERO_PROGRESS_ABORT = 2

# Relative prompt cost per cycle; later cycles carry more context
CYCLE_COST_MULTIPLIERS = {1: 1.0, 2: 1.2, 3: 1.5}

STRATEGY_SYNTAX_IMPORTS = "syntax_imports"
STRATEGY_TYPE_SAFETY = "type_safety"
STRATEGY_AGGRESSIVE = "aggressive_fixes"

GenerateFn = Callable[[str], Awaitable[str]]
ContractCheck = Callable[[str], ContractReport | Awaitable[ContractReport]]


def strategy_for_cycle(cycle: int) -> str:
    """Prompt strategy label for a cycle number."""
    if cycle == 1:
        return STRATEGY_SYNTAX_IMPORTS
    if cycle == 2:
        return STRATEGY_TYPE_SAFETY
    return STRATEGY_AGGRESSIVE


def cost_multiplier_for_cycle(cycle: int) -> float:
    """Relative cost of a cycle's prompt."""
    return CYCLE_COST_MULTIPLIERS.get(cycle, CYCLE_COST_MULTIPLIERS[3])


def build_refinement_prompt(
    task_description: str,
    previous_artifact: str,
    diagnostics: list[Diagnostic],
    violations: list[BreakingChange],
    cycle: int,
    max_cycles: int,
    history: list[RefinementCycle],
) -> str:
    """Build the regeneration prompt for ``cycle``."""
    strategy = strategy_for_cycle(cycle)
    final = strategy == STRATEGY_AGGRESSIVE or cycle == max_cycles

    if strategy == STRATEGY_SYNTAX_IMPORTS:
        guidance = f"""REFINEMENT STRATEGY (Cycle {cycle}/{max_cycles}): SYNTAX & IMPORTS
Focus on:
1. Add missing imports
2. Fix syntax errors (brackets, delimiters, quotes)
3. Correct obvious typos in identifiers
4. Ensure all referenced definitions are present"""
    elif strategy == STRATEGY_TYPE_SAFETY:
        previous = history[-1] if history else None
        rate = f"{previous.improvement_rate * 100:.0f}" if previous else "0"
        guidance = f"""REFINEMENT STRATEGY (Cycle {cycle}/{max_cycles}): TYPE SAFETY & DECLARATIONS
Previous cycle improved {rate}% of errors. Now focus on:
1. Declare all variables before use
2. Add proper type annotations to functions
3. Fix interface and type mismatches
4. Resolve null and undefined handling
5. Ensure generic type parameters are correct"""
    else:
        fixed = sum(c.errors_before - c.errors_after for c in history)
        guidance = f"""REFINEMENT STRATEGY (Cycle {cycle}/{max_cycles} - FINAL): AGGRESSIVE FIXES
After {len(history)} cycles, {len(diagnostics) + len(violations)} errors remain ({fixed} fixed so far).
This is the FINAL attempt. Try alternative approaches:
1. Rewrite problematic sections entirely (don't just patch)
2. Use a loose type as a temporary escape hatch for stubborn type errors (mark it with a TODO comment)
3. Simplify complex type logic that causes cascading errors
4. Remove features that are too complex to fix quickly
5. Keep ALL critical functionality working

IMPORTANT: Provide working code even if it means temporary compromises."""

    sections = [task_description, ""]
    if diagnostics:
        sections.append(f"PREVIOUS ATTEMPT HAD {len(diagnostics)} ERRORS:")
        sections.append(format_diagnostic_summary(diagnostics))
        sections.append("")
    if violations:
        sections.append(f"PREVIOUS ATTEMPT BROKE {len(violations)} CONTRACTS:")
        sections.extend(
            f"- {v.type} at {v.field_path or 'unknown'}: {v.impact_description}"
            + (f" (suggestion: {v.migration_suggestion})" if v.migration_suggestion else "")
            for v in violations
        )
        sections.append("")

    closing = "FINAL ATTEMPT - Make it work!" if final else "Please fix these errors and provide corrected code."
    sections.extend(
        [
            guidance,
            "",
            "PREVIOUS CODE:",
            "```",
            previous_artifact,
            "```",
            "",
            closing,
            "",
            "Provide ONLY the corrected code without explanation.",
        ]
    )
    return "\n".join(sections)


class SelfRefiner:
    """
    Iteratively regenerate an artifact until it passes its checks.

    Example:
        >>> refiner = SelfRefiner(DiagnosticChecker("npx tsc --noEmit"))
        >>> result = await refiner.refine(code, task_description, generate)
        >>> result.refinement_count
        2
        >>> result.final_errors
        0
    """

    def __init__(
        self,
        checker: DiagnosticChecker,
        max_cycles: int = MAX_CYCLES,
        min_improvement: float = MIN_ERROR_IMPROVEMENT,
        zero_progress_abort: int = ZERO_PROGRESS_ABORT,
    ) -> None:
        """
        Initialize the refiner.

        Args:
            checker: Diagnostic checker run after every regeneration.
            max_cycles: Default cycle budget.
            min_improvement: Improvement rate below which a warning is logged.
            zero_progress_abort: Consecutive zero-improvement cycles that stop the loop.
        """
        self.checker = checker
        self.max_cycles = max_cycles
        self.min_improvement = min_improvement
        self.zero_progress_abort = zero_progress_abort

    async def refine(
        self,
        initial_artifact: str,
        task_description: str,
        generate: GenerateFn,
        max_cycles: int | None = None,
        contract_check: ContractCheck | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RefinementResult:
        """
        Refine ``initial_artifact``.

        Args:
            initial_artifact: First generated artifact.
            task_description: Task prompt the artifact was generated from.
            generate: Regenerates an artifact from a prompt.
            max_cycles: Cycle budget (defaults to the refiner's).
            contract_check: Optional contract checker; skipped when absent.
            cancel_event: Checked before each cycle. When set, the loop
                stops and the partial history is returned.

        Returns:
            RefinementResult with the final artifact and full cycle history.
        """
        max_cycles = self.max_cycles if max_cycles is None else max_cycles

        summary = sanitize(initial_artifact)
        artifact = summary.sanitized
        sanitizer_changes = list(summary.changes_made)

        diagnostics = await self.checker.check(artifact)
        violations = await self._check_contracts(contract_check, artifact)
        initial_errors = len(diagnostics)

        logger.info(
            f"Initial check: {initial_errors} diagnostics"
            + (f", {len(violations)} contract violations" if contract_check else "")
        )

        if not diagnostics and not violations:
            return RefinementResult(
                content=artifact,
                refinement_count=0,
                initial_errors=0,
                final_errors=0,
                refinement_success=True,
                contract_violations=[] if contract_check else None,
                sanitizer_changes=sanitizer_changes,
            )

        history: list[RefinementCycle] = []
        violation_counts: list[int] = []
        zero_progress = 0
        cancelled = False
        abort_reason: str | None = None

        for cycle in range(1, max_cycles + 1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Refinement cancelled before cycle {cycle}")
                cancelled = True
                abort_reason = "cancelled"
                break

            errors_before = len(diagnostics) + len(violations)
            strategy = strategy_for_cycle(cycle)
            prompt = build_refinement_prompt(
                task_description, artifact, diagnostics, violations, cycle, max_cycles, history
            )

            logger.info(f"Refinement cycle {cycle}/{max_cycles} ({strategy}), {errors_before} errors")

            try:
                regenerated = await generate(prompt)
            except GenerationError as e:
                logger.warning(f"Refinement cycle {cycle} generation failed: {e}")
                abort_reason = f"generation failed: {e}"
                break

            summary = sanitize(regenerated)
            artifact = summary.sanitized
            sanitizer_changes.extend(summary.changes_made)

            diagnostics = await self.checker.check(artifact)
            violations = await self._check_contracts(contract_check, artifact)
            errors_after = len(diagnostics) + len(violations)

            improvement = (errors_before - errors_after) / errors_before if errors_before else 0.0
            history.append(
                RefinementCycle(
                    cycle=cycle,
                    errors_before=errors_before,
                    errors_after=errors_after,
                    improvement_rate=round(improvement, 4),
                    prompt_strategy=strategy,
                    contract_violations=len(violations) if contract_check else None,
                    cost_multiplier=cost_multiplier_for_cycle(cycle),
                )
            )
            if contract_check:
                violation_counts.append(len(violations))

            logger.info(
                f"Cycle {cycle}: {errors_before} -> {errors_after} errors "
                f"({improvement * 100:.0f}% improvement)"
            )

            if errors_after == 0:
                logger.info(f"Refinement converged after {cycle} cycles")
                break

            if errors_after >= errors_before:
                zero_progress += 1
            else:
                zero_progress = 0

            if zero_progress >= self.zero_progress_abort:
                logger.warning(
                    f"Aborting refinement: {zero_progress} consecutive cycles without progress"
                )
                abort_reason = "no progress"
                break

            if improvement < self.min_improvement and cycle < max_cycles:
                logger.warning(
                    f"Low improvement in cycle {cycle}: {improvement * 100:.0f}% "
                    f"(< {self.min_improvement * 100:.0f}%)"
                )

        final_errors = len(diagnostics)
        return RefinementResult(
            content=artifact,
            refinement_count=len(history),
            initial_errors=initial_errors,
            final_errors=final_errors,
            refinement_success=(
                (final_errors == 0 and not violations) or final_errors < initial_errors
            ),
            error_details=diagnostics,
            contract_violations=violation_counts if contract_check else None,
            remaining_violations=violations,
            cycle_history=history,
            sanitizer_changes=sanitizer_changes,
            cancelled=cancelled,
            abort_reason=abort_reason,
        )

    @staticmethod
    async def _check_contracts(
        contract_check: ContractCheck | None,
        artifact: str,
    ) -> list[BreakingChange]:
        if contract_check is None:
            return []
        report = contract_check(artifact)
        if inspect.isawaitable(report):
            report = await report
        return list(report.violations)
