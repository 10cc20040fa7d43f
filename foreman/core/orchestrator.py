"""Main Foreman orchestrator - coordinates the entire execution pipeline.

This module provides the primary interface for running Foreman: estimate a
specification, decompose it into validated work orders, then execute the
work orders in dependency waves. Each work order is routed to a proposer
under the daily budget, generated with an explicit retry ladder, and driven
to a clean diagnostic run by the self-refiner.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

from foreman.core.config import Settings, get_settings
from foreman.core.errors import (
    BudgetExceededError,
    DiagnosticCheckError,
    GenerationError,
    RoutingRefusedError,
)
from foreman.decomposition.dependency_validator import DependencyValidator
from foreman.decomposition.estimator import ComplexityEstimator
from foreman.decomposition.models import (
    ComplexityEstimate,
    DecompositionOutput,
    TechnicalSpecification,
    WorkOrder,
)
from foreman.decomposition.planner import BatchPlanner
from foreman.generation.anthropic_generator import AnthropicGenerator
from foreman.generation.base import Generator, ProviderGenerator
from foreman.generation.openai_generator import OpenAIGenerator
from foreman.refinement.classifier import FailureClass, classify_failure, classify_refinement
from foreman.refinement.diagnostics import DiagnosticChecker, format_diagnostic_summary
from foreman.refinement.models import RefinementResult
from foreman.refinement.refiner import ContractCheck, GenerateFn, SelfRefiner
from foreman.routing.budget import BudgetService, InMemoryBudgetLedger
from foreman.routing.complexity import estimate_work_order_complexity
from foreman.routing.models import (
    BudgetLimits,
    Provider,
    ProposerProfile,
    RetryAction,
    RetryStrategy,
    RoutingContext,
    RoutingDecision,
    RoutingStrategy,
)
from foreman.routing.policy import (
    RoutingPolicy,
    detect_hard_stop,
    estimate_routing_cost,
    highest_ceiling_proposer,
)
from foreman.routing.registry import ProposerRegistry

MAX_TRACKED_ERRORS = 50


# =============================================================================
# RESULTS
# =============================================================================


class WorkOrderStatus(str, Enum):
    """Final status of one work order."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    BLOCKED = "blocked"


@dataclass
class WorkOrderOutcome:
    """Result of executing one work order."""

    work_order_id: str
    title: str
    status: WorkOrderStatus
    wave: int = 0
    decisions: list[RoutingDecision] = field(default_factory=list)
    retries: list[RetryStrategy] = field(default_factory=list)
    refinement: RefinementResult | None = None
    cost: float = 0.0
    best_attempt: int | None = None
    failure_class: FailureClass | None = None
    error: str | None = None

    @property
    def content(self) -> str | None:
        """Final artifact, when one was produced."""
        return self.refinement.content if self.refinement else None

    @property
    def attempts(self) -> int:
        """Number of generation attempts made."""
        if not self.decisions:
            return 0
        return 1 + sum(1 for r in self.retries if r.should_retry)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "work_order_id": self.work_order_id,
            "title": self.title,
            "status": self.status.value,
            "wave": self.wave,
            "attempts": self.attempts,
            "decisions": [d.model_dump(mode="json") for d in self.decisions],
            "retries": [r.model_dump(mode="json") for r in self.retries],
            "refinement": self.refinement.model_dump(mode="json") if self.refinement else None,
            "cost": round(self.cost, 6),
            "best_attempt": self.best_attempt,
            "failure_class": self.failure_class.value if self.failure_class else None,
            "error": self.error,
        }


@dataclass
class ExecutionReport:
    """Result of a full execution run."""

    decomposition: DecompositionOutput
    outcomes: list[WorkOrderOutcome]
    waves: list[list[str]]
    started_at: datetime
    completed_at: datetime

    def count(self, status: WorkOrderStatus) -> int:
        """Number of outcomes with ``status``."""
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total_cost(self) -> float:
        """Actual spend across every work order."""
        return sum(o.cost for o in self.outcomes)

    @property
    def success(self) -> bool:
        """True when every work order completed."""
        return all(o.status == WorkOrderStatus.COMPLETED for o in self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with positional dependency indices."""
        index_by_id = {
            wo.id: i for i, wo in enumerate(self.decomposition.work_orders)
        }
        return {
            "status": "completed" if self.success else "failed",
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": (self.completed_at - self.started_at).total_seconds(),
            "total_work_orders": len(self.outcomes),
            "completed": self.count(WorkOrderStatus.COMPLETED),
            "partial": self.count(WorkOrderStatus.PARTIAL),
            "failed": self.count(WorkOrderStatus.FAILED),
            "blocked": self.count(WorkOrderStatus.BLOCKED),
            "total_cost": round(self.total_cost, 6),
            "waves": [[index_by_id[wo_id] for wo_id in wave] for wave in self.waves],
            "decomposition": self.decomposition.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# =============================================================================
# HELPERS
# =============================================================================


def calculate_waves(work_orders: list[WorkOrder]) -> list[list[WorkOrder]]:
    """Group work orders into execution waves by dependency level.

    A work order lands in the first wave after all of its dependencies.
    References to unknown ids are ignored for ordering; `Foreman.execute`
    blocks the work orders that carry them. Work orders caught in a cycle
    are forced into a final wave.

    Example:
        >>> [len(w) for w in calculate_waves(work_orders)]
        [2, 3, 1]
    """
    known = {wo.id for wo in work_orders}
    assigned: set[str] = set()
    waves: list[list[WorkOrder]] = []

    while len(assigned) < len(work_orders):
        wave = [
            wo
            for wo in work_orders
            if wo.id not in assigned
            and all(d in assigned for d in wo.dependencies if d in known)
        ]

        if not wave:
            wave = [wo for wo in work_orders if wo.id not in assigned]
            logger.error(f"Cannot order remaining work orders: {[wo.id for wo in wave]}")

        waves.append(wave)
        assigned.update(wo.id for wo in wave)

    return waves


def build_work_order_prompt(
    work_order: WorkOrder,
    completed: dict[str, WorkOrderOutcome] | None = None,
    failure_context: str | None = None,
) -> str:
    """Build the generation prompt for one work order."""
    lines = [
        f"# Work Order: {work_order.title}",
        "",
        work_order.description,
        "",
        "## Acceptance Criteria",
    ]
    lines.extend(f"- {c}" for c in work_order.acceptance_criteria or ["(none stated)"])

    if work_order.files_in_scope:
        lines.extend(["", "## Files In Scope"])
        lines.extend(f"- {f}" for f in work_order.files_in_scope)

    if completed:
        finished = [completed[d] for d in work_order.dependencies if d in completed]
        if finished:
            lines.extend(["", "## Completed Dependencies"])
            lines.extend(f"- {o.title} ({o.status.value})" for o in finished)

    if failure_context:
        lines.extend(["", "## Previous Attempt Failed", failure_context])

    lines.extend(["", "Provide ONLY the code for this work order without explanation."])
    return "\n".join(lines)


def build_default_generator(settings: Settings, max_tokens: int) -> ProviderGenerator:
    """Provider dispatch over the Anthropic and OpenAI adapters."""
    anthropic_key = (
        settings.anthropic_api_key.get_secret_value() if settings.anthropic_api_key else None
    )
    openai_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
    return ProviderGenerator(
        {
            Provider.ANTHROPIC: AnthropicGenerator(api_key=anthropic_key, max_tokens=max_tokens),
            Provider.OPENAI: OpenAIGenerator(api_key=openai_key, max_tokens=max_tokens),
        }
    )


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================


class Foreman:
    """
    Main Foreman orchestrator class.

    Coordinates the pipeline from specification to refined artifacts:
    1. Estimate complexity and plan batches
    2. Decompose into work orders and validate the dependency graph
    3. Execute work orders in dependency waves
    4. Route each work order under the daily budget
    5. Generate with retries, then self-refine

    Example:
        >>> foreman = Foreman()
        >>> report = await foreman.execute(spec)
        >>> report.count(WorkOrderStatus.COMPLETED)
        6
    """

    def __init__(
        self,
        settings: Settings | None = None,
        generator: Generator | None = None,
        registry: ProposerRegistry | None = None,
        budget: BudgetService | None = None,
        policy: RoutingPolicy | None = None,
        checker: DiagnosticChecker | None = None,
        contract_check: ContractCheck | None = None,
        capacity: int | None = None,
    ) -> None:
        """Initialize Foreman orchestrator.

        Args:
            settings: Optional settings override. Uses default if not provided.
            generator: Generation service for every call. Provider adapters
                built from settings if not provided.
            registry: Proposer registry. Loaded from settings if not provided.
            budget: Budget service. An in-memory ledger capped at the
                emergency kill limit if not provided.
            policy: Routing policy.
            checker: Diagnostic checker. Built from settings if not provided.
            contract_check: Optional contract checker run during refinement.
            capacity: Concurrent work orders per wave (default from settings).
        """
        self.settings = settings or get_settings()
        self._configure_logging()

        self.limits = BudgetLimits(
            daily_soft_cap=self.settings.foreman_daily_soft_cap,
            daily_hard_cap=self.settings.foreman_daily_hard_cap,
            emergency_kill=self.settings.foreman_emergency_kill,
        )
        self.registry = registry or ProposerRegistry.from_settings(self.settings)
        self.generator = generator or build_default_generator(
            self.settings, self.settings.foreman_generation_max_tokens
        )
        self.architect_generator = generator or build_default_generator(
            self.settings, self.settings.foreman_architect_max_tokens
        )
        self.budget = budget or InMemoryBudgetLedger(daily_limit=self.limits.emergency_kill)
        self.policy = policy or RoutingPolicy(
            hard_stop_proposer=self.settings.foreman_hard_stop_proposer
        )
        self.checker = checker or DiagnosticChecker.from_settings(self.settings)
        self.refiner = SelfRefiner(
            self.checker, max_cycles=self.settings.foreman_max_refinement_cycles
        )
        self.contract_check = contract_check
        self.capacity = capacity or self.settings.foreman_worktree_capacity

        self.architect = self._architect_proposer()
        self.estimator = ComplexityEstimator(self.architect_generator, self.architect)
        self.planner = BatchPlanner(
            self.architect_generator,
            self.architect,
            estimator=self.estimator,
            validator=DependencyValidator(),
        )

        self._routing_lock = asyncio.Lock()
        self._executing = False
        self._total_executed = 0
        self._total_failed = 0
        self._errors: list[str] = []

    def _configure_logging(self) -> None:
        """Configure loguru based on settings."""
        logger.remove()  # Remove default handler

        log_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

        logs_dir = Path(self.settings.foreman_log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            str(logs_dir / "foreman_{time:YYYY-MM-DD}.log"),
            rotation="1 day",
            retention="7 days",
            level=self.settings.foreman_log_level,
            format=log_format,
        )

        logger.add(
            lambda msg: print(msg, end=""),
            level="DEBUG" if self.settings.foreman_debug else self.settings.foreman_log_level,
            format=log_format,
            colorize=True,
        )

    def _architect_proposer(self) -> ProposerProfile:
        name = self.settings.foreman_architect_model
        if name in self.registry:
            return self.registry.get(name)
        fallback = highest_ceiling_proposer(self.registry.active() or self.registry.all())
        logger.warning(f"Architect proposer {name} not registered, using {fallback.name}")
        return fallback

    # =========================================================================
    # PRIMARY INTERFACE
    # =========================================================================

    async def estimate(self, spec: TechnicalSpecification) -> ComplexityEstimate:
        """Estimate decomposition size for ``spec``.

        Raises:
            EstimationError: If estimation fails.
        """
        return await self.estimator.estimate(spec)

    async def decompose(
        self,
        spec: TechnicalSpecification,
        estimate: ComplexityEstimate | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DecompositionOutput:
        """Decompose ``spec`` into validated work orders."""
        return await self.planner.decompose(spec, estimate=estimate, cancel_event=cancel_event)

    async def execute(
        self,
        spec: TechnicalSpecification,
        cancel_event: asyncio.Event | None = None,
    ) -> ExecutionReport:
        """
        Run the full pipeline for one specification.

        Args:
            spec: Specification to build.
            cancel_event: Checked between batches, between waves and before
                each refinement cycle.

        Returns:
            ExecutionReport with one outcome per work order.

        Raises:
            EstimationError: If estimation fails.
            DecompositionError: If decomposition fails or is cancelled.
            RoutingRefusedError: If the emergency kill threshold is reached.

        Example:
            >>> foreman = Foreman()
            >>> report = await foreman.execute(spec)
            >>> report.to_dict()["status"]
            'completed'
        """
        started_at = datetime.utcnow()
        logger.info(f"Starting Foreman execution for {spec.feature_name}")

        estimate = await self.estimate(spec)
        decomposition = await self.decompose(spec, estimate=estimate, cancel_event=cancel_event)

        logger.info(
            f"Decomposed into {len(decomposition.work_orders)} work orders "
            f"(estimated ${decomposition.total_estimated_cost:.2f})"
        )

        invalid = decomposition.validation.blocked_work_order_ids()
        if invalid:
            logger.error(f"Dependency graph has {len(invalid)} work orders with unresolved errors")

        outcomes, waves = await self.execute_work_orders(
            decomposition.work_orders, cancel_event=cancel_event, invalid=invalid
        )

        report = ExecutionReport(
            decomposition=decomposition,
            outcomes=outcomes,
            waves=waves,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )
        logger.info(
            f"Execution complete: {report.count(WorkOrderStatus.COMPLETED)} completed, "
            f"{report.count(WorkOrderStatus.PARTIAL)} partial, "
            f"{report.count(WorkOrderStatus.FAILED)} failed, "
            f"{report.count(WorkOrderStatus.BLOCKED)} blocked "
            f"(${report.total_cost:.4f})"
        )
        return report

    async def execute_work_orders(
        self,
        work_orders: list[WorkOrder],
        cancel_event: asyncio.Event | None = None,
        invalid: dict[str, str] | None = None,
    ) -> tuple[list[WorkOrderOutcome], list[list[str]]]:
        """
        Execute work orders wave by wave.

        Work orders in one wave run concurrently, bounded by ``capacity``.
        Dependents of failed or blocked work orders are marked blocked
        without being run.

        Args:
            work_orders: Work orders with bound dependencies.
            cancel_event: Checked before each wave.
            invalid: Work order id to unresolved validation error. These are
                blocked without being run.

        Returns:
            Tuple of (outcomes in work order order, waves as id lists).

        Raises:
            RoutingRefusedError: If the emergency kill threshold is reached.
        """
        waves = calculate_waves(work_orders)
        outcomes: dict[str, WorkOrderOutcome] = {}
        semaphore = asyncio.Semaphore(self.capacity)

        logger.info(f"Executing {len(work_orders)} work orders in {len(waves)} waves")
        self._executing = True

        async def run(work_order: WorkOrder, wave_number: int) -> WorkOrderOutcome:
            async with semaphore:
                return await self.execute_work_order(
                    work_order, completed=outcomes, wave=wave_number, cancel_event=cancel_event
                )

        try:
            for wave_number, wave in enumerate(waves):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"Execution cancelled before wave {wave_number}")
                    for wo in wave:
                        outcomes[wo.id] = self._blocked(wo, wave_number, "Execution cancelled")
                        self._record(outcomes[wo.id])
                    continue

                runnable = []
                for wo in wave:
                    if invalid and wo.id in invalid:
                        outcomes[wo.id] = self._blocked(
                            wo, wave_number, f"Invalid dependency graph: {invalid[wo.id]}"
                        )
                        self._record(outcomes[wo.id])
                        continue

                    failed_deps = [
                        d
                        for d in wo.dependencies
                        if d in outcomes
                        and outcomes[d].status in (WorkOrderStatus.FAILED, WorkOrderStatus.BLOCKED)
                    ]
                    if failed_deps:
                        outcomes[wo.id] = self._blocked(
                            wo, wave_number, f"Blocked by failed dependencies: {failed_deps}"
                        )
                        self._record(outcomes[wo.id])
                    else:
                        runnable.append(wo)

                logger.info(f"Wave {wave_number}: running {len(runnable)} of {len(wave)} work orders")

                results = await asyncio.gather(
                    *(run(wo, wave_number) for wo in runnable),
                    return_exceptions=True,
                )

                refused: RoutingRefusedError | None = None
                for wo, result in zip(runnable, results):
                    if isinstance(result, RoutingRefusedError):
                        refused = result
                        outcomes[wo.id] = self._failed(
                            wo, wave_number, str(result), FailureClass.BUDGET_EXCEEDED
                        )
                    elif isinstance(result, Exception):
                        logger.error(f"Work order {wo.id} raised: {result}")
                        outcomes[wo.id] = self._failed(
                            wo, wave_number, str(result), classify_failure(result)
                        )
                    elif isinstance(result, BaseException):
                        raise result
                    else:
                        outcomes[wo.id] = result

                    self._record(outcomes[wo.id])

                if refused is not None:
                    raise refused
        finally:
            self._executing = False

        ordered = [outcomes[wo.id] for wo in work_orders if wo.id in outcomes]
        return ordered, [[wo.id for wo in wave] for wave in waves]

    async def execute_work_order(
        self,
        work_order: WorkOrder,
        completed: dict[str, WorkOrderOutcome] | None = None,
        wave: int = 0,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkOrderOutcome:
        """
        Route, generate and refine one work order.

        Args:
            work_order: Work order to execute.
            completed: Outcomes of earlier work orders, for prompt context.
            wave: Wave number recorded on the outcome.
            cancel_event: Passed through to the refiner.

        Returns:
            WorkOrderOutcome. Routing refusal is the only failure raised.

        Raises:
            RoutingRefusedError: If the emergency kill threshold is reached.
        """
        outcome = WorkOrderOutcome(
            work_order_id=work_order.id,
            title=work_order.title,
            status=WorkOrderStatus.FAILED,
            wave=wave,
        )

        complexity = estimate_work_order_complexity(work_order)
        description = "\n".join(
            [work_order.title, work_order.description, *work_order.acceptance_criteria]
        )
        hard_stop = detect_hard_stop(description)
        estimated_cost = estimate_routing_cost(complexity, hard_stop.required)

        logger.debug(
            f"Work order {work_order.id}: complexity {complexity:.2f}, "
            f"hard stop {hard_stop.required}"
        )

        best: RefinementResult | None = None
        failure_context: str | None = None
        proposer: ProposerProfile | None = None
        switch: RetryStrategy | None = None
        attempt = 1

        while True:
            try:
                if proposer is None:
                    proposer, reservation_id = await self._route(
                        work_order, complexity, hard_stop.required, estimated_cost, outcome
                    )
                else:
                    reservation_id = await self._reserve(estimated_cost, proposer)
                    if switch is not None:
                        decision = self._switch_decision(outcome.decisions[-1], switch)
                        outcome.decisions.append(decision.with_reservation(reservation_id))
                        switch = None

                prompt = build_work_order_prompt(work_order, completed, failure_context)
                content = await self._metered_generate(
                    prompt, proposer, reservation_id, outcome
                )
                refinement = await self.refiner.refine(
                    content,
                    prompt,
                    self._refinement_generate(proposer, estimated_cost, outcome),
                    contract_check=self.contract_check,
                    cancel_event=cancel_event,
                )
            except RoutingRefusedError:
                raise
            except BudgetExceededError as e:
                outcome.error = str(e)
                outcome.failure_class = FailureClass.BUDGET_EXCEEDED
                break
            except DiagnosticCheckError as e:
                outcome.error = str(e)
                outcome.failure_class = FailureClass.ORCHESTRATION_ERROR
                break
            except GenerationError as e:
                failure_context = f"Generation failed: {e}"
                outcome.error = str(e)
                outcome.failure_class = classify_failure(e)
            else:
                if best is None or refinement.final_errors <= best.final_errors:
                    best = refinement
                    outcome.best_attempt = attempt
                if refinement.converged:
                    outcome.error = None
                    outcome.failure_class = None
                    break
                if refinement.cancelled:
                    break
                failure_context = self._refinement_failure(refinement)
                outcome.error = failure_context
                outcome.failure_class = classify_refinement(refinement)

            retry = self.policy.next_attempt(
                proposer, attempt, failure_context or "", self.registry.active()
            )
            outcome.retries.append(retry)
            if not retry.should_retry:
                logger.warning(f"Work order {work_order.id}: {retry.reasoning}")
                break

            logger.info(f"Work order {work_order.id}: {retry.reasoning}")
            if retry.action == RetryAction.SWITCH_MODEL:
                switch = retry
            proposer = self.registry.get(retry.next_proposer)
            attempt = retry.attempt_number

        outcome.refinement = best
        if best is not None and best.converged:
            outcome.status = WorkOrderStatus.COMPLETED
        elif best is not None:
            outcome.status = WorkOrderStatus.PARTIAL
        else:
            outcome.status = WorkOrderStatus.FAILED

        logger.info(f"Work order {work_order.id} {outcome.status.value} (${outcome.cost:.4f})")
        return outcome

    def status(self) -> dict[str, Any]:
        """
        Get a snapshot of execution state.

        Returns:
            Dict with executing flag, totals and the most recent errors.
        """
        return {
            "executing": self._executing,
            "total_executed": self._total_executed,
            "total_failed": self._total_failed,
            "recent_errors": list(self._errors[-MAX_TRACKED_ERRORS:]),
        }

    # =========================================================================
    # ROUTING AND METERING
    # =========================================================================

    async def _route(
        self,
        work_order: WorkOrder,
        complexity: float,
        hard_stop_required: bool,
        estimated_cost: float,
        outcome: WorkOrderOutcome,
    ) -> tuple[ProposerProfile, str]:
        # Spend read, routing and reservation happen as one step
        async with self._routing_lock:
            daily_spend = await self.budget.daily_spend()
            context = RoutingContext(
                task_description=f"{work_order.title}: {work_order.description}",
                complexity_score=complexity,
                context_requirements=list(work_order.files_in_scope),
                hard_stop_required=hard_stop_required,
                daily_spend=daily_spend,
            )
            decision = self.policy.route(context, self.registry.all(), self.limits)
            proposer = self.registry.get(decision.selected_proposer)
            reservation_id = await self._reserve(estimated_cost, proposer)

        outcome.decisions.append(decision.with_reservation(reservation_id))
        return proposer, reservation_id

    @staticmethod
    def _switch_decision(previous: RoutingDecision, retry: RetryStrategy) -> RoutingDecision:
        """New decision for a retry that moves to another proposer."""
        metadata = previous.routing_metadata.model_copy(
            update={
                "routing_strategy": RoutingStrategy.RETRY_SWITCH,
                "selection_timestamp": datetime.utcnow(),
                "budget_reservation_id": None,
            }
        )
        return RoutingDecision(
            selected_proposer=retry.next_proposer or previous.selected_proposer,
            reason=retry.reasoning,
            confidence=previous.confidence,
            fallback_proposer=previous.selected_proposer,
            routing_metadata=metadata,
        )

    async def _reserve(self, estimated_cost: float, proposer: ProposerProfile) -> str:
        reservation = await self.budget.reserve(
            estimated_cost,
            service_name=f"generation:{proposer.name}",
            metadata={"proposer": proposer.name},
        )
        if not reservation.can_proceed or reservation.reservation_id is None:
            raise BudgetExceededError(estimated_cost, reservation.current_total)
        return reservation.reservation_id

    async def _metered_generate(
        self,
        prompt: str,
        proposer: ProposerProfile,
        reservation_id: str,
        outcome: WorkOrderOutcome,
    ) -> str:
        try:
            result = await self.generator.generate(prompt, proposer)
        except Exception:
            await self.budget.cancel(reservation_id)
            raise

        cost = result.cost(proposer)
        await self.budget.commit(reservation_id, cost)
        outcome.cost += cost
        return result.content

    def _refinement_generate(
        self,
        proposer: ProposerProfile,
        estimated_cost: float,
        outcome: WorkOrderOutcome,
    ) -> GenerateFn:
        async def generate(prompt: str) -> str:
            try:
                reservation_id = await self._reserve(estimated_cost, proposer)
            except BudgetExceededError as e:
                raise GenerationError(str(e)) from e
            return await self._metered_generate(prompt, proposer, reservation_id, outcome)

        return generate

    # =========================================================================
    # OUTCOME HELPERS
    # =========================================================================

    @staticmethod
    def _refinement_failure(refinement: RefinementResult) -> str:
        parts = [f"{refinement.final_errors} diagnostics remain after refinement"]
        if refinement.error_details:
            parts.append(format_diagnostic_summary(refinement.error_details))
        if refinement.remaining_violations:
            parts.append(f"{len(refinement.remaining_violations)} contract violations remain")
        return "\n".join(parts)

    @staticmethod
    def _blocked(work_order: WorkOrder, wave: int, reason: str) -> WorkOrderOutcome:
        logger.warning(f"Work order {work_order.id} blocked: {reason}")
        return WorkOrderOutcome(
            work_order_id=work_order.id,
            title=work_order.title,
            status=WorkOrderStatus.BLOCKED,
            wave=wave,
            failure_class=FailureClass.DEPENDENCY_MISSING,
            error=reason,
        )

    @staticmethod
    def _failed(
        work_order: WorkOrder,
        wave: int,
        reason: str,
        failure_class: FailureClass,
    ) -> WorkOrderOutcome:
        return WorkOrderOutcome(
            work_order_id=work_order.id,
            title=work_order.title,
            status=WorkOrderStatus.FAILED,
            wave=wave,
            failure_class=failure_class,
            error=reason,
        )

    def _record(self, outcome: WorkOrderOutcome) -> None:
        self._total_executed += 1
        if outcome.status == WorkOrderStatus.FAILED:
            self._total_failed += 1
        if outcome.error:
            self._errors.append(f"{outcome.work_order_id}: {outcome.error.splitlines()[0]}")
            del self._errors[:-MAX_TRACKED_ERRORS]

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"Foreman(capacity={self.capacity}, "
            f"proposers={len(self.registry)}, "
            f"debug={self.settings.foreman_debug})"
        )
