"""Unit tests for decomposition and routing models."""

import pytest
from pydantic import ValidationError

from foreman.decomposition.models import (
    DecompositionOutput,
    IssueSeverity,
    IssueType,
    RiskLevel,
    TechnicalSpecification,
    ValidationIssue,
    ValidationResult,
    WorkOrder,
    bind_positional_dependencies,
    parse_index,
    to_positional,
)
from foreman.routing.models import (
    BudgetLimits,
    BudgetStatus,
    ProposerProfile,
    Provider,
    RoutingDecision,
    RoutingMetadata,
    RoutingStrategy,
)


class TestTechnicalSpecification:
    """Tests for TechnicalSpecification."""

    def test_is_immutable(self, sample_spec: TechnicalSpecification) -> None:
        """Test that a specification cannot be modified."""
        with pytest.raises(ValidationError):
            sample_spec.feature_name = "Other"

    def test_optional_estimates(self) -> None:
        """Test that budget and time estimates are optional."""
        spec = TechnicalSpecification(feature_name="Search")

        assert spec.budget_estimate is None
        assert spec.time_estimate is None
        assert spec.objectives == []


class TestWorkOrder:
    """Tests for WorkOrder."""

    def test_ids_are_unique(self) -> None:
        """Test that every work order gets its own stable id."""
        a = WorkOrder(title="A")
        b = WorkOrder(title="A")

        assert a.id.startswith("wo-")
        assert a.id != b.id

    def test_dependencies_coerced_to_strings(self) -> None:
        """Test that integer references are accepted."""
        wo = WorkOrder(title="A", dependencies=[0, " 2 "])

        assert wo.dependencies == ["0", "2"]

    def test_risk_level_is_case_insensitive(self) -> None:
        """Test that model output like 'High' is accepted."""
        wo = WorkOrder(title="A", risk_level="High")

        assert wo.risk_level == RiskLevel.HIGH

    def test_primary_file(self) -> None:
        """Test primary file is the first file in scope."""
        assert WorkOrder(title="A", files_in_scope=["a.ts", "b.ts"]).primary_file == "a.ts"
        assert WorkOrder(title="A").primary_file is None


class TestPositionalBinding:
    """Tests for positional dependency binding and serialization."""

    def test_parse_index(self) -> None:
        """Test parsing positional tokens."""
        assert parse_index("3") == 3
        assert parse_index("-1") == -1
        assert parse_index("abc") is None

    def test_bind_resolves_valid_indices(self) -> None:
        """Test that in-range indices become ids and others stay raw."""
        work_orders = [
            WorkOrder(title="A"),
            WorkOrder(title="B", dependencies=["0"]),
            WorkOrder(title="C", dependencies=["1", "7", "abc"]),
        ]

        bind_positional_dependencies(work_orders)

        assert work_orders[1].dependencies == [work_orders[0].id]
        assert work_orders[2].dependencies == [work_orders[1].id, "7", "abc"]

    def test_to_positional_round_trip(self, sample_work_orders: list[WorkOrder]) -> None:
        """Test serialization renders ids as current positions."""
        records = to_positional(sample_work_orders)

        assert records[0]["dependencies"] == []
        assert records[1]["dependencies"] == ["0"]
        assert records[2]["dependencies"] == ["1"]

    def test_positions_follow_reordering(self, sample_work_orders: list[WorkOrder]) -> None:
        """Test that inserting a work order keeps references pointing at the same work."""
        sample_work_orders.insert(0, WorkOrder(title="Bootstrap"))

        records = to_positional(sample_work_orders)

        assert records[2]["dependencies"] == ["1"]
        assert records[3]["dependencies"] == ["2"]

    def test_to_positional_drops_unbound(self) -> None:
        """Test that unbound raw references are not serialized."""
        records = to_positional([WorkOrder(title="A", dependencies=["7"])])

        assert records[0]["dependencies"] == []


class TestValidationResult:
    """Tests for ValidationResult."""

    def test_errors_and_warnings(self) -> None:
        """Test splitting issues by severity."""
        result = ValidationResult(
            valid=True,
            issues=[
                ValidationIssue(
                    type=IssueType.DUPLICATE_FILES,
                    severity=IssueSeverity.WARNING,
                    description="dup",
                ),
                ValidationIssue(
                    type=IssueType.INVALID_REFERENCE,
                    severity=IssueSeverity.ERROR,
                    description="bad",
                ),
            ],
        )

        assert len(result.errors) == 1
        assert len(result.warnings) == 1

    def test_output_to_dict(self, sample_work_orders: list[WorkOrder]) -> None:
        """Test that decomposition output serializes positional dependencies."""
        output = DecompositionOutput(work_orders=sample_work_orders, total_estimated_cost=4.3)

        data = output.to_dict()

        assert data["total_estimated_cost"] == 4.3
        assert data["work_orders"][2]["dependencies"] == ["1"]
        assert data["validation"] is None


class TestRoutingModels:
    """Tests for routing models."""

    def test_budget_limits_ordering(self) -> None:
        """Test that limits must be ordered soft <= hard <= kill."""
        with pytest.raises(ValidationError):
            BudgetLimits(daily_soft_cap=60.0, daily_hard_cap=50.0, emergency_kill=100.0)

    def test_proposer_cost(self) -> None:
        """Test per-call cost estimation."""
        profile = ProposerProfile(
            name="p",
            provider=Provider.OPENAI,
            input_cost_per_1k=0.00015,
            output_cost_per_1k=0.0006,
            complexity_ceiling=0.3,
        )

        assert profile.estimate_cost(2000, 1000) == pytest.approx(0.0009)
        assert profile.api_model == "p"

    def test_proposer_ceiling_bounds(self) -> None:
        """Test that complexity ceilings must lie in [0, 1]."""
        with pytest.raises(ValidationError):
            ProposerProfile(name="p", provider=Provider.OPENAI, complexity_ceiling=1.5)

    def test_decision_is_immutable(self) -> None:
        """Test that routing decisions cannot be edited in place."""
        decision = RoutingDecision(
            selected_proposer="p",
            reason="r",
            confidence=0.9,
            routing_metadata=RoutingMetadata(
                complexity_score=0.2,
                hard_stop_required=False,
                daily_spend=0.0,
                budget_status=BudgetStatus.NORMAL,
                available_proposers=1,
                routing_strategy=RoutingStrategy.COMPLEXITY_CEILING,
            ),
        )

        with pytest.raises(ValidationError):
            decision.selected_proposer = "other"

        reserved = decision.with_reservation("res-1")
        assert reserved.routing_metadata.budget_reservation_id == "res-1"
        assert decision.routing_metadata.budget_reservation_id is None
