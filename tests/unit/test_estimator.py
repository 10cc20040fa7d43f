"""Unit tests for the complexity estimator."""

import json

import pytest

from foreman.core.errors import EstimationError, GenerationError
from foreman.decomposition.estimator import (
    ComplexityEstimator,
    create_default_batches,
    split_oversized_batches,
    validate_batches,
)
from foreman.decomposition.models import Batch, ComplexityEstimate, TechnicalSpecification
from foreman.routing.models import ProposerProfile


class TestDefaultBatches:
    """Tests for default batch creation."""

    def test_forty_five_work_orders(self) -> None:
        """Test 45 work orders split into 10/10/10/10/5."""
        batches = create_default_batches(45)

        assert [b.estimated_work_orders for b in batches] == [10, 10, 10, 10, 5]
        assert [b.name for b in batches] == [f"Batch {i}" for i in range(1, 6)]
        assert batches[0].description == "Work orders 1-10"
        assert batches[4].description == "Work orders 41-45"
        assert all(b.focus_areas == ["General implementation"] for b in batches)

    def test_exact_multiple(self) -> None:
        """Test no trailing empty batch when the total divides evenly."""
        assert [b.estimated_work_orders for b in create_default_batches(20)] == [10, 10]


class TestSplitOversizedBatches:
    """Tests for splitting batches above the per-batch maximum."""

    def test_split_seven(self) -> None:
        """Test that a batch of 7 becomes 4 + 3."""
        batches = split_oversized_batches(
            [Batch(name="Auth", estimated_work_orders=7, focus_areas=["login"])]
        )

        assert [b.estimated_work_orders for b in batches] == [4, 3]
        assert batches[0].name == "Auth (1/2)"
        assert batches[1].focus_areas == ["login"]

    def test_small_batches_untouched(self) -> None:
        """Test batches at or below the limit are kept as-is."""
        batches = [Batch(name="A", estimated_work_orders=5), Batch(name="B", estimated_work_orders=3)]

        assert split_oversized_batches(batches) == batches


class TestComplexityEstimator:
    """Tests for ComplexityEstimator."""

    @pytest.mark.asyncio
    async def test_small_spec_no_batching(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test a small estimate stays on the single-call path."""
        generator = scripted_generator(
            [json.dumps({"total_work_orders": 6, "requires_batching": False, "reasoning": "small"})]
        )
        estimator = ComplexityEstimator(generator, strong_proposer)

        estimate = await estimator.estimate(sample_spec)

        assert estimate.total_work_orders == 6
        assert estimate.requires_batching is False
        assert estimate.batches == []
        assert estimate.estimated_cost == pytest.approx(0.17)
        assert estimate.estimated_time_seconds == 45
        assert "OAuth login" in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_threshold_forces_batching(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test more than 20 work orders forces batching even if the model says no."""
        generator = scripted_generator(
            [json.dumps({"total_work_orders": 45, "requires_batching": False, "batches": []})]
        )
        estimator = ComplexityEstimator(generator, strong_proposer)

        estimate = await estimator.estimate(sample_spec)

        assert estimate.requires_batching is True
        assert [b.estimated_work_orders for b in estimate.batches] == [10, 10, 10, 10, 5]

    @pytest.mark.asyncio
    async def test_proposed_batches_are_split(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test proposed batches larger than five are split."""
        generator = scripted_generator(
            [
                "```json\n"
                + json.dumps(
                    {
                        "total_work_orders": 22,
                        "requires_batching": True,
                        "batches": [
                            {"name": "Core", "estimated_work_orders": 7},
                            {"name": "UI", "estimated_work_orders": 5},
                            {"name": "API", "estimated_work_orders": 10},
                        ],
                    }
                )
                + "\n```"
            ]
        )
        estimator = ComplexityEstimator(generator, strong_proposer)

        estimate = await estimator.estimate(sample_spec)

        sizes = [b.estimated_work_orders for b in estimate.batches]
        assert sizes == [4, 3, 5, 5, 5]
        assert all(size <= 5 for size in sizes)

    @pytest.mark.asyncio
    async def test_unparseable_output_is_fatal(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test that malformed output raises instead of defaulting to no batching."""
        estimator = ComplexityEstimator(scripted_generator(["not json"]), strong_proposer)

        with pytest.raises(EstimationError, match="Failed to parse complexity estimation"):
            await estimator.estimate(sample_spec)

    @pytest.mark.asyncio
    async def test_missing_total_is_fatal(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test that output without a total is rejected."""
        estimator = ComplexityEstimator(
            scripted_generator([json.dumps({"requires_batching": True})]), strong_proposer
        )

        with pytest.raises(EstimationError):
            await estimator.estimate(sample_spec)

    @pytest.mark.asyncio
    async def test_null_optional_fields(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test null reasoning and batches fall back to empty values."""
        generator = scripted_generator(
            [json.dumps({"total_work_orders": 4, "reasoning": None, "batches": None})]
        )
        estimator = ComplexityEstimator(generator, strong_proposer)

        estimate = await estimator.estimate(sample_spec)

        assert estimate.total_work_orders == 4
        assert estimate.reasoning == ""
        assert estimate.batches == []

    @pytest.mark.asyncio
    async def test_generation_failure(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test that a failed estimation call raises EstimationError."""
        estimator = ComplexityEstimator(
            scripted_generator([GenerationError("overloaded")]), strong_proposer
        )

        with pytest.raises(EstimationError, match="overloaded"):
            await estimator.estimate(sample_spec)

    def test_prompt_mentions_threshold(
        self,
        scripted_generator: type,
        strong_proposer: ProposerProfile,
        sample_spec: TechnicalSpecification,
    ) -> None:
        """Test that the prompt carries the budget and threshold."""
        estimator = ComplexityEstimator(scripted_generator(), strong_proposer, batching_threshold=15)

        prompt = estimator.build_prompt(sample_spec)

        assert "exceed 15 work orders" in prompt
        assert "Budget: $25.0" in prompt
        assert "Timeline: 2 weeks" in prompt


class TestValidateBatches:
    """Tests for batch plan sanity checks."""

    def test_no_warnings_without_batching(self) -> None:
        """Test the single-call path is not checked."""
        assert validate_batches(ComplexityEstimate(total_work_orders=5)) == []

    def test_mismatched_totals(self) -> None:
        """Test a warning when batch sizes do not add up."""
        estimate = ComplexityEstimate(
            total_work_orders=40,
            requires_batching=True,
            batches=[Batch(name="A", estimated_work_orders=5), Batch(name="B", estimated_work_orders=5)],
        )

        warnings = validate_batches(estimate)

        assert any("differ from estimated total" in w for w in warnings)
