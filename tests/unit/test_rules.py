"""Unit tests for architect decomposition rules."""

import pytest

from foreman.core.errors import DecompositionValidationError
from foreman.decomposition.models import TechnicalSpecification, WorkOrder
from foreman.decomposition.rules import (
    build_architect_prompt,
    check_cost_estimate,
    check_token_budgets,
    estimate_total_cost,
    format_specification,
    parse_json_response,
    strip_markdown_code_blocks,
    validate_work_order_count,
)


class TestResponseParsing:
    """Tests for parsing generation output."""

    def test_strip_code_fences(self) -> None:
        """Test removal of a ```json fence."""
        assert strip_markdown_code_blocks('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_parse_plain_json(self) -> None:
        """Test parsing unwrapped JSON."""
        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_parse_json_wrapped_in_prose(self) -> None:
        """Test fallback to the outermost object."""
        assert parse_json_response('Here you go: {"a": [1, 2]} Thanks!') == {"a": [1, 2]}

    def test_parse_invalid_json(self) -> None:
        """Test that unparseable text raises ValueError."""
        with pytest.raises(ValueError):
            parse_json_response("no json here")


class TestPrompts:
    """Tests for prompt construction."""

    def test_format_specification_numbered(self, sample_spec: TechnicalSpecification) -> None:
        """Test numbered rendering of objectives."""
        text = format_specification(sample_spec, numbered=True)

        assert "Feature: OAuth login" in text
        assert "1. Google sign in" in text
        assert "3. Session persistence" in text

    def test_format_specification_empty_lists(self) -> None:
        """Test rendering of a specification without lists."""
        text = format_specification(TechnicalSpecification(feature_name="X"))

        assert "- None specified" in text

    def test_architect_prompt_band(self, sample_spec: TechnicalSpecification) -> None:
        """Test that the prompt states the work order band."""
        prompt = build_architect_prompt(sample_spec, 3, 8)

        assert "Decompose into 3-8 Work Orders" in prompt
        assert "OAuth login" in prompt


class TestValidationRules:
    """Tests for count, token and cost checks."""

    @pytest.mark.parametrize("count", [3, 5, 8])
    def test_count_within_band(self, count: int) -> None:
        """Test counts inside the band pass."""
        validate_work_order_count(count)

    @pytest.mark.parametrize("count", [0, 2, 9])
    def test_count_outside_band(self, count: int) -> None:
        """Test counts outside the band are rejected."""
        with pytest.raises(DecompositionValidationError):
            validate_work_order_count(count)

    def test_token_budget_warning(self) -> None:
        """Test that budgets over the limit produce a warning."""
        work_orders = [
            WorkOrder(title="Small", context_budget_estimate=1000),
            WorkOrder(title="Huge", context_budget_estimate=5000),
        ]

        warnings = check_token_budgets(work_orders)

        assert len(warnings) == 1
        assert "WO-1 (Huge)" in warnings[0]

    def test_total_cost(self) -> None:
        """Test cost is the summed budget divided by the cost unit."""
        work_orders = [
            WorkOrder(title="A", context_budget_estimate=800),
            WorkOrder(title="B", context_budget_estimate=1500),
        ]

        assert estimate_total_cost(work_orders) == 2.3

    def test_cost_variance_within_tolerance(self) -> None:
        """Test no warning when stated and computed costs are close."""
        assert check_cost_estimate(2.5, 2.3) is None
        assert check_cost_estimate(None, 2.3) is None

    def test_cost_variance_exceeded(self) -> None:
        """Test a warning when the stated cost is far off."""
        warning = check_cost_estimate(10.0, 2.0)

        assert warning is not None
        assert "400%" in warning
