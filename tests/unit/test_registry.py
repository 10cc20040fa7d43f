"""Unit tests for the proposer registry and complexity scoring."""

import json
from pathlib import Path

import pytest

from foreman.core.config import Settings
from foreman.core.errors import ConfigurationError
from foreman.decomposition.models import WorkOrder
from foreman.routing.complexity import estimate_work_order_complexity
from foreman.routing.models import ProposerProfile
from foreman.routing.registry import DEFAULT_PROPOSERS, ProposerRegistry


class TestProposerRegistry:
    """Tests for ProposerRegistry."""

    def test_lookup(self, proposers: list[ProposerProfile]) -> None:
        """Test lookup by name and membership."""
        registry = ProposerRegistry(proposers)

        assert registry.get("mid").complexity_ceiling == 0.6
        assert "strong" in registry
        assert "missing" not in registry
        assert len(registry) == 3

    def test_unknown_name(self, proposers: list[ProposerProfile]) -> None:
        """Test that unknown names raise KeyError."""
        with pytest.raises(KeyError):
            ProposerRegistry(proposers).get("missing")

    def test_duplicate_names(self, cheap_proposer: ProposerProfile) -> None:
        """Test duplicate proposer names are a configuration error."""
        with pytest.raises(ConfigurationError, match="Duplicate"):
            ProposerRegistry([cheap_proposer, cheap_proposer])

    def test_active_filters_inactive(self, proposers: list[ProposerProfile]) -> None:
        """Test inactive proposers are hidden from active()."""
        retired = proposers[0].model_copy(update={"name": "retired", "is_active": False})
        registry = ProposerRegistry([*proposers, retired])

        assert [p.name for p in registry.active()] == ["cheap", "mid", "strong"]
        assert len(registry.all()) == 4

    def test_from_file_list(self, tmp_path: Path) -> None:
        """Test loading a JSON list of profiles."""
        path = tmp_path / "proposers.json"
        path.write_text(
            json.dumps(
                [
                    {"name": "a", "provider": "openai", "complexity_ceiling": 0.4},
                    {"name": "b", "provider": "anthropic", "complexity_ceiling": 1.0},
                ]
            )
        )

        registry = ProposerRegistry.from_file(path)

        assert [p.name for p in registry.all()] == ["a", "b"]

    def test_from_file_wrapped(self, tmp_path: Path) -> None:
        """Test loading an object with a proposers key."""
        path = tmp_path / "proposers.json"
        path.write_text(
            json.dumps({"proposers": [{"name": "a", "provider": "openai", "complexity_ceiling": 0.4}]})
        )

        assert len(ProposerRegistry.from_file(path)) == 1

    def test_from_file_invalid_profile(self, tmp_path: Path) -> None:
        """Test an out-of-range ceiling is a configuration error."""
        path = tmp_path / "proposers.json"
        path.write_text(json.dumps([{"name": "a", "provider": "openai", "complexity_ceiling": 3}]))

        with pytest.raises(ConfigurationError, match="Invalid proposer profile"):
            ProposerRegistry.from_file(path)

    def test_from_file_missing(self, tmp_path: Path) -> None:
        """Test an unreadable file is a configuration error."""
        with pytest.raises(ConfigurationError, match="Cannot read"):
            ProposerRegistry.from_file(tmp_path / "nope.json")

    def test_from_settings_defaults(self) -> None:
        """Test the built-in proposers are used when no file is configured."""
        registry = ProposerRegistry.from_settings(Settings(foreman_proposers_file=None))

        assert len(registry) == len(DEFAULT_PROPOSERS)
        assert "claude-sonnet-4-5" in registry


class TestComplexity:
    """Tests for work order complexity scoring."""

    def test_minimal_work_order(self) -> None:
        """Test an empty work order scores as one criterion and one file."""
        assert estimate_work_order_complexity(WorkOrder(title="t")) == 0.15

    def test_criteria_and_files(self) -> None:
        """Test the documented example."""
        wo = WorkOrder(title="t", acceptance_criteria=["a", "b"], files_in_scope=["x.ts"])

        assert estimate_work_order_complexity(wo) == 0.25

    def test_capped_at_one(self) -> None:
        """Test large work orders saturate at 1.0."""
        wo = WorkOrder(
            title="t",
            acceptance_criteria=[str(i) for i in range(10)],
            files_in_scope=[f"{i}.ts" for i in range(10)],
            context_budget_estimate=20000,
        )

        assert estimate_work_order_complexity(wo) == 1.0
