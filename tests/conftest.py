"""Pytest configuration and shared fixtures."""

import json
import os
from collections.abc import Callable, Generator as GeneratorType
from typing import Any

import pytest

# Set test environment
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-REDACTED")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-key-for-testing")
os.environ.setdefault("FOREMAN_DEBUG", "true")
os.environ.setdefault("FOREMAN_LOG_LEVEL", "DEBUG")

from foreman.core.errors import GenerationError  # noqa: E402
from foreman.decomposition.models import TechnicalSpecification, WorkOrder  # noqa: E402
from foreman.generation.base import GenerationResult, Generator  # noqa: E402
from foreman.refinement.models import Diagnostic  # noqa: E402
from foreman.routing.models import BudgetLimits, Provider, ProposerProfile  # noqa: E402

Response = str | Exception | Callable[[str], str]


class ScriptedGenerator(Generator):
    """Generator that replays scripted responses and records every prompt.

    Each response is a string, an exception to raise, or a callable that
    receives the prompt. When the script runs out, ``default`` is used.
    """

    def __init__(
        self,
        responses: list[Response] | None = None,
        default: Response | None = None,
        input_units: int = 1000,
        output_units: int = 500,
    ) -> None:
        self.responses = list(responses or [])
        self.default = default
        self.input_units = input_units
        self.output_units = output_units
        self.prompts: list[str] = []
        self.proposers: list[str] = []

    async def generate(self, prompt: str, proposer: ProposerProfile) -> GenerationResult:
        self.prompts.append(prompt)
        self.proposers.append(proposer.name)

        response = self.responses.pop(0) if self.responses else self.default
        if response is None:
            raise GenerationError("No scripted response left")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(prompt)

        return GenerationResult(
            content=response,
            input_units=self.input_units,
            output_units=self.output_units,
            proposer=proposer.name,
        )


class ScriptedChecker:
    """Diagnostic checker that returns scripted diagnostic counts in order."""

    def __init__(self, counts: list[int], default: int = 0) -> None:
        self.counts = list(counts)
        self.default = default
        self.artifacts: list[str] = []

    async def check(self, artifact: str) -> list[Diagnostic]:
        self.artifacts.append(artifact)
        count = self.counts.pop(0) if self.counts else self.default
        return make_diagnostics(count)


def make_diagnostics(count: int) -> list[Diagnostic]:
    """Build ``count`` distinct TS diagnostics."""
    return [
        Diagnostic(code=f"TS{2300 + i}", message=f"Problem {i}", line=i + 1, column=1)
        for i in range(count)
    ]


def work_orders_json(
    work_orders: list[dict[str, Any]],
    doc: str = "# Plan",
    total_cost: float | None = None,
) -> str:
    """Render an architect response."""
    payload: dict[str, Any] = {"work_orders": work_orders, "decomposition_doc": doc}
    if total_cost is not None:
        payload["total_estimated_cost"] = total_cost
    return json.dumps(payload)


def raw_work_order(title: str, deps: list[str] | None = None, **extra: Any) -> dict[str, Any]:
    """A work order as a decomposition call would return it."""
    record: dict[str, Any] = {
        "title": title,
        "description": f"Implement {title.lower()}.",
        "acceptance_criteria": [f"{title} works"],
        "files_in_scope": [f"src/{title.lower().replace(' ', '_')}.ts"],
        "context_budget_estimate": 1000,
        "risk_level": "low",
        "dependencies": deps or [],
    }
    record.update(extra)
    return record


@pytest.fixture
def mock_settings() -> GeneratorType:
    """Clear cached settings around a test."""
    from foreman.core.config import clear_settings_cache

    clear_settings_cache()

    yield

    clear_settings_cache()


@pytest.fixture
def sample_spec() -> TechnicalSpecification:
    """Provide a sample technical specification."""
    return TechnicalSpecification(
        feature_name="OAuth login",
        objectives=["Google sign in", "GitHub sign in", "Session persistence"],
        constraints=["No new database", "Use existing Redis"],
        acceptance_criteria=["User can sign in with Google", "Sessions survive restarts"],
        budget_estimate=25.0,
        time_estimate="2 weeks",
    )


@pytest.fixture
def sample_work_orders() -> list[WorkOrder]:
    """Provide a small, valid work order chain: 0 <- 1 <- 2."""
    config = WorkOrder(
        title="Create OAuth config",
        description="Provider configuration.",
        acceptance_criteria=["Config validates"],
        files_in_scope=["config/oauth.ts"],
        context_budget_estimate=800,
    )
    session = WorkOrder(
        title="Create session store",
        description="Redis-backed sessions.",
        acceptance_criteria=["Sessions persist", "Sessions expire"],
        files_in_scope=["lib/session.ts"],
        context_budget_estimate=1500,
        dependencies=[config.id],
    )
    routes = WorkOrder(
        title="Add login routes",
        description="Login and callback routes.",
        acceptance_criteria=["Login redirects", "Callback creates session"],
        files_in_scope=["routes/auth.ts"],
        context_budget_estimate=2000,
        dependencies=[session.id],
    )
    return [config, session, routes]


@pytest.fixture
def cheap_proposer() -> ProposerProfile:
    """Low-ceiling, low-cost proposer."""
    return ProposerProfile(
        name="cheap",
        provider=Provider.OPENAI,
        input_cost_per_1k=0.0001,
        output_cost_per_1k=0.0004,
        complexity_ceiling=0.3,
    )


@pytest.fixture
def mid_proposer() -> ProposerProfile:
    """Mid-ceiling proposer."""
    return ProposerProfile(
        name="mid",
        provider=Provider.ANTHROPIC,
        input_cost_per_1k=0.001,
        output_cost_per_1k=0.005,
        complexity_ceiling=0.6,
    )


@pytest.fixture
def strong_proposer() -> ProposerProfile:
    """Highest-ceiling, most expensive proposer."""
    return ProposerProfile(
        name="strong",
        provider=Provider.ANTHROPIC,
        input_cost_per_1k=0.003,
        output_cost_per_1k=0.015,
        complexity_ceiling=1.0,
    )


@pytest.fixture
def proposers(
    cheap_proposer: ProposerProfile,
    mid_proposer: ProposerProfile,
    strong_proposer: ProposerProfile,
) -> list[ProposerProfile]:
    """Provide three proposers with increasing ceilings."""
    return [cheap_proposer, mid_proposer, strong_proposer]


@pytest.fixture
def limits() -> BudgetLimits:
    """Provide default budget limits (20 / 50 / 100)."""
    return BudgetLimits(daily_soft_cap=20.0, daily_hard_cap=50.0, emergency_kill=100.0)


@pytest.fixture
def scripted_generator() -> type[ScriptedGenerator]:
    """Provide the scripted generator class."""
    return ScriptedGenerator


@pytest.fixture
def scripted_checker() -> type[ScriptedChecker]:
    """Provide the scripted diagnostic checker class."""
    return ScriptedChecker


@pytest.fixture
def diagnostics_factory() -> Callable[[int], list[Diagnostic]]:
    """Provide a builder for N distinct diagnostics."""
    return make_diagnostics


@pytest.fixture
def raw_wo() -> Callable[..., dict[str, Any]]:
    """Provide a builder for raw architect work order records."""
    return raw_work_order


@pytest.fixture
def architect_response() -> Callable[..., str]:
    """Provide a builder for architect JSON responses."""
    return work_orders_json


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
