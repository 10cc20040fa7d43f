"""Proposer registry.

Loaded once at process start and passed to the components that need it.
"""

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from foreman.core.config import Settings
from foreman.core.errors import ConfigurationError
from foreman.routing.models import Provider, ProposerProfile

DEFAULT_PROPOSERS: list[ProposerProfile] = [
    ProposerProfile(
        name="gpt-4o-mini",
        provider=Provider.OPENAI,
        context_limit=128000,
        input_cost_per_1k=0.00015,
        output_cost_per_1k=0.0006,
        complexity_ceiling=0.3,
        strengths=["crud", "config", "boilerplate"],
    ),
    ProposerProfile(
        name="claude-haiku-4-5",
        provider=Provider.ANTHROPIC,
        context_limit=200000,
        input_cost_per_1k=0.001,
        output_cost_per_1k=0.005,
        complexity_ceiling=0.6,
        strengths=["business logic", "api"],
    ),
    ProposerProfile(
        name="claude-sonnet-4-5",
        provider=Provider.ANTHROPIC,
        context_limit=200000,
        input_cost_per_1k=0.003,
        output_cost_per_1k=0.015,
        complexity_ceiling=1.0,
        strengths=["architecture", "security", "refactoring"],
    ),
]


class ProposerRegistry:
    """
    Read-only collection of proposer profiles.

    Example:
        >>> registry = ProposerRegistry(DEFAULT_PROPOSERS)
        >>> registry.get("claude-sonnet-4-5").complexity_ceiling
        1.0
    """

    def __init__(self, proposers: list[ProposerProfile]) -> None:
        names = [p.name for p in proposers]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ConfigurationError(f"Duplicate proposer names: {sorted(duplicates)}")
        self._proposers = {p.name: p for p in proposers}
        logger.debug(f"Proposer registry loaded with {len(self._proposers)} proposers")

    @classmethod
    def from_file(cls, path: str | Path) -> "ProposerRegistry":
        """Load proposers from a JSON file holding a list of profiles."""
        path = Path(path)
        try:
            raw = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read proposer file {path}: {e}") from e

        if isinstance(raw, dict):
            raw = raw.get("proposers", [])

        try:
            proposers = [ProposerProfile.model_validate(item) for item in raw]
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid proposer profile in {path}: {e}") from e

        return cls(proposers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProposerRegistry":
        """Load from the configured proposer file, or use the defaults."""
        if settings.foreman_proposers_file:
            return cls.from_file(settings.foreman_proposers_file)
        return cls(DEFAULT_PROPOSERS)

    def get(self, name: str) -> ProposerProfile:
        """Get a proposer by name.

        Raises:
            KeyError: If the proposer is unknown.
        """
        return self._proposers[name]

    def active(self) -> list[ProposerProfile]:
        """Active proposers in registration order."""
        return [p for p in self._proposers.values() if p.is_active]

    def all(self) -> list[ProposerProfile]:
        """All proposers in registration order."""
        return list(self._proposers.values())

    def __contains__(self, name: object) -> bool:
        return name in self._proposers

    def __len__(self) -> int:
        return len(self._proposers)
