"""
Generation service boundary.

Everything provider-specific lives behind :class:`Generator`; the rest of
Foreman only sees a prompt going in and text plus token counts coming out.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from loguru import logger

from foreman.core.errors import GenerationError
from foreman.routing.models import Provider, ProposerProfile


@dataclass
class GenerationResult:
    """Text returned by one generation call."""

    content: str
    input_units: int = 0
    output_units: int = 0
    proposer: str = ""

    def cost(self, profile: ProposerProfile) -> float:
        """Dollar cost of this call under ``profile``'s pricing."""
        return profile.estimate_cost(self.input_units, self.output_units)


class Generator(ABC):
    """Text-generation capability."""

    @abstractmethod
    async def generate(self, prompt: str, proposer: ProposerProfile) -> GenerationResult:
        """Generate text for ``prompt`` using ``proposer``.

        Raises:
            GenerationError: On any provider or network failure.
        """
        ...


class ProviderGenerator(Generator):
    """
    Dispatch generation calls to the adapter for each proposer's provider.

    Example:
        >>> generator = ProviderGenerator({
        ...     Provider.ANTHROPIC: AnthropicGenerator(api_key="..."),
        ...     Provider.OPENAI: OpenAIGenerator(api_key="..."),
        ... })
        >>> result = await generator.generate("Write a function", profile)
    """

    def __init__(self, adapters: dict[Provider, Generator]) -> None:
        self._adapters = dict(adapters)

    async def generate(self, prompt: str, proposer: ProposerProfile) -> GenerationResult:
        adapter = self._adapters.get(proposer.provider)
        if adapter is None:
            raise GenerationError(
                f"No generator configured for provider {proposer.provider.value}"
            )
        logger.debug(f"Dispatching generation to {proposer.provider.value}/{proposer.api_model}")
        return await adapter.generate(prompt, proposer)
