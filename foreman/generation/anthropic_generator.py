"""Anthropic Claude adapter for the generation boundary."""

from typing import Any

from loguru import logger

from foreman.core.errors import GenerationError
from foreman.generation.base import GenerationResult, Generator
from foreman.routing.models import ProposerProfile


class AnthropicGenerator(Generator):
    """
    Generate text through the Anthropic Messages API.

    The SDK client is created lazily on first use.

    Example:
        >>> generator = AnthropicGenerator(api_key="sk-ant-...")
        >>> result = await generator.generate("Write hello world", profile)
        >>> result.content
        'print("hello world")'
    """

    def __init__(
        self,
        api_key: str | None = None,
        max_tokens: int = 4000,
        client: Any | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            api_key: Anthropic API key. Falls back to settings when omitted.
            max_tokens: Maximum output tokens per call.
            client: Optional pre-built AsyncAnthropic client.
        """
        self.api_key = api_key
        self.max_tokens = max_tokens
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from anthropic import AsyncAnthropic

            api_key = self.api_key
            if api_key is None:
                from foreman.core.config import get_settings

                settings = get_settings()
                if settings.anthropic_api_key is None:
                    raise GenerationError("ANTHROPIC_API_KEY is not configured")
                api_key = settings.anthropic_api_key.get_secret_value()

            self._client = AsyncAnthropic(api_key=api_key)
        return self._client

    async def generate(self, prompt: str, proposer: ProposerProfile) -> GenerationResult:
        client = self._get_client()

        logger.debug(f"Calling Anthropic model {proposer.api_model}")

        try:
            response = await client.messages.create(
                model=proposer.api_model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            raise GenerationError(f"Anthropic call failed: {e}") from e

        text_blocks = [
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        ]
        if not text_blocks:
            raise GenerationError("Anthropic response contained no text")

        usage = getattr(response, "usage", None)
        return GenerationResult(
            content="".join(text_blocks),
            input_units=getattr(usage, "input_tokens", 0) or 0,
            output_units=getattr(usage, "output_tokens", 0) or 0,
            proposer=proposer.name,
        )
