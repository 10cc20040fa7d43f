"""OpenAI adapter for the generation boundary."""

from typing import Any

from loguru import logger

from foreman.core.errors import GenerationError
from foreman.generation.base import GenerationResult, Generator
from foreman.routing.models import ProposerProfile


class OpenAIGenerator(Generator):
    """Generate text through the OpenAI Responses API."""

    def __init__(
        self,
        api_key: str | None = None,
        max_tokens: int = 4000,
        client: Any | None = None,
    ) -> None:
        self.api_key = api_key
        self.max_tokens = max_tokens
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            api_key = self.api_key
            if api_key is None:
                from foreman.core.config import get_settings

                settings = get_settings()
                if settings.openai_api_key is None:
                    raise GenerationError("OPENAI_API_KEY is not configured")
                api_key = settings.openai_api_key.get_secret_value()

            self._client = AsyncOpenAI(api_key=api_key)
        return self._client

    async def generate(self, prompt: str, proposer: ProposerProfile) -> GenerationResult:
        client = self._get_client()

        logger.debug(f"Calling OpenAI model {proposer.api_model}")

        try:
            response = await client.responses.create(
                model=proposer.api_model,
                input=prompt,
                max_output_tokens=self.max_tokens,
            )
        except Exception as e:
            raise GenerationError(f"OpenAI call failed: {e}") from e

        content = getattr(response, "output_text", "") or ""
        if not content:
            raise GenerationError("OpenAI response contained no text")

        usage = getattr(response, "usage", None)
        return GenerationResult(
            content=content,
            input_units=getattr(usage, "input_tokens", 0) or 0,
            output_units=getattr(usage, "output_tokens", 0) or 0,
            proposer=proposer.name,
        )
