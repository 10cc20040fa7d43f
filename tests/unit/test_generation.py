"""Unit tests for the generation adapters."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from foreman.core.errors import GenerationError
from foreman.generation.anthropic_generator import AnthropicGenerator
from foreman.generation.base import GenerationResult, Generator, ProviderGenerator
from foreman.generation.openai_generator import OpenAIGenerator
from foreman.routing.models import Provider, ProposerProfile


@pytest.fixture
def mock_anthropic_client() -> MagicMock:
    """Create a mock AsyncAnthropic client."""
    client = MagicMock()
    block = MagicMock(type="text", text="export const a = 1;")
    client.messages.create = AsyncMock(
        return_value=MagicMock(
            content=[block],
            usage=MagicMock(input_tokens=120, output_tokens=40),
        )
    )
    return client


@pytest.fixture
def mock_openai_client() -> MagicMock:
    """Create a mock AsyncOpenAI client."""
    client = MagicMock()
    client.responses.create = AsyncMock(
        return_value=MagicMock(
            output_text="def a():\n    return 1\n",
            usage=MagicMock(input_tokens=80, output_tokens=20),
        )
    )
    return client


class TestAnthropicGenerator:
    """Tests for AnthropicGenerator."""

    @pytest.mark.asyncio
    async def test_generate(
        self, mock_anthropic_client: MagicMock, mid_proposer: ProposerProfile
    ) -> None:
        """Test text and usage are extracted from the response."""
        generator = AnthropicGenerator(max_tokens=1000, client=mock_anthropic_client)

        result = await generator.generate("Write a constant", mid_proposer)

        assert result.content == "export const a = 1;"
        assert result.input_units == 120
        assert result.output_units == 40
        assert result.proposer == "mid"
        kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "mid"
        assert kwargs["max_tokens"] == 1000
        assert kwargs["messages"] == [{"role": "user", "content": "Write a constant"}]

    @pytest.mark.asyncio
    async def test_uses_model_override(self, mock_anthropic_client: MagicMock) -> None:
        """Test the provider model id is used when set on the profile."""
        profile = ProposerProfile(
            name="fast",
            provider=Provider.ANTHROPIC,
            model="claude-haiku-4-5-20251001",
            complexity_ceiling=0.5,
        )
        generator = AnthropicGenerator(client=mock_anthropic_client)

        await generator.generate("x", profile)

        assert (
            mock_anthropic_client.messages.create.call_args.kwargs["model"]
            == "claude-haiku-4-5-20251001"
        )

    @pytest.mark.asyncio
    async def test_api_failure(
        self, mock_anthropic_client: MagicMock, mid_proposer: ProposerProfile
    ) -> None:
        """Test SDK errors are wrapped in GenerationError."""
        mock_anthropic_client.messages.create.side_effect = RuntimeError("overloaded")
        generator = AnthropicGenerator(client=mock_anthropic_client)

        with pytest.raises(GenerationError, match="overloaded"):
            await generator.generate("x", mid_proposer)

    @pytest.mark.asyncio
    async def test_empty_response(
        self, mock_anthropic_client: MagicMock, mid_proposer: ProposerProfile
    ) -> None:
        """Test a response without text blocks is an error."""
        mock_anthropic_client.messages.create.return_value = MagicMock(content=[])
        generator = AnthropicGenerator(client=mock_anthropic_client)

        with pytest.raises(GenerationError, match="no text"):
            await generator.generate("x", mid_proposer)


class TestOpenAIGenerator:
    """Tests for OpenAIGenerator."""

    @pytest.mark.asyncio
    async def test_generate(
        self, mock_openai_client: MagicMock, cheap_proposer: ProposerProfile
    ) -> None:
        """Test output text and usage are extracted."""
        generator = OpenAIGenerator(max_tokens=500, client=mock_openai_client)

        result = await generator.generate("Write a function", cheap_proposer)

        assert result.content.startswith("def a()")
        assert result.input_units == 80
        assert result.output_units == 20
        kwargs = mock_openai_client.responses.create.call_args.kwargs
        assert kwargs["input"] == "Write a function"
        assert kwargs["max_output_tokens"] == 500

    @pytest.mark.asyncio
    async def test_api_failure(
        self, mock_openai_client: MagicMock, cheap_proposer: ProposerProfile
    ) -> None:
        """Test SDK errors are wrapped in GenerationError."""
        mock_openai_client.responses.create.side_effect = RuntimeError("429")
        generator = OpenAIGenerator(client=mock_openai_client)

        with pytest.raises(GenerationError, match="OpenAI call failed"):
            await generator.generate("x", cheap_proposer)

    @pytest.mark.asyncio
    async def test_empty_response(
        self, mock_openai_client: MagicMock, cheap_proposer: ProposerProfile
    ) -> None:
        """Test empty output is an error."""
        mock_openai_client.responses.create.return_value = MagicMock(output_text="")
        generator = OpenAIGenerator(client=mock_openai_client)

        with pytest.raises(GenerationError):
            await generator.generate("x", cheap_proposer)


class TestProviderGenerator:
    """Tests for provider dispatch."""

    @pytest.mark.asyncio
    async def test_dispatch_by_provider(
        self, cheap_proposer: ProposerProfile, mid_proposer: ProposerProfile
    ) -> None:
        """Test each proposer goes to its provider's adapter."""
        anthropic = AsyncMock(spec=Generator)
        anthropic.generate.return_value = GenerationResult(content="a")
        openai = AsyncMock(spec=Generator)
        openai.generate.return_value = GenerationResult(content="o")
        generator = ProviderGenerator({Provider.ANTHROPIC: anthropic, Provider.OPENAI: openai})

        assert (await generator.generate("p", mid_proposer)).content == "a"
        assert (await generator.generate("p", cheap_proposer)).content == "o"

    @pytest.mark.asyncio
    async def test_unknown_provider(self, cheap_proposer: ProposerProfile) -> None:
        """Test a provider without an adapter raises GenerationError."""
        generator = ProviderGenerator({})

        with pytest.raises(GenerationError, match="No generator configured"):
            await generator.generate("p", cheap_proposer)

    def test_result_cost(self, mid_proposer: ProposerProfile) -> None:
        """Test cost uses the proposer's pricing."""
        result = GenerationResult(content="x", input_units=1000, output_units=1000)

        assert result.cost(mid_proposer) == pytest.approx(0.006)
