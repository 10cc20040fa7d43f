"""Generation boundary - provider-agnostic text generation.

- Generator interface and result type
- Anthropic and OpenAI adapters
- Provider dispatch
"""

from foreman.generation.anthropic_generator import AnthropicGenerator
from foreman.generation.base import GenerationResult, Generator, ProviderGenerator
from foreman.generation.openai_generator import OpenAIGenerator

__all__ = [
    "AnthropicGenerator",
    "GenerationResult",
    "Generator",
    "OpenAIGenerator",
    "ProviderGenerator",
]
