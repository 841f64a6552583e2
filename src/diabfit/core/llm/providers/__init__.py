"""Vision provider implementations."""

from diabfit.core.llm.providers.anthropic import AnthropicVisionProvider
from diabfit.core.llm.providers.mock import MockVisionProvider
from diabfit.core.llm.providers.openai import OpenAIVisionProvider

__all__ = ["AnthropicVisionProvider", "MockVisionProvider", "OpenAIVisionProvider"]
