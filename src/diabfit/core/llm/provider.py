"""Vision provider protocol: abstract interface for image + prompt calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass
class ProviderResponse:
    """Response from a vision provider."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@runtime_checkable
class VisionProvider(Protocol):
    """Abstract interface for a single image analysis call.

    Implementations raise :class:`~diabfit.core.llm.errors.VisionError`
    subclasses, never SDK exceptions.
    """

    async def analyze_image(
        self,
        prompt: str,
        image_base64: str,
        media_type: str = "image/jpeg",
        max_tokens: int = 3000,
        temperature: float = 0.2,
    ) -> ProviderResponse: ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
    *,
    base_url: str = "",
    timeout: float = 60.0,
) -> VisionProvider:
    """Factory function to create a vision provider by name.

    Args:
        provider_name: "openai", "anthropic", or "mock"
        api_key: API key for the provider.
        model: Model identifier override.
        base_url: Alternative OpenAI-compatible endpoint.
        timeout: Per-request timeout in seconds.

    Returns:
        A VisionProvider instance.

    Raises:
        APINotConfiguredError: If a remote provider has no API key.
        ValueError: For an unknown provider name.
    """
    from diabfit.core.llm.errors import APINotConfiguredError

    if provider_name in ("openai", "anthropic") and not api_key:
        raise APINotConfiguredError()

    if provider_name == "openai":
        from diabfit.core.llm.providers.openai import OpenAIVisionProvider

        return OpenAIVisionProvider(
            api_key=api_key, model=model or "gpt-4o", base_url=base_url, timeout=timeout
        )
    elif provider_name == "anthropic":
        from diabfit.core.llm.providers.anthropic import AnthropicVisionProvider

        return AnthropicVisionProvider(
            api_key=api_key, model=model or "claude-sonnet-4-5-20250929", timeout=timeout
        )
    elif provider_name == "mock":
        from diabfit.core.llm.providers.mock import MockVisionProvider

        return MockVisionProvider()
    else:
        raise ValueError(f"Unknown vision provider: {provider_name}")
