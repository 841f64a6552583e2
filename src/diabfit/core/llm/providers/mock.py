"""Mock vision provider for testing."""

from __future__ import annotations

from diabfit.core.llm.provider import ProviderResponse


class MockVisionProvider:
    """Mock provider for testing; returns a canned response.

    ``errors`` are raised, in order, by the first calls before the canned
    response is returned.
    """

    def __init__(
        self,
        response_content: str = "Mock vision response.",
        *,
        errors: list[Exception] | None = None,
    ) -> None:
        self.response_content = response_content
        self.errors = list(errors or [])
        self.last_prompt: str = ""
        self.last_image_base64: str = ""
        self.call_count: int = 0

    async def analyze_image(
        self,
        prompt: str,
        image_base64: str,
        media_type: str = "image/jpeg",
        max_tokens: int = 3000,
        temperature: float = 0.2,
    ) -> ProviderResponse:
        self.last_prompt = prompt
        self.last_image_base64 = image_base64
        self.call_count += 1
        if self.errors:
            raise self.errors.pop(0)
        return ProviderResponse(
            content=self.response_content,
            input_tokens=len(prompt.split()),
            output_tokens=len(self.response_content.split()),
            model="mock",
            latency_ms=0.0,
        )
