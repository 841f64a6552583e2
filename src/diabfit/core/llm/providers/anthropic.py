"""Anthropic Claude vision provider."""

from __future__ import annotations

import time

from diabfit.core.llm.errors import (
    InvalidAPIKeyError,
    InvalidRequestError,
    InvalidResponseError,
    NetworkError,
    RateLimitError,
    ServerError,
    error_for_status,
)
from diabfit.core.llm.provider import ProviderResponse


class AnthropicVisionProvider:
    """Claude provider using the Anthropic SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        *,
        timeout: float = 60.0,
    ) -> None:
        import anthropic

        self._anthropic = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model

    async def analyze_image(
        self,
        prompt: str,
        image_base64: str,
        media_type: str = "image/jpeg",
        max_tokens: int = 3000,
        temperature: float = 0.2,
    ) -> ProviderResponse:
        anthropic = self._anthropic
        start = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": media_type,
                                    "data": image_base64,
                                },
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
        except anthropic.RateLimitError as exc:
            raise RateLimitError() from exc
        except anthropic.AuthenticationError as exc:
            raise InvalidAPIKeyError() from exc
        except anthropic.BadRequestError as exc:
            raise InvalidRequestError(exc.message) from exc
        except anthropic.InternalServerError as exc:
            raise ServerError() from exc
        except anthropic.APIStatusError as exc:
            raise error_for_status(exc.status_code, exc.message) from exc
        except anthropic.APIConnectionError as exc:
            raise NetworkError() from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        text_blocks = [b.text for b in response.content if getattr(b, "type", "") == "text"]
        if not text_blocks:
            raise InvalidResponseError()
        return ProviderResponse(
            content="".join(text_blocks),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
