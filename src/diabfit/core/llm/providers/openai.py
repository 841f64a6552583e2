"""OpenAI vision provider."""

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


class OpenAIVisionProvider:
    """OpenAI chat-completions provider using the OpenAI SDK.

    SDK retries are disabled; rate-limit backoff is done by ``VisionClient``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        *,
        base_url: str = "",
        timeout: float = 60.0,
    ) -> None:
        import openai

        self._openai = openai
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout,
            max_retries=0,
            default_headers={"User-Agent": "DiabFit/1.0"},
        )
        self.model = model

    async def analyze_image(
        self,
        prompt: str,
        image_base64: str,
        media_type: str = "image/jpeg",
        max_tokens: int = 3000,
        temperature: float = 0.2,
    ) -> ProviderResponse:
        openai = self._openai
        start = time.monotonic()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{media_type};base64,{image_base64}"},
                            },
                        ],
                    }
                ],
            )
        except openai.RateLimitError as exc:
            raise RateLimitError() from exc
        except openai.AuthenticationError as exc:
            raise InvalidAPIKeyError() from exc
        except openai.BadRequestError as exc:
            raise InvalidRequestError(exc.message) from exc
        except openai.InternalServerError as exc:
            raise ServerError() from exc
        except openai.APIStatusError as exc:
            raise error_for_status(exc.status_code, exc.message) from exc
        except openai.APIConnectionError as exc:
            raise NetworkError() from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice else None
        if not content:
            raise InvalidResponseError()
        usage = response.usage
        return ProviderResponse(
            content=content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self.model,
            latency_ms=elapsed_ms,
        )
