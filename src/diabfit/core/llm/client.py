"""Vision client: the bridge between meal analysis and provider calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from diabfit.core.llm.errors import RateLimitError
from diabfit.core.llm.provider import ProviderResponse, VisionProvider

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class VisionClient:
    """Invokes a vision provider, retrying rate-limited calls with backoff.

    A rate-limited call is retried up to ``max_retries`` times, waiting
    ``2 ** attempt`` seconds (1, 2, 4, ...) before each retry. Every other
    error propagates immediately.

    Usage::

        client = VisionClient(provider)
        response = await client.analyze(prompt, image_base64)
    """

    def __init__(
        self,
        provider: VisionProvider,
        *,
        max_retries: int = 3,
        max_tokens: int = 3000,
        temperature: float = 0.2,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.max_retries = max_retries
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._sleep = sleep

    async def analyze(
        self,
        prompt: str,
        image_base64: str,
        media_type: str = "image/jpeg",
    ) -> ProviderResponse:
        attempt = 0
        while True:
            try:
                response = await self.provider.analyze_image(
                    prompt=prompt,
                    image_base64=image_base64,
                    media_type=media_type,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            except RateLimitError:
                if attempt >= self.max_retries:
                    logger.warning("Vision call still rate limited after %d retries", attempt)
                    raise
                delay = 2.0 ** attempt
                logger.info("Vision call rate limited; retrying in %.0fs", delay)
                await self._sleep(delay)
                attempt += 1
                continue

            logger.info(
                "Vision call: model=%s, tokens=%d+%d, latency=%.0fms",
                response.model,
                response.input_tokens,
                response.output_tokens,
                response.latency_ms,
            )
            return response
