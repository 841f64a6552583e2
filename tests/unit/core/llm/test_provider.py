"""Tests for vision provider creation and SDK error mapping."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from diabfit.core.llm.errors import APINotConfiguredError, InvalidResponseError, RateLimitError
from diabfit.core.llm.provider import VisionProvider, create_provider
from diabfit.core.llm.providers.anthropic import AnthropicVisionProvider
from diabfit.core.llm.providers.mock import MockVisionProvider
from diabfit.core.llm.providers.openai import OpenAIVisionProvider


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class _FakeCreate:
    """Stands in for ``client.chat.completions.create`` / ``client.messages.create``."""

    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.kwargs: dict = {}

    async def __call__(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.result


# ---------------------------------------------------------------------------
# create_provider
# ---------------------------------------------------------------------------

class TestCreateProvider:
    def test_mock(self):
        provider = create_provider("mock")
        assert isinstance(provider, MockVisionProvider)
        assert isinstance(provider, VisionProvider)

    def test_openai(self):
        provider = create_provider("openai", api_key="sk-test", model="gpt-4o-mini")
        assert isinstance(provider, OpenAIVisionProvider)
        assert provider.model == "gpt-4o-mini"

    def test_anthropic_default_model(self):
        provider = create_provider("anthropic", api_key="sk-ant-test")
        assert isinstance(provider, AnthropicVisionProvider)
        assert provider.model

    @pytest.mark.parametrize("name", ["openai", "anthropic"])
    def test_missing_key_raises(self, name):
        with pytest.raises(APINotConfiguredError):
            create_provider(name)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown vision provider"):
            create_provider("gemini", api_key="x")


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class TestOpenAIProvider:
    def test_sends_image_and_parses_usage(self):
        provider = OpenAIVisionProvider(api_key="sk-test")
        fake = _FakeCreate(SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))],
            usage=SimpleNamespace(prompt_tokens=900, completion_tokens=300),
        ))
        provider.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=fake)))

        response = _run(provider.analyze_image("prompt", "QUJD", max_tokens=3000))
        assert response.content == '{"a": 1}'
        assert response.total_tokens == 1200
        image_part = fake.kwargs["messages"][0]["content"][1]
        assert image_part["image_url"]["url"] == "data:image/jpeg;base64,QUJD"
        assert fake.kwargs["max_tokens"] == 3000

    def test_empty_content_is_invalid_response(self):
        provider = OpenAIVisionProvider(api_key="sk-test")
        fake = _FakeCreate(SimpleNamespace(choices=[], usage=None))
        provider.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=fake)))
        with pytest.raises(InvalidResponseError):
            _run(provider.analyze_image("prompt", "QUJD"))

    def test_rate_limit_mapped(self):
        provider = OpenAIVisionProvider(api_key="sk-test")
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        error = openai.RateLimitError(
            "slow down", response=httpx.Response(429, request=request), body=None
        )
        provider.client = SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=_FakeCreate(error=error)))
        )
        with pytest.raises(RateLimitError):
            _run(provider.analyze_image("prompt", "QUJD"))


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

class TestAnthropicProvider:
    def test_joins_text_blocks(self):
        provider = AnthropicVisionProvider(api_key="sk-ant-test")
        fake = _FakeCreate(SimpleNamespace(
            content=[SimpleNamespace(type="text", text='{"a":'), SimpleNamespace(type="text", text=" 1}")],
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        ))
        provider.client = SimpleNamespace(messages=SimpleNamespace(create=fake))

        response = _run(provider.analyze_image("prompt", "QUJD", media_type="image/png"))
        assert response.content == '{"a": 1}'
        assert response.total_tokens == 15
        source = fake.kwargs["messages"][0]["content"][0]["source"]
        assert source == {"type": "base64", "media_type": "image/png", "data": "QUJD"}

    def test_no_text_is_invalid_response(self):
        provider = AnthropicVisionProvider(api_key="sk-ant-test")
        fake = _FakeCreate(SimpleNamespace(content=[], usage=SimpleNamespace(input_tokens=1, output_tokens=0)))
        provider.client = SimpleNamespace(messages=SimpleNamespace(create=fake))
        with pytest.raises(InvalidResponseError):
            _run(provider.analyze_image("prompt", "QUJD"))
