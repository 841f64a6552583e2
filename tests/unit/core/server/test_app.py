"""Tests for vision provider selection in the app factory."""

from __future__ import annotations

import pytest

from diabfit.core.config.settings import Settings
from diabfit.core.llm.providers.mock import MockVisionProvider
from diabfit.core.server.app import _create_vision_provider


@pytest.mark.parametrize("name", ["openai", "anthropic"])
def test_remote_provider_without_key_is_disabled(name):
    assert _create_vision_provider(Settings(vision_provider=name)) == (name, None)


def test_mock_only_when_requested():
    name, provider = _create_vision_provider(Settings(vision_provider="mock"))
    assert name == "mock"
    assert isinstance(provider, MockVisionProvider)
