"""Tests for the server entry point's bind-address guard."""

from __future__ import annotations

import pytest

from diabfit.core.config.settings import Settings
from diabfit.core.server.main import check_bind_address, is_loopback


@pytest.mark.parametrize("host", ["localhost", "127.0.0.1", "::1", "127.0.0.2"])
def test_loopback_hosts(host):
    assert is_loopback(host)


@pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.20", "example.com"])
def test_non_loopback_hosts(host):
    assert not is_loopback(host)


def test_public_bind_refused_by_default():
    with pytest.raises(RuntimeError, match="non-loopback"):
        check_bind_address(Settings(diabfit_host="0.0.0.0"))


def test_public_bind_allowed_with_override():
    check_bind_address(Settings(diabfit_host="0.0.0.0", diabfit_allow_insecure_bind=True))


def test_default_settings_pass():
    check_bind_address(Settings())
