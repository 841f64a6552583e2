"""Console entry point (``diabfit-server`` or ``python -m diabfit.core.server.main``)."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from diabfit.core.config.settings import Settings, get_settings
from diabfit.core.server.app import SERVER_NAME, create_app

logger = logging.getLogger(__name__)


def is_loopback(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def check_bind_address(settings: Settings) -> None:
    """Refuse a public HTTP bind unless explicitly allowed; the tools have no auth layer."""
    if settings.diabfit_allow_insecure_bind or is_loopback(settings.diabfit_host):
        return
    raise RuntimeError(
        f"Refusing to serve health data on non-loopback host {settings.diabfit_host!r}. "
        "Set DIABFIT_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def run() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.diabfit_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if settings.diabfit_transport == "stdio":
        logger.info("Starting %s over stdio", SERVER_NAME)
        create_app().run(transport="stdio")
        return

    check_bind_address(settings)
    logger.info(
        "Starting %s on http://%s:%d", SERVER_NAME, settings.diabfit_host, settings.diabfit_port
    )
    create_app().run(
        transport="streamable-http",
        host=settings.diabfit_host,
        port=settings.diabfit_port,
    )


if __name__ == "__main__":
    run()
