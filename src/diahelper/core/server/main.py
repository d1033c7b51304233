"""DiaHelper server entry point: ``python -m diahelper.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from diahelper.core.config.settings import get_settings
from diahelper.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the DiaHelper MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.diahelper_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger = logging.getLogger(__name__)
    if not settings.diahelper_allow_insecure_bind and not _is_loopback_host(settings.diahelper_host):
        raise RuntimeError(
            "Refusing to bind the DiaHelper server to a non-loopback host without an "
            "auth layer. Set DIAHELPER_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting DiaHelper Risk server on %s:%d",
        settings.diahelper_host,
        settings.diahelper_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.diahelper_host,
        port=settings.diahelper_port,
    )


if __name__ == "__main__":
    run()
