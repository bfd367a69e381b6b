"""erproxy service entrypoint.

Serves the Falcon ASGI application through Granian. The
``erproxy.runtime:create_app`` factory builds the sync coordinator from
``ERPROXY_*`` storage settings (see :class:`erproxy.config.MirrorConfig`);
when no storage is configured the service starts in health-only mode and
``/ready`` reports it as unconfigured.

Server settings come from the environment:

- ``ERPROXY_HOST``: Bind address (default ``0.0.0.0``)
- ``ERPROXY_PORT``: Listen port (default ``8080``)
- ``ERPROXY_LOG_LEVEL``: Log level (default ``INFO``)

Run the service directly with ``python -m erproxy.runtime``.
"""

from __future__ import annotations

import os
import typing as typ

from erproxy.config import ConfigurationError, MirrorConfig
from erproxy.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

_MIN_PORT = 1
_MAX_PORT = 65535
_STORAGE_VARS = ("ERPROXY_STORAGE_CONNECTION_STRING", "ERPROXY_STORAGE_PATH")


def _parse_port(port_str: str) -> int:
    """Parse and validate a port number string.

    Raises
    ------
    SystemExit
        If ``port_str`` is not an integer in 1-65535.

    """
    try:
        port = int(port_str)
    except ValueError as exc:
        log_error(logger, "Invalid ERPROXY_PORT value: %r", port_str)
        raise SystemExit(1) from exc
    if not (_MIN_PORT <= port <= _MAX_PORT):
        log_error(
            logger,
            "Invalid ERPROXY_PORT value: %d (must be %d-%d)",
            port,
            _MIN_PORT,
            _MAX_PORT,
        )
        raise SystemExit(1)
    return port


def _storage_configured() -> bool:
    return any(os.environ.get(name, "").strip() for name in _STORAGE_VARS)


def create_app() -> falcon.asgi.App:
    """Create the ASGI application from the environment.

    Raises
    ------
    SystemExit
        If storage is configured but the mirror settings are invalid.

    """
    from erproxy.api.app import AppDependencies
    from erproxy.api.app import create_app as _create_api_app

    if not _storage_configured():
        log_warning(
            logger,
            "No mirror storage configured (%s); starting in health-only mode",
            " / ".join(_STORAGE_VARS),
        )
        return _create_api_app()

    try:
        config = MirrorConfig.from_env()
    except ConfigurationError as exc:
        log_error(logger, "Invalid mirror configuration: %s", exc)
        raise SystemExit(1) from exc

    from erproxy.sync.coordinator import build_coordinator

    log_info(
        logger,
        "Mirroring partitions %s into container %s (%s)",
        ",".join(config.partitions),
        config.container,
        "azure" if config.uses_azure else "filesystem",
    )
    return _create_api_app(AppDependencies(coordinator=build_coordinator(config)))


def main() -> None:
    """Start the erproxy server using Granian."""
    from granian import Granian
    from granian.constants import Interfaces

    host = os.environ.get("ERPROXY_HOST", "0.0.0.0")  # noqa: S104 - container bind
    port = _parse_port(os.environ.get("ERPROXY_PORT", "8080"))
    log_level_str = os.environ.get("ERPROXY_LOG_LEVEL", "INFO")

    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid ERPROXY_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    log_info(
        logger,
        "Starting erproxy on %s:%d (log_level=%s)",
        host,
        port,
        normalized_level,
    )

    server = Granian(
        "erproxy.runtime:create_app",
        address=host,
        port=port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
