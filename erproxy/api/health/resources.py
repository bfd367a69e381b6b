"""Health probe resources for liveness and readiness checks.

``/health`` reports that the process is alive. ``/ready`` reports whether
the service can run syncs: without a configured coordinator it answers
503 so an orchestrator keeps traffic away from a half-configured pod.

Usage
-----
Register health endpoints on the Falcon app::

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(sync_enabled=True))

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = ["HealthResource", "ReadyResource"]


class HealthResource:
    """Liveness probe resource returning ``{"status": "ok"}``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health requests."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness probe resource.

    Parameters
    ----------
    sync_enabled
        Whether a coordinator was configured for this process.

    """

    def __init__(self, *, sync_enabled: bool = True) -> None:
        """Record whether sync endpoints are available."""
        self._sync_enabled = sync_enabled

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready requests.

        Parameters
        ----------
        _req
            Falcon request (unused).
        resp
            Falcon response populated with readiness status.

        """
        if self._sync_enabled:
            resp.media = {"status": "ready"}
            resp.status = HTTPStatus.OK
            return
        resp.media = {"status": "unconfigured"}
        resp.status = HTTPStatus.SERVICE_UNAVAILABLE
