"""Application factory for the erproxy Falcon ASGI application.

Usage
-----
Create a health-only app (no mirror configured)::

    app = create_app()

Create a full app with the sync trigger::

    from erproxy.api.app import AppDependencies, create_app

    app = create_app(AppDependencies(coordinator=coordinator))

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from erproxy.api.errors import (
    InvalidInputError,
    SyncInProgressError,
    handle_invalid_input,
    handle_sync_error,
    handle_sync_in_progress,
)
from erproxy.api.health.resources import HealthResource, ReadyResource
from erproxy.sync.errors import SyncError

if typ.TYPE_CHECKING:
    from erproxy.sync.coordinator import PipelineCoordinator

__all__ = ["AppDependencies", "create_app"]


class _CoordinatorLifespan:
    """Close the coordinator's network clients on ASGI shutdown."""

    def __init__(self, coordinator: PipelineCoordinator) -> None:
        self._coordinator = coordinator

    async def process_shutdown(
        self, _scope: dict[str, typ.Any], _event: dict[str, typ.Any]
    ) -> None:
        await self._coordinator.aclose()


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    coordinator
        Pipeline coordinator triggered by ``POST /sync``. When ``None``
        only the health endpoints are registered.

    """

    coordinator: PipelineCoordinator | None = None


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Optional application dependencies. When ``None`` or without a
        coordinator, only ``/health`` and ``/ready`` are available and
        ``/ready`` reports the service as unconfigured.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    coordinator = dependencies.coordinator if dependencies is not None else None

    middleware: list[object] = []
    if coordinator is not None:
        middleware.append(_CoordinatorLifespan(coordinator))

    app = falcon.asgi.App(middleware=middleware)  # type: ignore[no-matching-overload]  # Falcon stubs

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(sync_enabled=coordinator is not None))

    if coordinator is not None:
        from erproxy.api.sync.resources import SyncResource

        app.add_route("/sync", SyncResource(coordinator))

    app.add_error_handler(InvalidInputError, handle_invalid_input)
    app.add_error_handler(SyncInProgressError, handle_sync_in_progress)
    app.add_error_handler(SyncError, handle_sync_error)

    return app
