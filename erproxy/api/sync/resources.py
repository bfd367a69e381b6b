"""Sync trigger resource.

``POST /sync`` runs the pipeline once and responds with the run report:
200 when every partition succeeded, 500 otherwise. ``force=true`` re-ingests
every partition from its bulk export, as does a bare ``forceupdate`` flag;
repeated ``partition`` parameters restrict the run to the named partition tags.

Usage
-----
Register the resource on the Falcon app::

    app.add_route("/sync", SyncResource(coordinator))

"""

from __future__ import annotations

import asyncio
import typing as typ

import falcon

from erproxy.api.errors import InvalidInputError, SyncInProgressError

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from erproxy.registry.models import PartitionDescriptor
    from erproxy.sync.coordinator import PipelineCoordinator

__all__ = ["SyncResource"]


class SyncResource:
    """Resource for on-demand sync runs.

    Only one run executes at a time per process; a concurrent request is
    rejected with 409 rather than queued.
    """

    def __init__(self, coordinator: PipelineCoordinator) -> None:
        """Configure the resource with the coordinator it triggers."""
        self._coordinator = coordinator
        self._lock = asyncio.Lock()

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /sync requests.

        Parameters
        ----------
        req
            Falcon request; reads the optional ``force``, ``forceupdate``
            and ``partition`` query parameters.
        resp
            Falcon response populated with the run report.

        """
        force_full = req.get_param_as_bool("force", default=False) or req.has_param(
            "forceupdate"
        )
        partitions = self._select_partitions(req.get_param_as_list("partition"))

        if self._lock.locked():
            raise SyncInProgressError
        async with self._lock:
            report = await self._coordinator.run(partitions, force_full=force_full)

        resp.media = report.to_payload()
        resp.status = falcon.HTTP_200 if report.succeeded else falcon.HTTP_500

    def _select_partitions(
        self, tags: list[str] | None
    ) -> tuple[PartitionDescriptor, ...] | None:
        if not tags:
            return None
        known = {p.tag: p for p in self._coordinator.partitions}
        unknown = [tag for tag in tags if tag not in known]
        if unknown:
            reason = f"unknown partition(s) {', '.join(unknown)}"
            raise InvalidInputError(reason, field="partition")
        return tuple(known[tag] for tag in dict.fromkeys(tags))
