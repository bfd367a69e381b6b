"""Dramatiq actor for scheduled mirror syncs.

A scheduler (cron, a Kubernetes CronJob or ``dramatiq-crontab``) enqueues
``sync_registry_job`` periodically; each message performs one coordinator
run. Partition failures are reported through logs only, and the next run
resumes from the durable checkpoints.

Usage
-----
>>> sync_registry_job.send()
>>> sync_registry_job.send(force_full=True, partitions=["enheter"])

"""

from __future__ import annotations

import asyncio
import typing as typ

import dramatiq

from erproxy.config import MirrorConfig
from erproxy.logging import get_logger, log_exception, log_info, log_warning
from erproxy.sync.coordinator import PipelineCoordinator, build_coordinator
from erproxy.worker._broker import ensure_broker_configured

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

CoordinatorFactory: typ.TypeAlias = (
    "cabc.Callable[[MirrorConfig], PipelineCoordinator]"
)

_coordinator_factory: CoordinatorFactory = build_coordinator

# Make sure actor declaration below has a broker to register with.
ensure_broker_configured()


def set_coordinator_factory(factory: CoordinatorFactory | None) -> None:
    """Override how the actor builds its coordinator (``None`` restores it)."""
    global _coordinator_factory
    _coordinator_factory = factory or build_coordinator


async def _run_sync(
    config: MirrorConfig,
    *,
    force_full: bool,
    partitions: cabc.Sequence[str] | None,
) -> dict[str, typ.Any]:
    # httpx clients are bound to the event loop, so each message builds its own.
    coordinator = _coordinator_factory(config)
    try:
        selected = None
        if partitions:
            wanted = set(partitions)
            selected = [p for p in coordinator.partitions if p.tag in wanted]
        report = await coordinator.run(selected, force_full=force_full)
    finally:
        await coordinator.aclose()
    return report.to_payload()


@dramatiq.actor(max_retries=0)
def sync_registry_job(
    *,
    force_full: bool = False,
    partitions: list[str] | None = None,
) -> dict[str, typ.Any] | None:
    """Run one sync of the configured mirror.

    Parameters
    ----------
    force_full
        Re-ingest every partition from its bulk export.
    partitions
        Optional partition tags restricting the run.

    Returns
    -------
    dict[str, Any] | None
        The run report, or ``None`` when the run could not start.

    """
    ensure_broker_configured()
    try:
        config = MirrorConfig.from_env()
        payload = asyncio.run(
            _run_sync(config, force_full=force_full, partitions=partitions)
        )
    except Exception as exc:  # noqa: BLE001 - scheduled runs report via logs
        log_exception(logger, "Scheduled sync could not run", exc)
        return None

    if payload["seeding_required"]:
        log_warning(logger, "Mirror container was created; seed it before syncing")
    elif payload["succeeded"]:
        log_info(logger, "Scheduled sync %s succeeded", payload["run_id"])
    else:
        failed = [
            outcome["partition"]
            for outcome in payload["outcomes"]
            if outcome["status"] != "succeeded"
        ]
        log_warning(
            logger,
            "Scheduled sync %s finished with failed partitions: %s",
            payload["run_id"],
            ", ".join(failed),
        )
    return payload
