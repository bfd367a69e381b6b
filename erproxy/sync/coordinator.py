"""Top-level orchestration of a mirror sync run.

A run decides, per partition, between a full snapshot ingest and an
incremental change-feed sync, then executes the partitions concurrently.
A failure in one partition is recorded in the run report and never stops
its siblings.

Usage
-----
>>> coordinator = build_coordinator(MirrorConfig.from_env())
>>> try:
...     report = await coordinator.run()
... finally:
...     await coordinator.aclose()

"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import typing as typ
import uuid

import msgspec

from erproxy.common.time import format_checkpoint, utcnow
from erproxy.registry.client import RegistryClient, RegistryClientConfig
from erproxy.sink.factory import create_sink

from .changes import ChangeLogSyncer, OffsetCapRestartStrategy
from .errors import InvalidCheckpointError
from .observability import RunContext, SyncEventLogger, categorize_error
from .snapshot import SnapshotIngestor
from .state import StateStore

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    import httpx

    from erproxy.config import MirrorConfig
    from erproxy.registry.models import PartitionDescriptor
    from erproxy.sink.protocol import ObjectSink

logger = logging.getLogger(__name__)

SyncMode: typ.TypeAlias = typ.Literal["full", "incremental"]
OutcomeStatus: typ.TypeAlias = typ.Literal["succeeded", "failed"]


@dataclasses.dataclass(frozen=True, slots=True)
class PartitionOutcome:
    """Result of syncing one partition within a run."""

    partition: str
    status: OutcomeStatus
    mode: SyncMode | None = None
    records: int = 0
    checkpoint: dt.datetime | None = None
    error: str | None = None
    error_category: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return True when the partition synced without error."""
        return self.status == "succeeded"


@dataclasses.dataclass(frozen=True, slots=True)
class RunReport:
    """Outcome of a coordinator run.

    Attributes
    ----------
    run_id
        Identifier correlating the run's log events.
    started_at, finished_at
        Wall-clock bounds of the run.
    outcomes
        One entry per partition processed, in request order.
    seeding_required
        True when the destination container did not exist; it has been
        created and must be seeded externally before syncing resumes.

    """

    run_id: str
    started_at: dt.datetime
    finished_at: dt.datetime
    outcomes: tuple[PartitionOutcome, ...] = ()
    seeding_required: bool = False

    @property
    def succeeded(self) -> bool:
        """Return True when every partition succeeded."""
        return all(outcome.succeeded for outcome in self.outcomes)

    def to_payload(self) -> dict[str, typ.Any]:
        """Return a JSON-compatible rendering of the report."""
        payload = typ.cast("dict[str, typ.Any]", msgspec.to_builtins(self))
        payload["succeeded"] = self.succeeded
        return payload


class PipelineCoordinator:
    """Choose and execute the sync strategy for every partition of a run."""

    def __init__(  # noqa: PLR0913
        self,
        sink: ObjectSink,
        state: StateStore,
        snapshot: SnapshotIngestor,
        changes: ChangeLogSyncer,
        *,
        partitions: cabc.Sequence[PartitionDescriptor],
        container: str = "erproxy",
        events: SyncEventLogger | None = None,
        closers: cabc.Sequence[cabc.Callable[[], cabc.Awaitable[None]]] = (),
    ) -> None:
        """Wire the coordinator to its collaborators."""
        self._sink = sink
        self._state = state
        self._snapshot = snapshot
        self._changes = changes
        self._partitions = tuple(partitions)
        self._container = container
        self._events = events or SyncEventLogger()
        self._closers = tuple(closers)

    @property
    def partitions(self) -> tuple[PartitionDescriptor, ...]:
        """Return the partitions synced by default."""
        return self._partitions

    async def aclose(self) -> None:
        """Release network clients created for this coordinator."""
        for close in self._closers:
            await close()

    async def run(
        self,
        partitions: cabc.Sequence[PartitionDescriptor] | None = None,
        *,
        force_full: bool = False,
    ) -> RunReport:
        """Sync ``partitions`` (default: all configured) and report the outcome.

        Parameters
        ----------
        partitions
            Partitions to process; defaults to those given at construction.
        force_full
            Re-ingest every partition from its bulk export regardless of
            its checkpoint.

        Raises
        ------
        StorageError
            If the destination container cannot be checked or created.
            Per-partition failures are reported, not raised.

        """
        selected = tuple(partitions) if partitions is not None else self._partitions
        started_at = utcnow()
        context = RunContext(
            run_id=uuid.uuid4().hex,
            partitions=tuple(p.tag for p in selected),
            started_at=started_at,
            force_full=force_full,
        )
        self._events.log_run_started(context)

        if not await self._sink.exists():
            await self._sink.create()
            self._events.log_seeding_required(context, self._container)
            return RunReport(
                run_id=context.run_id,
                started_at=started_at,
                finished_at=utcnow(),
                seeding_required=True,
            )

        outcomes = await asyncio.gather(
            *(
                self._run_partition(partition, started_at, force_full=force_full)
                for partition in selected
            )
        )
        finished_at = utcnow()
        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        self._events.log_run_completed(
            context,
            succeeded=len(outcomes) - failed,
            failed=failed,
            duration=finished_at - started_at,
        )
        return RunReport(
            run_id=context.run_id,
            started_at=started_at,
            finished_at=finished_at,
            outcomes=tuple(outcomes),
        )

    async def _run_partition(
        self,
        partition: PartitionDescriptor,
        run_started_at: dt.datetime,
        *,
        force_full: bool,
    ) -> PartitionOutcome:
        begun = utcnow()
        try:
            outcome = await self._sync_partition(
                partition, run_started_at, force_full=force_full
            )
        except Exception as exc:  # noqa: BLE001 - isolated per partition
            self._events.log_partition_failed(partition.name, exc, utcnow() - begun)
            return PartitionOutcome(
                partition=partition.tag,
                status="failed",
                error=str(exc),
                error_category=str(categorize_error(exc)),
            )
        self._events.log_partition_completed(
            partition.name,
            outcome.mode or "unknown",
            outcome.records,
            utcnow() - begun,
        )
        return outcome

    async def _sync_partition(
        self,
        partition: PartitionDescriptor,
        run_started_at: dt.datetime,
        *,
        force_full: bool,
    ) -> PartitionOutcome:
        if force_full:
            return await self._full_sync(partition, run_started_at, reason="forced")
        try:
            result = await self._changes.sync(partition)
        except InvalidCheckpointError as exc:
            return await self._full_sync(partition, run_started_at, reason=exc.reason)
        return PartitionOutcome(
            partition=partition.tag,
            status="succeeded",
            mode="incremental",
            records=result.records,
            checkpoint=result.checkpoint,
        )

    async def _full_sync(
        self,
        partition: PartitionDescriptor,
        run_started_at: dt.datetime,
        *,
        reason: str,
    ) -> PartitionOutcome:
        self._events.log_full_resync(partition.name, reason)
        result = await self._snapshot.ingest(partition)
        # Changes registered while the export was produced are replayed by
        # the next incremental run.
        await self._state.save(partition.checkpoint_key, run_started_at)
        logger.info(
            "Checkpoint for %s set to %s after full ingest",
            partition.name,
            format_checkpoint(run_started_at),
        )
        return PartitionOutcome(
            partition=partition.tag,
            status="succeeded",
            mode="full",
            records=result.records,
            checkpoint=run_started_at,
        )


def build_coordinator(
    config: MirrorConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
    sink: ObjectSink | None = None,
) -> PipelineCoordinator:
    """Construct a coordinator and its collaborators from ``config``.

    Every client is created here and handed to the services explicitly;
    call :meth:`PipelineCoordinator.aclose` to release them.

    Parameters
    ----------
    config
        Mirror configuration.
    http_client
        Optional pre-built ``httpx.AsyncClient`` for the registry (tests
        pass one with a mock transport).
    sink
        Optional sink overriding the one selected by ``config``.

    """
    client = RegistryClient(
        RegistryClientConfig(timeout_s=config.http_timeout_s),
        http_client=http_client,
    )
    closers: list[cabc.Callable[[], cabc.Awaitable[None]]] = [client.aclose]
    if sink is None:
        sink = create_sink(config)
        sink_close = getattr(sink, "aclose", None)
        if sink_close is not None:
            closers.append(sink_close)

    state = StateStore(sink)
    events = SyncEventLogger()
    return PipelineCoordinator(
        sink,
        state,
        SnapshotIngestor(
            client, sink, concurrency=config.max_concurrency, events=events
        ),
        ChangeLogSyncer(
            client,
            sink,
            state,
            page_size=config.page_size,
            concurrency=config.max_concurrency,
            strategy=OffsetCapRestartStrategy(cap=config.pagination_cap),
            events=events,
        ),
        partitions=config.partition_descriptors(),
        container=config.container,
        events=events,
        closers=closers,
    )
