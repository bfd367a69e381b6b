"""Incremental synchronisation from the registry change feed.

The syncer resumes from a partition's checkpoint and walks the change feed
page by page. Each event is resolved by fetching the entity's current
document: a present entity is written, a removed one is deleted. The
checkpoint advances to the last event of a page only after every event on
that page has been applied, so a failed run resumes from the last fully
applied page and re-applies at most one page.

The registry refuses to page past a fixed number of records for a single
query. :class:`OffsetCapRestartStrategy` handles this by starting a new
query from the just-saved checkpoint before the cap is reached.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import typing as typ

from erproxy.registry.client import EntityState, format_feed_timestamp

from .errors import PaginationStalledError
from .observability import SyncEventLogger
from .pool import DEFAULT_CONCURRENCY, BoundedTaskPool

if typ.TYPE_CHECKING:
    from erproxy.registry.client import RegistryClient
    from erproxy.registry.models import ChangeEvent, ChangePage, PartitionDescriptor
    from erproxy.sink.protocol import ObjectSink

    from .state import StateStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 30
DEFAULT_PAGINATION_CAP = 10_000


class PaginationStrategy(typ.Protocol):
    """Decide when to abandon link-following and restart the query."""

    def should_restart(self, page_number: int, page_size: int) -> bool:
        """Return True when the page after ``page_number`` must not be fetched."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class OffsetCapRestartStrategy:
    """Restart before the next page would reach past ``cap`` records.

    With the default page size of 30 the last page fetched by link is page
    332 (records 9960-9989); the query then restarts from the checkpoint.
    """

    cap: int = DEFAULT_PAGINATION_CAP

    def should_restart(self, page_number: int, page_size: int) -> bool:
        """Return True when the following page's window exceeds the cap."""
        return (page_number + 2) * page_size > self.cap


@dataclasses.dataclass(frozen=True, slots=True)
class FollowLinksStrategy:
    """Always follow ``next`` links; never restart."""

    def should_restart(self, page_number: int, page_size: int) -> bool:
        """Return False."""
        return False


@dataclasses.dataclass(frozen=True, slots=True)
class ChangeSyncResult:
    """Summary of an incremental sync of one partition."""

    partition: str
    pages: int
    upserted: int
    deleted: int
    checkpoint: dt.datetime

    @property
    def records(self) -> int:
        """Return the number of records written or deleted."""
        return self.upserted + self.deleted


@dataclasses.dataclass(slots=True)
class _PageCounts:
    upserted: int = 0
    deleted: int = 0


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


class ChangeLogSyncer:
    """Apply change-feed events for one partition at a time."""

    def __init__(  # noqa: PLR0913
        self,
        client: RegistryClient,
        sink: ObjectSink,
        state: StateStore,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        strategy: PaginationStrategy | None = None,
        events: SyncEventLogger | None = None,
    ) -> None:
        """Configure the syncer with its collaborators and paging knobs."""
        if page_size < 1:
            msg = f"page size must be positive, got {page_size}"
            raise ValueError(msg)
        self._client = client
        self._sink = sink
        self._state = state
        self._page_size = page_size
        self._concurrency = concurrency
        self._strategy = strategy or OffsetCapRestartStrategy()
        self._events = events or SyncEventLogger()

    async def sync(self, partition: PartitionDescriptor) -> ChangeSyncResult:
        """Bring ``partition`` up to date from its saved checkpoint.

        Raises
        ------
        InvalidCheckpointError
            If the partition has no usable checkpoint; raised before any
            change-feed request is made.
        PartialBatchFailure
            If any event of a page could not be applied. The checkpoint
            keeps the value from the last fully applied page.
        TransportError
            If a change page cannot be fetched.
        PaginationStalledError
            If a restart would repeat the previous query.

        """
        checkpoint = await self._state.load(partition.checkpoint_key)
        cursor = checkpoint
        page = await self._fetch_first(partition, cursor)
        pages = 0
        totals = _PageCounts()

        while True:
            pages += 1
            page_events = page.events(partition.embedded_key)
            if page_events:
                counts = await self._apply_page(partition, page_events)
                totals.upserted += counts.upserted
                totals.deleted += counts.deleted
                checkpoint = max(checkpoint, _as_utc(page_events[-1].changed_at))
                await self._state.save(partition.checkpoint_key, checkpoint)
                self._events.log_page_applied(
                    partition.name, page.page.number, len(page_events), checkpoint
                )

            next_href = page.next_href
            if next_href is None:
                break
            if self._strategy.should_restart(page.page.number, self._page_size):
                if format_feed_timestamp(checkpoint) == format_feed_timestamp(cursor):
                    raise PaginationStalledError(
                        partition.name, format_feed_timestamp(cursor)
                    )
                self._events.log_cursor_restarted(
                    partition.name, page.page.number, checkpoint
                )
                cursor = checkpoint
                page = await self._fetch_first(partition, cursor)
            else:
                page = await self._client.fetch_page(next_href)

        return ChangeSyncResult(
            partition=partition.name,
            pages=pages,
            upserted=totals.upserted,
            deleted=totals.deleted,
            checkpoint=checkpoint,
        )

    async def _fetch_first(
        self, partition: PartitionDescriptor, since: dt.datetime
    ) -> ChangePage:
        return await self._client.fetch_changes(
            partition, since=since, page=0, size=self._page_size
        )

    async def _apply_page(
        self, partition: PartitionDescriptor, page_events: list[ChangeEvent]
    ) -> _PageCounts:
        counts = _PageCounts()
        async with BoundedTaskPool(self._concurrency) as pool:
            for event in page_events:
                await pool.submit(self._apply_event, pool, partition, event, counts)
        return counts

    async def _apply_event(
        self,
        pool: BoundedTaskPool,
        partition: PartitionDescriptor,
        event: ChangeEvent,
        counts: _PageCounts,
    ) -> None:
        lookup = await self._client.lookup_entity(partition.resolution_url(event))
        if pool.stopping:
            # A sibling failed; the page will be retried from the old checkpoint.
            return
        key = partition.record_key(event.entity_id)
        if lookup.state is EntityState.PRESENT:
            await self._sink.put(key, lookup.body)
            counts.upserted += 1
        else:
            logger.debug("Entity %s is gone; deleting %s", event.entity_id, key)
            await self._sink.delete(key)
            counts.deleted += 1
