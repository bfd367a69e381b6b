"""Full snapshot ingestion from the registry's bulk export.

The ingestor streams one partition's compressed export, decodes it record by
record and writes every entity to ``{tag}/{organisasjonsnummer}``. It is
additive: records absent from the export are never deleted, and the
partition checkpoint is left to the caller.
"""

from __future__ import annotations

import dataclasses
import logging
import typing as typ

import msgspec

from erproxy.common.time import utcnow
from erproxy.registry.models import ENTITY_ID_FIELD

from .decoder import iter_records
from .errors import DecodeError, IngestionError, PartialBatchFailure, SyncError
from .observability import SyncEventLogger
from .pool import DEFAULT_CONCURRENCY, BoundedTaskPool

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from erproxy.registry.client import RegistryClient
    from erproxy.registry.models import PartitionDescriptor
    from erproxy.sink.protocol import ObjectSink

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class SnapshotResult:
    """Summary of a completed snapshot ingest."""

    partition: str
    records: int
    elapsed: dt.timedelta


def entity_id_of(record: dict[str, typ.Any]) -> str:
    """Return the organisation number of a decoded export record."""
    value = record.get(ENTITY_ID_FIELD)
    if not isinstance(value, str) or not value.strip():
        raise DecodeError.missing_identifier(ENTITY_ID_FIELD)
    return value


class SnapshotIngestor:
    """Mirror a partition's bulk export into an object sink."""

    def __init__(
        self,
        client: RegistryClient,
        sink: ObjectSink,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        events: SyncEventLogger | None = None,
    ) -> None:
        """Configure the ingestor with its registry client and sink."""
        self._client = client
        self._sink = sink
        self._concurrency = concurrency
        self._events = events or SyncEventLogger()

    async def ingest(self, partition: PartitionDescriptor) -> SnapshotResult:
        """Download and store every record of ``partition``.

        Raises
        ------
        IngestionError
            Wrapping the first decode, transport or write failure. Writes
            dispatched before the failure are allowed to finish.

        """
        logger.info("Starting snapshot ingest of %s", partition.name)
        try:
            async with self._client.open_export(partition) as chunks:
                return await self.ingest_stream(partition, chunks)
        except IngestionError:
            raise
        except SyncError as exc:
            raise IngestionError(partition.name, exc) from exc

    async def ingest_stream(
        self,
        partition: PartitionDescriptor,
        chunks: cabc.AsyncIterable[bytes],
    ) -> SnapshotResult:
        """Store every record of an already opened compressed export stream."""
        started = utcnow()
        try:
            async with BoundedTaskPool(self._concurrency) as pool:
                async for record in iter_records(chunks):
                    key = partition.record_key(entity_id_of(record))
                    payload = msgspec.json.encode(record)
                    # Submitting blocks while the pool is full, so decoding
                    # never runs ahead of the writes.
                    await pool.submit(self._sink.put, key, payload)
        except PartialBatchFailure as exc:
            cause = exc.first if exc.first is not None else exc
            raise IngestionError(partition.name, cause) from exc
        except SyncError as exc:
            raise IngestionError(partition.name, exc) from exc

        elapsed = utcnow() - started
        self._events.log_snapshot_completed(partition.name, pool.completed, elapsed)
        return SnapshotResult(
            partition=partition.name, records=pool.completed, elapsed=elapsed
        )
