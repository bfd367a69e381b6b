"""Durable per-partition sync checkpoints.

A checkpoint records how far a partition's mirror is known to be current.
It is stored as a small JSON document in the same object sink as the
records themselves::

    {"lastUpdated": "2024-05-01T04:02:09.514000+00:00"}

The timestamp is always written in UTC with microsecond precision so that
records written by any process parse identically.
"""

from __future__ import annotations

import asyncio
import logging
import typing as typ

import msgspec

from erproxy.common.time import (
    format_checkpoint,
    is_zero_checkpoint,
    parse_checkpoint,
)

from .errors import (
    CheckpointNotFoundError,
    CorruptCheckpointError,
    InvalidCheckpointError,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from erproxy.sink.protocol import ObjectSink

log = logging.getLogger(__name__)


class CheckpointRecord(msgspec.Struct, frozen=True):
    """Serialised form of a checkpoint."""

    last_updated: str = msgspec.field(name="lastUpdated")


_record_decoder = msgspec.json.Decoder(CheckpointRecord)


class StateStore:
    """Load and save partition checkpoints through an object sink."""

    def __init__(self, sink: ObjectSink) -> None:
        """Initialise the store over ``sink``."""
        self._sink = sink
        self._locks: dict[str, asyncio.Lock] = {}

    async def load(self, key: str) -> dt.datetime:
        """Return the checkpoint stored under ``key``.

        Raises
        ------
        CheckpointNotFoundError
            If no checkpoint has been written.
        CorruptCheckpointError
            If the record cannot be parsed or holds the "never synced"
            sentinel.

        """
        raw = await self._sink.get(key)
        if raw is None:
            raise CheckpointNotFoundError(key)
        try:
            record = _record_decoder.decode(raw)
            checkpoint = parse_checkpoint(record.last_updated)
        except (msgspec.DecodeError, ValueError) as exc:
            raise CorruptCheckpointError(key, str(exc)) from exc
        if is_zero_checkpoint(checkpoint):
            raise CorruptCheckpointError(key, "holds the never-synced sentinel")
        return checkpoint

    async def load_or_none(self, key: str) -> dt.datetime | None:
        """Return the checkpoint under ``key``, or ``None`` if it is unusable."""
        try:
            return await self.load(key)
        except InvalidCheckpointError as exc:
            log.info("No usable checkpoint: %s", exc)
            return None

    async def save(self, key: str, checkpoint: dt.datetime) -> None:
        """Persist ``checkpoint`` under ``key``, replacing any previous value."""
        payload = msgspec.json.encode(
            CheckpointRecord(last_updated=format_checkpoint(checkpoint))
        )
        async with self._lock_for(key):
            await self._sink.put(key, payload)
        log.debug("Saved checkpoint %s = %s", key, checkpoint.isoformat())

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock
