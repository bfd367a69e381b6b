"""Bounded fan-out of per-record operations with backpressure.

Ingesting a partition touches hundreds of thousands of records. Rather than
creating one task per record up front, producers ``await pool.submit(...)``,
which blocks while ``limit`` operations are already in flight. The pool
stops accepting work once an operation fails or the producer is interrupted
(an exception inside ``async with`` or a cancellation while draining). It
always waits for operations that were already dispatched and never cancels
a write midway.

Usage
-----
>>> async with BoundedTaskPool(64) as pool:
...     async for record in records:
...         await pool.submit(sink.put, key_for(record), encode(record))

"""

from __future__ import annotations

import asyncio
import typing as typ

from .errors import PartialBatchFailure

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import types

DEFAULT_CONCURRENCY = 64

P = typ.ParamSpec("P")


class BoundedTaskPool:
    """Run coroutine operations concurrently, at most ``limit`` at a time."""

    def __init__(self, limit: int = DEFAULT_CONCURRENCY) -> None:
        """Create a pool admitting at most ``limit`` in-flight operations."""
        if limit < 1:
            msg = f"pool limit must be positive, got {limit}"
            raise ValueError(msg)
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._tasks: set[asyncio.Task[None]] = set()
        self._errors: list[Exception] = []
        self._stopping = False
        self.submitted = 0
        self.completed = 0

    @property
    def limit(self) -> int:
        """Return the maximum number of concurrent operations."""
        return self._limit

    @property
    def stopping(self) -> bool:
        """Return True once the pool has stopped accepting work.

        Operations that perform several steps check this between steps so a
        failed or cancelled batch stops issuing new network calls promptly.
        """
        return self._stopping

    @property
    def in_flight(self) -> int:
        """Return the number of operations currently running."""
        return len(self._tasks)

    async def __aenter__(self) -> typ.Self:
        """Return the pool for use inside ``async with``."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        """Wait for dispatched operations and surface collected failures."""
        if exc is not None:
            self._stopping = True
        await self._drain()
        if exc is not None and not isinstance(exc, PartialBatchFailure):
            return
        if self._errors:
            raise PartialBatchFailure(self._errors) from None

    async def submit(
        self,
        operation: cabc.Callable[P, cabc.Awaitable[object]],
        /,
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> None:
        """Schedule ``operation(*args, **kwargs)``, waiting for a free slot.

        Raises
        ------
        PartialBatchFailure
            If an earlier operation has already failed; the caller should
            stop producing work.

        """
        self._raise_if_failed()
        await self._semaphore.acquire()
        if self._stopping:
            self._semaphore.release()
            self._raise_if_failed()
            msg = "pool is no longer accepting work"
            raise RuntimeError(msg)
        task = asyncio.create_task(self._run(operation(*args, **kwargs)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.submitted += 1

    async def _run(self, operation: cabc.Awaitable[object]) -> None:
        try:
            await operation
        except Exception as exc:  # noqa: BLE001 - collected and re-raised in bulk
            self._errors.append(exc)
            self._stopping = True
        else:
            self.completed += 1
        finally:
            self._semaphore.release()

    async def _drain(self) -> None:
        # asyncio.wait never cancels the awaited tasks, so a cancelled owner
        # keeps waiting here until every dispatched operation has settled.
        cancelled: asyncio.CancelledError | None = None
        while self._tasks:
            try:
                await asyncio.wait(set(self._tasks))
            except asyncio.CancelledError as exc:
                self._stopping = True
                cancelled = exc
        if cancelled is not None:
            raise cancelled

    def _raise_if_failed(self) -> None:
        if self._errors:
            raise PartialBatchFailure(self._errors)
