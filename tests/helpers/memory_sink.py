"""In-memory ObjectSink double with failure injection and concurrency tracking."""

from __future__ import annotations

import asyncio
import dataclasses

from erproxy.sink.errors import StorageError
from erproxy.sink.protocol import JSON_CONTENT_TYPE


@dataclasses.dataclass(slots=True)
class SinkOperation:
    """One recorded sink call."""

    name: str
    key: str | None
    data: bytes | None = None


class MemoryObjectSink:
    """Store objects in a dict and record every call.

    Parameters
    ----------
    container_exists
        Initial result of :meth:`exists`.
    write_delay
        Seconds each ``put``/``delete`` sleeps, to make concurrency visible.

    """

    def __init__(
        self, *, container_exists: bool = True, write_delay: float = 0.0
    ) -> None:
        """Create an empty sink."""
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.operations: list[SinkOperation] = []
        self.container_exists = container_exists
        self.write_delay = write_delay
        self.failing_keys: set[str] = set()
        self.fail_after_puts: int | None = None
        self.in_flight = 0
        self.peak_in_flight = 0
        self.completed_writes = 0

    async def put(
        self, key: str, data: bytes, *, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        """Store ``data`` under ``key`` unless a failure is configured."""
        self.operations.append(SinkOperation("put", key, bytes(data)))
        puts = sum(1 for op in self.operations if op.name == "put")
        if key in self.failing_keys or (
            self.fail_after_puts is not None and puts > self.fail_after_puts
        ):
            msg = f"injected failure writing {key}"
            raise StorageError(msg, key=key)
        await self._write(lambda: self._store(key, data, content_type))

    async def get(self, key: str) -> bytes | None:
        """Return the stored object or ``None``."""
        self.operations.append(SinkOperation("get", key))
        return self.objects.get(key)

    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        self.operations.append(SinkOperation("delete", key))
        if key in self.failing_keys:
            msg = f"injected failure deleting {key}"
            raise StorageError(msg, key=key)
        await self._write(lambda: self._remove(key))

    async def exists(self) -> bool:
        """Return the configured container state."""
        return self.container_exists

    async def create(self) -> None:
        """Mark the container as existing."""
        self.operations.append(SinkOperation("create", None))
        self.container_exists = True

    def keys(self, prefix: str = "") -> list[str]:
        """Return stored keys starting with ``prefix``, sorted."""
        return sorted(key for key in self.objects if key.startswith(prefix))

    def puts_to(self, key: str) -> list[bytes]:
        """Return the payloads written to ``key`` in call order."""
        return [
            op.data
            for op in self.operations
            if op.name == "put" and op.key == key and op.data is not None
        ]

    async def _write(self, apply: object) -> None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.write_delay)
            apply()  # type: ignore[operator]
            self.completed_writes += 1
        finally:
            self.in_flight -= 1

    def _store(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type

    def _remove(self, key: str) -> None:
        self.objects.pop(key, None)
        self.content_types.pop(key, None)
