"""ObjectSink protocol for the key-addressed mirror store.

This module defines the port through which every pipeline component reaches
the destination store. Adapters implement it for a local directory
(seeding, development) or Azure Blob Storage (production).

The protocol is ``runtime_checkable`` to support ``isinstance`` checks
for dependency injection and testing scenarios.

Usage
-----
Type-check a concrete adapter:

>>> from pathlib import Path
>>> from erproxy.sink import FilesystemObjectSink, ObjectSink
>>> isinstance(FilesystemObjectSink(Path(".")), ObjectSink)
True

"""

from __future__ import annotations

import typing as typ

JSON_CONTENT_TYPE = "application/json"


@typ.runtime_checkable
class ObjectSink(typ.Protocol):
    """Protocol for a container of objects addressed by string keys.

    Implementations must allow concurrent ``put``/``delete`` calls on
    different keys, and a ``put`` must replace the whole object so readers
    never observe a partially written value.

    """

    async def put(
        self, key: str, data: bytes, *, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        """Create or fully replace the object stored under ``key``."""
        ...

    async def get(self, key: str) -> bytes | None:
        """Return the object stored under ``key``, or ``None`` if absent."""
        ...

    async def delete(self, key: str) -> None:
        """Delete ``key``; deleting a missing key is not an error."""
        ...

    async def exists(self) -> bool:
        """Return True when the destination container exists."""
        ...

    async def create(self) -> None:
        """Create the destination container."""
        ...
