r"""Filesystem adapter for the ObjectSink protocol.

Stores objects as files under a container directory, one file per key::

    {base_path}/{container}/enheter/912345678
    {base_path}/{container}/state/enheter.json

Writes go to a temporary sibling first and are moved into place with
``os.replace`` so a concurrent reader sees either the old or the new file.

Usage
-----
>>> import asyncio
>>> from pathlib import Path
>>> from erproxy.sink import FilesystemObjectSink
>>>
>>> sink = FilesystemObjectSink(Path("/var/lib/erproxy"), container="erproxy")
>>> asyncio.run(sink.create())
>>> asyncio.run(sink.put("enheter/912345678", b'{"navn": "X"}'))

"""

from __future__ import annotations

import asyncio
import os
import typing as typ
import uuid

from .errors import StorageError
from .protocol import JSON_CONTENT_TYPE

if typ.TYPE_CHECKING:
    from pathlib import Path


class FilesystemObjectSink:
    """Write mirrored objects to the local filesystem.

    Parameters
    ----------
    base_path
        Root directory for storage.
    container
        Optional container subdirectory; when empty, objects are written
        directly below ``base_path``.

    """

    def __init__(self, base_path: Path, *, container: str = "") -> None:
        """Initialise the sink with a base directory and container name."""
        self._root = base_path / container if container else base_path

    @property
    def root(self) -> Path:
        """Return the directory that holds the container's objects."""
        return self._root

    def _path_for(self, key: str) -> Path:
        parts = [part for part in key.split("/") if part]
        if not parts or any(part in {".", ".."} for part in parts):
            msg = f"invalid object key: {key!r}"
            raise ValueError(msg)
        return self._root.joinpath(*parts)

    async def put(
        self, key: str, data: bytes, *, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        """Atomically write ``data`` to the file for ``key``.

        ``content_type`` is accepted for protocol compatibility; the
        filesystem has nowhere to record it.
        """
        path = self._path_for(key)
        try:
            await asyncio.to_thread(_atomic_write, path, data)
        except OSError as exc:
            raise StorageError.operation_failed("put", key, exc) from exc

    async def get(self, key: str) -> bytes | None:
        """Return the file content for ``key``, or ``None`` if missing."""
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError.operation_failed("get", key, exc) from exc

    async def delete(self, key: str) -> None:
        """Remove the file for ``key`` if it exists."""
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise StorageError.operation_failed("delete", key, exc) from exc

    async def exists(self) -> bool:
        """Return True when the container directory exists."""
        return await asyncio.to_thread(self._root.is_dir)

    async def create(self) -> None:
        """Create the container directory."""
        try:
            await asyncio.to_thread(self._root.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError.operation_failed("create", None, exc) from exc


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)
