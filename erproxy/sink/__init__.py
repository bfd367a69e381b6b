"""Object sink port and adapters for the mirror store."""

from __future__ import annotations

from .errors import StorageError, StoragePermissionError
from .filesystem import FilesystemObjectSink
from .protocol import JSON_CONTENT_TYPE, ObjectSink

__all__ = [
    "JSON_CONTENT_TYPE",
    "FilesystemObjectSink",
    "ObjectSink",
    "StorageError",
    "StoragePermissionError",
]
