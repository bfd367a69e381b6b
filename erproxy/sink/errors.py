"""Common exception hierarchy for object sink adapters."""

from __future__ import annotations

from erproxy.sync.errors import TransportError


class StorageError(TransportError):
    """Raised when an object store operation fails."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        """Initialise with a message and the key being operated on."""
        self.key = key
        super().__init__(message)

    @classmethod
    def operation_failed(
        cls, operation: str, key: str | None, exc: BaseException
    ) -> StorageError:
        """Return an error describing a failed sink operation."""
        target = key if key is not None else "<container>"
        return cls(f"object store {operation} of {target} failed: {exc}", key=key)


class StoragePermissionError(StorageError):
    """Raised when credentials are invalid or access is denied."""
