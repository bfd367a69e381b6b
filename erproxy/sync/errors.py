"""Errors raised by the registry synchronisation pipeline."""

from __future__ import annotations

import typing as typ


class SyncError(Exception):
    """Base class for synchronisation pipeline errors."""


class DecodeError(SyncError):
    """Raised when a bulk export is not valid gzip-compressed JSON."""

    @classmethod
    def bad_compression(cls, detail: object) -> DecodeError:
        """Return an error for a stream that fails to decompress."""
        return cls(f"bulk export is not valid gzip data: {detail}")

    @classmethod
    def truncated(cls) -> DecodeError:
        """Return an error for a stream that ends mid-document."""
        return cls("bulk export ended before the top-level array was closed")

    @classmethod
    def unexpected(cls, what: str, offset: int) -> DecodeError:
        """Return an error for structurally invalid input."""
        return cls(f"unexpected {what} at decompressed offset {offset}")

    @classmethod
    def invalid_record(cls, detail: object) -> DecodeError:
        """Return an error for an array element that is not valid JSON."""
        return cls(f"invalid record in bulk export: {detail}")

    @classmethod
    def missing_identifier(cls, field: str) -> DecodeError:
        """Return an error for a record lacking its entity identifier."""
        return cls(f"record is missing the {field!r} identifier")


class TransportError(SyncError):
    """Raised when a network call to the registry or the object store fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
    ) -> None:
        """Initialise with a message and optional HTTP status and URL."""
        self.status_code = status_code
        self.url = url
        super().__init__(message)

    @classmethod
    def http_status(cls, status_code: int, url: str) -> TransportError:
        """Return an error for an unexpected HTTP status."""
        return cls(
            f"registry returned HTTP {status_code} for {url}",
            status_code=status_code,
            url=url,
        )

    @classmethod
    def request_failed(cls, url: str, exc: BaseException) -> TransportError:
        """Return an error for a request that never produced a response."""
        return cls(f"request to {url} failed: {exc}", url=url)


class InvalidCheckpointError(SyncError):
    """Raised when a partition has no usable checkpoint for incremental sync."""

    def __init__(self, key: str, reason: str) -> None:
        """Initialise with the checkpoint key and the reason it is unusable."""
        self.key = key
        self.reason = reason
        super().__init__(f"checkpoint {key} is unusable: {reason}")


class CheckpointNotFoundError(InvalidCheckpointError):
    """Raised when no checkpoint record exists for a partition."""

    def __init__(self, key: str) -> None:
        """Initialise with the missing checkpoint key."""
        super().__init__(key, "not found")


class CorruptCheckpointError(InvalidCheckpointError):
    """Raised when a checkpoint record cannot be parsed."""


class PartialBatchFailure(SyncError):
    """Raised when one or more record operations of a batch fail."""

    def __init__(self, errors: typ.Sequence[BaseException]) -> None:
        """Initialise with every failure collected from the batch."""
        self.errors = tuple(errors)
        first = self.errors[0] if self.errors else None
        super().__init__(
            f"{len(self.errors)} record operation(s) failed; first: {first!r}"
        )

    @property
    def first(self) -> BaseException | None:
        """Return the earliest failure observed in the batch."""
        return self.errors[0] if self.errors else None


class IngestionError(SyncError):
    """Raised when a full snapshot ingestion of a partition fails."""

    def __init__(self, partition: str, cause: BaseException) -> None:
        """Initialise with the partition name and the first terminal failure."""
        self.partition = partition
        self.cause = cause
        super().__init__(f"snapshot ingestion of {partition} failed: {cause}")


class PaginationStalledError(SyncError):
    """Raised when a cursor restart would re-issue an identical query."""

    def __init__(self, partition: str, cursor: str) -> None:
        """Initialise with the partition and the cursor that made no progress."""
        self.partition = partition
        self.cursor = cursor
        super().__init__(
            f"change feed for {partition} made no progress past {cursor}; "
            "more events share one timestamp than the pagination cap allows"
        )
