"""Structured log events and error categorisation for sync runs.

Every event is a single log line of the form ``[event.type] key=value ...``
so log aggregators can extract run metrics and route alerts by
``error_category`` without a separate metrics pipeline.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import typing as typ

from erproxy.registry.errors import RegistryResponseShapeError
from erproxy.sink.errors import StorageError

from .errors import (
    DecodeError,
    IngestionError,
    InvalidCheckpointError,
    PaginationStalledError,
    PartialBatchFailure,
    TransportError,
)

if typ.TYPE_CHECKING:
    import datetime as dt

logger = logging.getLogger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500


class SyncEventType(enum.StrEnum):
    """Structured log event types for sync observability."""

    RUN_STARTED = "sync.run.started"
    RUN_COMPLETED = "sync.run.completed"
    SEEDING_REQUIRED = "sync.run.seeding_required"
    PARTITION_COMPLETED = "sync.partition.completed"
    PARTITION_FAILED = "sync.partition.failed"
    FULL_RESYNC = "sync.partition.full_resync"
    PAGE_APPLIED = "sync.changes.page_applied"
    CURSOR_RESTARTED = "sync.changes.cursor_restarted"
    SNAPSHOT_COMPLETED = "sync.snapshot.completed"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    DECODE = "decode"
    CHECKPOINT = "checkpoint"
    STORAGE = "storage"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (StorageError, ErrorCategory.STORAGE),
    (DecodeError, ErrorCategory.DECODE),
    (RegistryResponseShapeError, ErrorCategory.DECODE),
    (InvalidCheckpointError, ErrorCategory.CHECKPOINT),
    (PaginationStalledError, ErrorCategory.CHECKPOINT),
    (TimeoutError, ErrorCategory.TRANSIENT),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorise an exception for alert routing.

    Batch and ingestion wrappers are unwrapped to their first underlying
    failure before classification.
    """
    if isinstance(exc, PartialBatchFailure) and exc.first is not None:
        return categorize_error(exc.first)
    if isinstance(exc, IngestionError):
        return categorize_error(exc.cause)

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    # Transport failures without a status never reached the server.
    if isinstance(exc, TransportError):
        if (
            exc.status_code is None
            or exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD
        ):
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    return ErrorCategory.UNKNOWN


@dataclasses.dataclass(frozen=True, slots=True)
class RunContext:
    """Shared context for a single coordinator run."""

    run_id: str
    partitions: tuple[str, ...]
    started_at: dt.datetime
    force_full: bool = False


class SyncEventLogger:
    """Emit structured sync events via Python logging.

    Success events are logged at INFO, restarts and seeding prompts at
    WARNING and failures at ERROR with the exception attached.
    """

    def log_run_started(self, context: RunContext) -> None:
        """Log coordinator run start."""
        logger.info(
            "[%s] run_id=%s partitions=%s force_full=%s started_at=%s",
            SyncEventType.RUN_STARTED,
            context.run_id,
            ",".join(context.partitions),
            context.force_full,
            context.started_at.isoformat(),
        )

    def log_run_completed(
        self,
        context: RunContext,
        *,
        succeeded: int,
        failed: int,
        duration: dt.timedelta,
    ) -> None:
        """Log coordinator run completion with partition counts."""
        log = logger.info if failed == 0 else logger.warning
        log(
            "[%s] run_id=%s duration_seconds=%.3f partitions_succeeded=%d "
            "partitions_failed=%d",
            SyncEventType.RUN_COMPLETED,
            context.run_id,
            duration.total_seconds(),
            succeeded,
            failed,
        )

    def log_seeding_required(self, context: RunContext, container: str) -> None:
        """Log that a fresh container was created and needs external seeding."""
        logger.warning(
            "[%s] run_id=%s container=%s action=%s",
            SyncEventType.SEEDING_REQUIRED,
            context.run_id,
            container,
            "run erproxy-seed and upload its output before the next sync",
        )

    def log_full_resync(self, partition: str, reason: str) -> None:
        """Log that a partition falls back to a full snapshot ingest."""
        logger.info(
            "[%s] partition=%s reason=%s",
            SyncEventType.FULL_RESYNC,
            partition,
            reason,
        )

    def log_partition_completed(
        self, partition: str, mode: str, records: int, duration: dt.timedelta
    ) -> None:
        """Log a partition that finished successfully."""
        logger.info(
            "[%s] partition=%s mode=%s records=%d duration_seconds=%.3f",
            SyncEventType.PARTITION_COMPLETED,
            partition,
            mode,
            records,
            duration.total_seconds(),
        )

    def log_partition_failed(
        self, partition: str, error: BaseException, duration: dt.timedelta
    ) -> None:
        """Log a failed partition with error categorisation."""
        logger.error(
            "[%s] partition=%s duration_seconds=%.3f error_type=%s "
            "error_category=%s error_message=%s",
            SyncEventType.PARTITION_FAILED,
            partition,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_page_applied(
        self, partition: str, page: int, events: int, checkpoint: dt.datetime
    ) -> None:
        """Log a change page whose events were applied and checkpointed."""
        logger.debug(
            "[%s] partition=%s page=%d events=%d checkpoint=%s",
            SyncEventType.PAGE_APPLIED,
            partition,
            page,
            events,
            checkpoint.isoformat(),
        )

    def log_cursor_restarted(
        self, partition: str, page: int, checkpoint: dt.datetime
    ) -> None:
        """Log a change-feed query restarted from the saved checkpoint."""
        logger.info(
            "[%s] partition=%s abandoned_page=%d since=%s",
            SyncEventType.CURSOR_RESTARTED,
            partition,
            page,
            checkpoint.isoformat(),
        )

    def log_snapshot_completed(
        self, partition: str, records: int, duration: dt.timedelta
    ) -> None:
        """Log a finished bulk snapshot ingest."""
        logger.info(
            "[%s] partition=%s records=%d duration_seconds=%.3f",
            SyncEventType.SNAPSHOT_COMPLETED,
            partition,
            records,
            duration.total_seconds(),
        )
