"""Common time utilities and the fixed checkpoint timestamp format."""

from __future__ import annotations

import datetime as dt

# Checkpoints are always written as YYYY-MM-DDTHH:MM:SS.ffffff+00:00.
CHECKPOINT_PARSE_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

ZERO_CHECKPOINT = dt.datetime.min.replace(tzinfo=dt.UTC)


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


def format_checkpoint(value: dt.datetime) -> str:
    """Render ``value`` in the fixed checkpoint format, normalised to UTC.

    >>> format_checkpoint(dt.datetime(2024, 1, 2, 3, 4, 5, 6, tzinfo=dt.UTC))
    '2024-01-02T03:04:05.000006+00:00'

    """
    if value.tzinfo is None:
        msg = "checkpoint timestamps must be timezone-aware"
        raise ValueError(msg)
    utc = value.astimezone(dt.UTC)
    # strftime("%Y") does not zero-pad years below 1000 on every platform.
    return f"{utc.year:04d}-{utc:%m-%dT%H:%M:%S.%f}+00:00"


def parse_checkpoint(text: str) -> dt.datetime:
    """Parse a timestamp written by :func:`format_checkpoint`."""
    return dt.datetime.strptime(text, CHECKPOINT_PARSE_FORMAT).astimezone(dt.UTC)


def is_zero_checkpoint(value: dt.datetime) -> bool:
    """Return True for the "never synced" sentinel."""
    return value <= ZERO_CHECKPOINT
