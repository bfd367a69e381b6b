"""Logging setup and femtologging helpers for process entry points.

The HTTP runtime, the seeding CLI and the worker actor log through
femtologging with pre-formatted messages. The sync pipeline itself logs
through the standard library so it stays usable as a library;
:func:`configure_logging` sets up both at the same level.

Example:
>>> from erproxy.logging import configure_logging, get_logger, log_info
>>> configure_logging("debug")
('DEBUG', False)
>>> log_info(get_logger(__name__), "Seeding %s", "enheter")

"""

from __future__ import annotations

import enum
import logging
import typing as typ

from femtologging import basicConfig, get_logger

_STDLIB_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class LogLevel(enum.StrEnum):
    """Log levels accepted in ``*_LOG_LEVEL`` settings."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# femtologging's TRACE and WARN have no distinct stdlib level.
_STDLIB_LEVELS: dict[LogLevel, int] = {
    LogLevel.TRACE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


def normalize_log_level(level: str | None) -> tuple[LogLevel, bool]:
    """Return the canonical level for ``level`` and whether it was invalid.

    Empty or unknown values fall back to INFO with the invalid flag set so
    callers can warn once logging is up.

    >>> normalize_log_level(" warn ")
    (<LogLevel.WARN: 'WARN'>, False)

    """
    if level:
        candidate = level.strip().upper()
        if candidate in LogLevel.__members__:
            return (LogLevel(candidate), False)
    return (LogLevel.INFO, True)


def configure_logging(level: str | None, *, force: bool = False) -> tuple[str, bool]:
    """Configure femtologging and stdlib logging at ``level``.

    Returns
    -------
    tuple[str, bool]
        The level actually applied and whether ``level`` was invalid.

    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized.value, force=force)
    logging.basicConfig(
        level=_STDLIB_LEVELS[normalized], format=_STDLIB_FORMAT, force=force
    )
    return (normalized.value, invalid)


class _SupportsLog(typ.Protocol):
    """Protocol for femtologging-compatible loggers."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into a percent-style ``template``."""
    return template % args if args else template


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    logger.log(
        level.value,
        format_log_message(template, *args),
        exc_info=exc_info,
        stack_info=False,
    )


def log_debug(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log a DEBUG message with percent-style formatting."""
    _emit(logger, LogLevel.DEBUG, template, args, exc_info)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an INFO message with percent-style formatting."""
    _emit(logger, LogLevel.INFO, template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log a WARNING message with percent-style formatting."""
    _emit(logger, LogLevel.WARNING, template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an ERROR message with percent-style formatting.

    Parameters
    ----------
    logger
        Logger that receives the formatted message.
    template
        Message template using percent-style placeholders.
    *args
        Values to interpolate into the template.
    exc_info
        Exception information to attach to the record.

    """
    _emit(logger, LogLevel.ERROR, template, args, exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log ``message`` at ERROR with ``exc`` attached as exc_info."""
    _emit(logger, LogLevel.ERROR, "%s", (message,), exc)


__all__ = [
    "LogLevel",
    "configure_logging",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
