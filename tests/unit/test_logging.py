"""Unit tests for femtologging integration helpers.

Run with:
    pytest tests/unit/test_logging.py
"""

from __future__ import annotations

import logging

import pytest

from erproxy.logging import (
    LogLevel,
    configure_logging,
    format_log_message,
    log_debug,
    log_error,
    log_exception,
    log_info,
    log_warning,
    normalize_log_level,
)


class _FakeLogger:
    """Collects log calls for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, object | None, bool]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        self.calls.append((level, message, exc_info, stack_info))
        return message


@pytest.mark.parametrize(
    ("input_level", "expected_level", "expected_invalid"),
    [
        ("warning", LogLevel.WARNING, False),
        (" warn ", LogLevel.WARN, False),
        ("trace", LogLevel.TRACE, False),
        (None, LogLevel.INFO, True),
        ("", LogLevel.INFO, True),
        ("verbose", LogLevel.INFO, True),
    ],
)
def test_normalize_log_level(
    input_level: str | None, expected_level: LogLevel, *, expected_invalid: bool
) -> None:
    """Levels are normalised and invalid inputs flagged."""
    assert normalize_log_level(input_level) == (expected_level, expected_invalid)


def test_format_log_message_uses_percent_formatting() -> None:
    """Percent formatting produces the expected message."""
    assert format_log_message("seeded %d %s", 3, "units") == "seeded 3 units"
    assert format_log_message("100% done") == "100% done"


@pytest.mark.parametrize(
    ("helper", "level"),
    [
        (log_debug, "DEBUG"),
        (log_info, "INFO"),
        (log_warning, "WARNING"),
        (log_error, "ERROR"),
    ],
)
def test_helpers_format_and_pass_level(helper: object, level: str) -> None:
    """Each helper formats the message and emits its level."""
    logger = _FakeLogger()

    helper(logger, "partition %s", "enheter")  # type: ignore[operator]

    assert logger.calls == [(level, "partition enheter", None, False)]


def test_log_warning_forwards_exc_info() -> None:
    """Exception info is passed through untouched."""
    logger = _FakeLogger()
    exc = ValueError("boom")

    log_warning(logger, "warning: %s", "oops", exc_info=exc)

    assert logger.calls == [("WARNING", "warning: oops", exc, False)]


def test_log_exception_does_not_interpolate_message() -> None:
    """log_exception treats the message literally and attaches the error."""
    logger = _FakeLogger()
    exc = RuntimeError("boom")

    log_exception(logger, "sync failed at 100%", exc)

    assert logger.calls == [("ERROR", "sync failed at 100%", exc, False)]


@pytest.mark.parametrize(
    ("input_level", "expected_normalized", "expected_stdlib", "expected_invalid"),
    [
        ("DEBUG", "DEBUG", logging.DEBUG, False),
        ("warn", "WARN", logging.WARNING, False),
        ("nope", "INFO", logging.INFO, True),
    ],
)
def test_configure_logging(
    monkeypatch: pytest.MonkeyPatch,
    input_level: str,
    expected_normalized: str,
    expected_stdlib: int,
    *,
    expected_invalid: bool,
) -> None:
    """Both femtologging and stdlib logging are configured at one level."""
    femto: dict[str, object] = {}
    stdlib: dict[str, object] = {}

    def fake_basic_config(**kwargs: object) -> None:
        femto.update(kwargs)

    def fake_stdlib_basic_config(**kwargs: object) -> None:
        stdlib.update(kwargs)

    monkeypatch.setattr("erproxy.logging.basicConfig", fake_basic_config)
    monkeypatch.setattr(logging, "basicConfig", fake_stdlib_basic_config)

    normalized, invalid = configure_logging(input_level)

    assert (normalized, invalid) == (expected_normalized, expected_invalid)
    assert femto == {"level": expected_normalized, "force": False}
    assert stdlib["level"] == expected_stdlib
    assert stdlib["force"] is False
