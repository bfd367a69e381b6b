"""Dramatiq broker bootstrap for the sync actor.

The actor never configures a production broker itself; the worker process
does that (``dramatiq erproxy.worker.actor`` with RabbitMQ or Redis). Local
runs and tests fall back to an in-process ``StubBroker`` when allowed.
"""

from __future__ import annotations

import os
import sys
import threading

import dramatiq
from dramatiq.brokers.stub import StubBroker

_BROKER_LOCK = threading.Lock()
_broker_ready = False

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_PYTEST_ENV_VARS = ("PYTEST_CURRENT_TEST", "PYTEST_XDIST_WORKER", "PYTEST_ADDOPTS")


def _stub_broker_allowed() -> bool:
    """Return True under pytest or when ``ERPROXY_ALLOW_STUB_BROKER`` is set."""
    if os.environ.get("ERPROXY_ALLOW_STUB_BROKER", "").strip().lower() in _TRUTHY:
        return True
    return "pytest" in sys.modules or any(key in os.environ for key in _PYTEST_ENV_VARS)


def _current_broker() -> dramatiq.Broker | None:
    try:
        return dramatiq.get_broker()
    except (ImportError, LookupError):
        # No broker library installed, or none configured yet.
        return None


def ensure_broker_configured() -> None:
    """Make sure a Dramatiq broker exists, installing a stub where allowed.

    Idempotent and safe to call from concurrent worker threads.

    Raises
    ------
    RuntimeError
        If no broker is configured outside a stub-allowed context.

    """
    global _broker_ready

    if _broker_ready:
        return

    with _BROKER_LOCK:
        if _broker_ready:
            return
        if _current_broker() is None:
            if not _stub_broker_allowed():  # pragma: no cover - prod misconfiguration
                message = (
                    "No Dramatiq broker configured. Set ERPROXY_ALLOW_STUB_BROKER=1 "
                    "for local runs or configure a real broker."
                )
                raise RuntimeError(message)
            dramatiq.set_broker(StubBroker())
        _broker_ready = True
