"""Domain exceptions and Falcon error handlers for the API layer.

Usage
-----
Register error handlers on the Falcon app::

    app.add_error_handler(InvalidInputError, handle_invalid_input)
    app.add_error_handler(SyncInProgressError, handle_sync_in_progress)
    app.add_error_handler(SyncError, handle_sync_error)

"""

from __future__ import annotations

import typing as typ

import falcon

from erproxy.sync.observability import categorize_error

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from erproxy.sync.errors import SyncError

__all__ = [
    "InvalidInputError",
    "SyncInProgressError",
    "handle_invalid_input",
    "handle_sync_error",
    "handle_sync_in_progress",
]


class InvalidInputError(Exception):
    """Raised for client validation errors that should map to HTTP 400.

    Attributes
    ----------
    reason
        Human-readable description of the validation failure.
    field
        Optional name of the input field that failed validation.

    """

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialise with a validation reason and optional field name."""
        self.reason = reason
        self.field = field
        message = f"{field}: {reason}" if field is not None else reason
        super().__init__(message)


class SyncInProgressError(Exception):
    """Raised when a sync is requested while another is still running."""

    def __init__(self) -> None:
        """Initialise with a fixed message."""
        super().__init__("A sync run is already in progress.")


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidInputError`` to an HTTP 400 JSON response."""
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {
        "title": "Invalid input",
        "description": ex.reason,
    }
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media


async def handle_sync_in_progress(
    _req: Request,
    resp: Response,
    ex: SyncInProgressError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``SyncInProgressError`` to an HTTP 409 JSON response."""
    resp.status = falcon.HTTP_409
    resp.media = {"title": "Sync in progress", "description": str(ex)}


async def handle_sync_error(
    _req: Request,
    resp: Response,
    ex: SyncError,
    _params: dict[str, typ.Any],
) -> None:
    """Map a run-level ``SyncError`` to an HTTP 500 JSON response.

    Per-partition failures are reported in the run report instead; this
    handler only sees failures that prevented the run from starting, such
    as an unreachable object store.
    """
    resp.status = falcon.HTTP_500
    resp.media = {
        "title": "Sync failed",
        "description": str(ex),
        "error_category": str(categorize_error(ex)),
    }
