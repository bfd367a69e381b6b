"""Registry API errors."""

from __future__ import annotations

from erproxy.sync.errors import SyncError


class RegistryResponseShapeError(SyncError):
    """Raised when a change-feed response does not match the expected shape."""

    def __init__(self, url: str, detail: object) -> None:
        """Initialise with the offending URL and the decoder's complaint."""
        self.url = url
        super().__init__(f"unexpected change-feed response from {url}: {detail}")
