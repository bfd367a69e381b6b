"""HTTP client for the business registry's export, change-feed and lookup APIs."""

from __future__ import annotations

import contextlib
import dataclasses
import datetime as dt
import enum
import typing as typ
from http import HTTPStatus

import httpx
import msgspec

from erproxy.sync.errors import TransportError

from .errors import RegistryResponseShapeError
from .models import ChangePage

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .models import PartitionDescriptor

# Statuses that mean the entity no longer exists in the registry.
_GONE_STATUSES = frozenset({HTTPStatus.NOT_FOUND, HTTPStatus.GONE})

_change_page_decoder = msgspec.json.Decoder(ChangePage)


@dataclasses.dataclass(frozen=True, slots=True)
class RegistryClientConfig:
    """Configuration for :class:`RegistryClient`.

    ``timeout_s`` bounds every individual network operation (connect, read,
    write and pool acquisition) so a stalled call fails instead of hanging.
    """

    timeout_s: float = 60.0
    user_agent: str = "erproxy/0.1"
    max_connections: int = 100


class EntityState(enum.StrEnum):
    """Outcome of resolving an entity link."""

    PRESENT = "present"
    GONE = "gone"


@dataclasses.dataclass(frozen=True, slots=True)
class EntityLookup:
    """Current state of a single entity as returned by the registry."""

    state: EntityState
    body: bytes = b""


def format_feed_timestamp(value: dt.datetime) -> str:
    """Render a change-feed ``dato`` cursor with millisecond precision.

    Truncation only moves the cursor earlier, so the query still covers
    every event at or after ``value``.
    """
    utc = value.astimezone(dt.UTC)
    return f"{utc.year:04d}-{utc:%m-%dT%H:%M:%S}.{utc.microsecond // 1000:03d}Z"


class RegistryClient:
    """Async client for the registry endpoints used by the sync pipeline."""

    def __init__(
        self,
        config: RegistryClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client, creating an ``httpx.AsyncClient`` if needed."""
        self._config = config or RegistryClientConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_s),
            limits=httpx.Limits(max_connections=self._config.max_connections),
            headers={"User-Agent": self._config.user_agent},
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    @contextlib.asynccontextmanager
    async def open_export(
        self, partition: PartitionDescriptor
    ) -> cabc.AsyncIterator[cabc.AsyncIterator[bytes]]:
        """Open the bulk export and yield its raw (still compressed) byte stream.

        The request completes as soon as the response headers arrive; the
        body is streamed and never buffered in full.
        """
        url = partition.download_url
        try:
            async with self._client.stream("GET", url) as response:
                if response.status_code != HTTPStatus.OK:
                    raise TransportError.http_status(response.status_code, url)
                yield response.aiter_raw()
        except httpx.HTTPError as exc:
            raise TransportError.request_failed(url, exc) from exc

    async def fetch_changes(
        self,
        partition: PartitionDescriptor,
        *,
        since: dt.datetime,
        page: int = 0,
        size: int = 30,
    ) -> ChangePage:
        """Fetch one page of changes registered at or after ``since``."""
        params = {
            "dato": format_feed_timestamp(since),
            "page": str(page),
            "size": str(size),
        }
        return await self._get_page(partition.changes_url, params=params)

    async def fetch_page(self, url: str) -> ChangePage:
        """Fetch a change page by its absolute pagination link."""
        return await self._get_page(url)

    async def lookup_entity(self, url: str) -> EntityLookup:
        """Resolve an entity link to its current document or its removal.

        Only 404 and 410 count as removal. Any other non-200 status raises
        :class:`TransportError` so a transient server error never deletes a
        valid record.
        """
        response = await self._get(url)
        if response.status_code == HTTPStatus.OK:
            return EntityLookup(EntityState.PRESENT, response.content)
        if response.status_code in _GONE_STATUSES:
            return EntityLookup(EntityState.GONE)
        raise TransportError.http_status(response.status_code, url)

    async def _get_page(
        self, url: str, *, params: dict[str, str] | None = None
    ) -> ChangePage:
        response = await self._get(url, params=params)
        if response.status_code != HTTPStatus.OK:
            raise TransportError.http_status(response.status_code, str(response.url))
        try:
            return _change_page_decoder.decode(response.content)
        except msgspec.DecodeError as exc:
            raise RegistryResponseShapeError(str(response.url), exc) from exc

    async def _get(
        self, url: str, *, params: dict[str, str] | None = None
    ) -> httpx.Response:
        try:
            return await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TransportError.request_failed(url, exc) from exc
