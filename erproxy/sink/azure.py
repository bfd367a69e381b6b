"""Azure Blob Storage adapter for the ObjectSink protocol.

Each object is a block blob in a single container. The asyncio client from
``azure-storage-blob`` is shared by every concurrent operation; the SDK
client is safe for concurrent use on distinct blobs.
"""

from __future__ import annotations

import logging

from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import ContainerClient

from .errors import StorageError, StoragePermissionError
from .protocol import JSON_CONTENT_TYPE

log = logging.getLogger(__name__)

_HTTP_FORBIDDEN = 403
DEFAULT_MAX_TRANSFER_BYTES = 50 * 1024 * 1024
DEFAULT_MAX_CONCURRENCY = 64


class AzureBlobObjectSink:
    """Object sink backed by an Azure Blob Storage container.

    Parameters
    ----------
    container_client
        Asyncio container client. Use :meth:`from_connection_string` to
        build one with transfer size hints applied.
    max_concurrency
        Parallel connections the SDK may use for a single upload.

    """

    def __init__(
        self,
        container_client: ContainerClient,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        """Initialise the sink around an existing container client."""
        self._container = container_client
        self._max_concurrency = max_concurrency

    @classmethod
    def from_connection_string(
        cls,
        connection_string: str,
        container: str,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_transfer_bytes: int = DEFAULT_MAX_TRANSFER_BYTES,
        timeout_s: float = 60.0,
    ) -> AzureBlobObjectSink:
        """Build a sink for ``container`` from a storage connection string."""
        client = ContainerClient.from_connection_string(
            connection_string,
            container_name=container,
            max_single_put_size=max_transfer_bytes,
            max_block_size=min(max_transfer_bytes, 4000 * 1024 * 1024),
            connection_timeout=timeout_s,
            read_timeout=timeout_s,
        )
        return cls(client, max_concurrency=max_concurrency)

    async def aclose(self) -> None:
        """Close the underlying SDK client."""
        await self._container.close()

    async def put(
        self, key: str, data: bytes, *, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        """Upload ``data`` as the blob ``key``, overwriting any previous blob."""
        try:
            await self._container.upload_blob(
                key,
                data,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
                max_concurrency=self._max_concurrency,
            )
        except AzureError as exc:
            raise _translate_error("put", key, exc) from exc

    async def get(self, key: str) -> bytes | None:
        """Download the blob ``key``, or return ``None`` when it is absent."""
        try:
            downloader = await self._container.download_blob(key)
            return await downloader.readall()
        except ResourceNotFoundError:
            return None
        except AzureError as exc:
            raise _translate_error("get", key, exc) from exc

    async def delete(self, key: str) -> None:
        """Delete the blob ``key``; a missing blob is ignored."""
        try:
            await self._container.delete_blob(key)
        except ResourceNotFoundError:
            log.debug("Blob %s already absent", key)
        except AzureError as exc:
            raise _translate_error("delete", key, exc) from exc

    async def exists(self) -> bool:
        """Return True when the container exists."""
        try:
            return await self._container.exists()
        except AzureError as exc:
            raise _translate_error("exists", None, exc) from exc

    async def create(self) -> None:
        """Create the container; an existing container is left as is."""
        try:
            await self._container.create_container()
        except ResourceExistsError:
            log.debug("Container already exists")
        except AzureError as exc:
            raise _translate_error("create", None, exc) from exc


def _translate_error(operation: str, key: str | None, exc: AzureError) -> StorageError:
    if isinstance(exc, HttpResponseError) and exc.status_code == _HTTP_FORBIDDEN:
        target = key if key is not None else "<container>"
        return StoragePermissionError(
            f"object store denied {operation} of {target}: {exc}", key=key
        )
    return StorageError.operation_failed(operation, key, exc)
