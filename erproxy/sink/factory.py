"""Factory for creating ObjectSink adapters from mirror configuration."""

from __future__ import annotations

import typing as typ

from erproxy.sink.filesystem import FilesystemObjectSink

if typ.TYPE_CHECKING:
    from erproxy.config import MirrorConfig
    from erproxy.sink.protocol import ObjectSink


def create_sink(config: MirrorConfig) -> ObjectSink:
    """Create the sink selected by ``config``.

    An Azure connection string selects :class:`AzureBlobObjectSink`;
    otherwise the mirror lives in ``{storage_path}/{container}`` on the
    local filesystem.

    Raises
    ------
    ValueError
        If neither a connection string nor a storage path is configured.

    Examples
    --------
    >>> from pathlib import Path
    >>> from erproxy.config import MirrorConfig
    >>> sink = create_sink(MirrorConfig(storage_path=Path("/tmp/mirror")))
    >>> isinstance(sink, FilesystemObjectSink)
    True

    """
    if config.storage_connection_string is not None:
        from erproxy.sink.azure import AzureBlobObjectSink

        return AzureBlobObjectSink.from_connection_string(
            config.storage_connection_string,
            config.container,
            max_concurrency=config.max_concurrency,
            max_transfer_bytes=config.max_transfer_bytes,
            timeout_s=config.http_timeout_s,
        )

    if config.storage_path is None:
        msg = "a storage connection string or storage path is required"
        raise ValueError(msg)
    return FilesystemObjectSink(config.storage_path, container=config.container)
