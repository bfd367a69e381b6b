"""Configuration for the mirror pipeline.

Usage
-----
Load from environment variables:

>>> import os
>>> os.environ["ERPROXY_STORAGE_PATH"] = "/var/lib/erproxy"
>>> config = MirrorConfig.from_env()
>>> config.container
'erproxy'

"""

from __future__ import annotations

import dataclasses as dc
import os
from pathlib import Path

from erproxy.registry.models import (
    DEFAULT_BASE_URL,
    KNOWN_TAGS,
    PartitionDescriptor,
)

DEFAULT_CONTAINER = "erproxy"
DEFAULT_MAX_TRANSFER_BYTES = 50 * 1024 * 1024


class ConfigurationError(ValueError):
    """Raised when the environment does not describe a usable mirror."""


@dc.dataclass(frozen=True, slots=True)
class MirrorConfig:
    """Configuration for a mirror deployment.

    Attributes
    ----------
    storage_connection_string
        Azure Storage connection string. Takes precedence over
        ``storage_path``.
    storage_path
        Local directory used as the object store when no connection string
        is configured.
    container
        Name of the container (or sub-directory) holding the mirror.
    registry_base_url
        Root of the registry API.
    partitions
        Partition tags to synchronise.
    max_concurrency
        Maximum record operations in flight per partition.
    page_size
        Change-feed page size.
    pagination_cap
        Highest record offset the change feed serves for one query.
    http_timeout_s
        Per-request timeout for registry and storage calls.
    max_transfer_bytes
        Largest single upload sent to Azure before it is split into blocks.

    """

    storage_connection_string: str | None = None
    storage_path: Path | None = None
    container: str = DEFAULT_CONTAINER
    registry_base_url: str = DEFAULT_BASE_URL
    partitions: tuple[str, ...] = KNOWN_TAGS
    max_concurrency: int = 64
    page_size: int = 30
    pagination_cap: int = 10_000
    http_timeout_s: float = 60.0
    max_transfer_bytes: int = DEFAULT_MAX_TRANSFER_BYTES

    def __post_init__(self) -> None:
        """Validate partition tags."""
        unknown = [tag for tag in self.partitions if tag not in KNOWN_TAGS]
        if unknown:
            msg = (
                f"ERPROXY_PARTITIONS holds unknown tags {unknown}; "
                f"expected a subset of {list(KNOWN_TAGS)}"
            )
            raise ConfigurationError(msg)

    @property
    def uses_azure(self) -> bool:
        """Return True when the mirror lives in Azure Blob Storage."""
        return self.storage_connection_string is not None

    def partition_descriptors(self) -> tuple[PartitionDescriptor, ...]:
        """Return descriptors for the configured partitions."""
        return tuple(
            PartitionDescriptor.for_tag(tag, base_url=self.registry_base_url)
            for tag in self.partitions
        )

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        """Read a positive integer env var, falling back to a default."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ConfigurationError(msg) from exc
        if value < 1:
            msg = f"{env_var} must be positive, got: {value}"
            raise ConfigurationError(msg)
        return value

    @staticmethod
    def _parse_positive_float(env_var: str, default: float) -> float:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{env_var} must be a number, got: {raw!r}"
            raise ConfigurationError(msg) from exc
        if value <= 0:
            msg = f"{env_var} must be positive, got: {value}"
            raise ConfigurationError(msg)
        return value

    @staticmethod
    def _optional_str(env_var: str) -> str | None:
        raw = os.environ.get(env_var, "").strip()
        return raw or None

    @classmethod
    def from_env(cls) -> MirrorConfig:
        """Create configuration from ``ERPROXY_*`` environment variables.

        One of ``ERPROXY_STORAGE_CONNECTION_STRING`` or
        ``ERPROXY_STORAGE_PATH`` is required. All other variables are
        optional.

        Raises
        ------
        ConfigurationError
            If no storage is configured or a value is malformed. The
            message names the offending variable.

        """
        connection_string = cls._optional_str("ERPROXY_STORAGE_CONNECTION_STRING")
        raw_path = cls._optional_str("ERPROXY_STORAGE_PATH")
        if connection_string is None and raw_path is None:
            msg = (
                "Set ERPROXY_STORAGE_CONNECTION_STRING or ERPROXY_STORAGE_PATH "
                "to configure the mirror store"
            )
            raise ConfigurationError(msg)

        raw_partitions = cls._optional_str("ERPROXY_PARTITIONS")
        partitions = (
            tuple(tag.strip() for tag in raw_partitions.split(",") if tag.strip())
            if raw_partitions is not None
            else KNOWN_TAGS
        )
        if not partitions:
            msg = "ERPROXY_PARTITIONS must name at least one partition"
            raise ConfigurationError(msg)

        return cls(
            storage_connection_string=connection_string,
            storage_path=Path(raw_path) if raw_path is not None else None,
            container=cls._optional_str("ERPROXY_CONTAINER") or DEFAULT_CONTAINER,
            registry_base_url=(
                cls._optional_str("ERPROXY_REGISTRY_BASE_URL") or DEFAULT_BASE_URL
            ),
            partitions=partitions,
            max_concurrency=cls._parse_positive_int("ERPROXY_MAX_CONCURRENCY", 64),
            page_size=cls._parse_positive_int("ERPROXY_PAGE_SIZE", 30),
            pagination_cap=cls._parse_positive_int("ERPROXY_PAGINATION_CAP", 10_000),
            http_timeout_s=cls._parse_positive_float("ERPROXY_HTTP_TIMEOUT_S", 60.0),
            max_transfer_bytes=cls._parse_positive_int(
                "ERPROXY_MAX_TRANSFER_BYTES", DEFAULT_MAX_TRANSFER_BYTES
            ),
        )
