"""Business registry API access.

Usage
-----
Fetch the first change page for units::

    from erproxy.registry import PartitionDescriptor, RegistryClient

    client = RegistryClient()
    partition = PartitionDescriptor.for_tag("enheter")
    page = await client.fetch_changes(partition, since=checkpoint)

"""

from erproxy.registry.client import (
    EntityLookup,
    EntityState,
    RegistryClient,
    RegistryClientConfig,
)
from erproxy.registry.errors import RegistryResponseShapeError
from erproxy.registry.models import (
    DEFAULT_BASE_URL,
    KNOWN_TAGS,
    ChangeEvent,
    ChangePage,
    PartitionDescriptor,
    default_partitions,
)

__all__ = [
    "DEFAULT_BASE_URL",
    "KNOWN_TAGS",
    "ChangeEvent",
    "ChangePage",
    "EntityLookup",
    "EntityState",
    "PartitionDescriptor",
    "RegistryClient",
    "RegistryClientConfig",
    "RegistryResponseShapeError",
    "default_partitions",
]
