"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest
import pytest_asyncio

from erproxy.registry.client import RegistryClient
from erproxy.registry.models import PartitionDescriptor
from erproxy.sync.state import StateStore
from tests.helpers.fake_registry import BASE_URL, FakeRegistry
from tests.helpers.memory_sink import MemoryObjectSink

if typ.TYPE_CHECKING:
    import collections.abc as cabc

CHECKPOINT = dt.datetime(2024, 5, 1, 4, 2, 9, 514000, tzinfo=dt.UTC)


@pytest.fixture
def fake_registry() -> FakeRegistry:
    """Return an empty fake registry."""
    return FakeRegistry()


@pytest.fixture
def memory_sink() -> MemoryObjectSink:
    """Return an empty in-memory sink whose container exists."""
    return MemoryObjectSink()


@pytest.fixture
def state_store(memory_sink: MemoryObjectSink) -> StateStore:
    """Return a checkpoint store over ``memory_sink``."""
    return StateStore(memory_sink)


@pytest.fixture
def units() -> PartitionDescriptor:
    """Return the unit partition pointed at the fake registry."""
    return PartitionDescriptor.for_tag("enheter", base_url=BASE_URL)


@pytest.fixture
def subunits() -> PartitionDescriptor:
    """Return the sub-unit partition pointed at the fake registry."""
    return PartitionDescriptor.for_tag("underenheter", base_url=BASE_URL)


@pytest_asyncio.fixture
async def registry_client(
    fake_registry: FakeRegistry,
) -> cabc.AsyncIterator[RegistryClient]:
    """Yield a registry client whose transport is ``fake_registry``."""
    http_client = fake_registry.client()
    try:
        yield RegistryClient(http_client=http_client)
    finally:
        await http_client.aclose()
