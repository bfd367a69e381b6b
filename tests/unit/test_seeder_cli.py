"""Unit tests for the erproxy-seed command."""

from __future__ import annotations

import json
import typing as typ
from http import HTTPStatus

import pytest

from erproxy.common.time import utcnow
from erproxy.registry.client import RegistryClient
from erproxy.seeder import cli
from erproxy.sink.filesystem import FilesystemObjectSink
from erproxy.sync.errors import IngestionError
from erproxy.sync.state import StateStore
from tests.helpers.fake_registry import BASE_URL, gzip_json, make_record

if typ.TYPE_CHECKING:
    from pathlib import Path

    from erproxy.registry.models import PartitionDescriptor
    from tests.helpers.fake_registry import FakeRegistry


@pytest.mark.asyncio
async def test_seed_lays_out_records_by_partition(
    tmp_path: Path,
    fake_registry: FakeRegistry,
    registry_client: RegistryClient,
    units: PartitionDescriptor,
    subunits: PartitionDescriptor,
) -> None:
    """Every record is written to {output}/{tag}/{organisasjonsnummer}."""
    fake_registry.set_export("enheter", [make_record("111"), make_record("222")])
    fake_registry.set_export("underenheter", [make_record("333")])

    results = await cli.seed(tmp_path, [units, subunits], client=registry_client)

    assert [r.records for r in results] == [2, 1]
    record = json.loads((tmp_path / "enheter" / "111").read_bytes())
    assert record == make_record("111")
    assert (tmp_path / "underenheter" / "333").is_file()
    assert not (tmp_path / "state").exists()
    assert not cli.cached_export_path(tmp_path, "enheter").exists()


@pytest.mark.asyncio
async def test_keep_downloaded_caches_the_export(
    tmp_path: Path,
    fake_registry: FakeRegistry,
    registry_client: RegistryClient,
    units: PartitionDescriptor,
) -> None:
    """The compressed export is kept verbatim next to the records."""
    payload = fake_registry.set_export("enheter", [make_record("111")])

    await cli.seed(tmp_path, [units], client=registry_client, keep_downloaded=True)

    cached = cli.cached_export_path(tmp_path, "enheter")
    assert cached.name == "downloaded_enheter.json.gz"
    assert cached.read_bytes() == payload
    assert not cached.with_name(f"{cached.name}.part").exists()


@pytest.mark.asyncio
async def test_use_downloaded_skips_the_registry(
    tmp_path: Path,
    fake_registry: FakeRegistry,
    registry_client: RegistryClient,
    units: PartitionDescriptor,
) -> None:
    """A cached export is decoded instead of downloading a new one."""
    cli.cached_export_path(tmp_path, "enheter").write_bytes(
        gzip_json([make_record("444")])
    )
    fake_registry.export_status["enheter"] = HTTPStatus.INTERNAL_SERVER_ERROR

    await cli.seed(tmp_path, [units], client=registry_client, use_downloaded=True)

    assert (tmp_path / "enheter" / "444").is_file()
    assert fake_registry.export_requests("enheter") == []


@pytest.mark.asyncio
async def test_use_downloaded_without_cache_downloads(
    tmp_path: Path,
    fake_registry: FakeRegistry,
    registry_client: RegistryClient,
    units: PartitionDescriptor,
) -> None:
    """Missing cache files fall back to the registry."""
    fake_registry.set_export("enheter", [make_record("111")])

    await cli.seed(tmp_path, [units], client=registry_client, use_downloaded=True)

    assert (tmp_path / "enheter" / "111").is_file()
    assert len(fake_registry.export_requests("enheter")) == 1


@pytest.mark.asyncio
async def test_write_state_records_seed_start(
    tmp_path: Path,
    fake_registry: FakeRegistry,
    registry_client: RegistryClient,
    units: PartitionDescriptor,
) -> None:
    """Checkpoints are set to the moment seeding began."""
    fake_registry.set_export("enheter", [make_record("111")])
    before = utcnow()

    await cli.seed(tmp_path, [units], client=registry_client, write_state=True)

    checkpoint = await StateStore(FilesystemObjectSink(tmp_path)).load(
        units.checkpoint_key
    )
    assert before <= checkpoint <= utcnow()
    assert (tmp_path / "state" / "enheter.json").is_file()


@pytest.mark.asyncio
async def test_failed_download_leaves_no_partial_cache(
    tmp_path: Path,
    fake_registry: FakeRegistry,
    registry_client: RegistryClient,
    units: PartitionDescriptor,
) -> None:
    """A corrupt export fails the partition and discards the partial file."""
    fake_registry.exports["enheter"] = b"definitely not gzip"

    with pytest.raises(IngestionError):
        await cli.seed(
            tmp_path, [units], client=registry_client, keep_downloaded=True
        )

    cached = cli.cached_export_path(tmp_path, "enheter")
    assert not cached.exists()
    assert not cached.with_name(f"{cached.name}.part").exists()


class TestMainCommand:
    """Tests for the cyclopts entry point."""

    @pytest.fixture(autouse=True)
    def route_to_fake(
        self, monkeypatch: pytest.MonkeyPatch, fake_registry: FakeRegistry
    ) -> None:
        """Point the command's registry client at the fake registry."""
        monkeypatch.setattr(
            cli,
            "RegistryClient",
            lambda _config: RegistryClient(http_client=fake_registry.client()),
        )
        monkeypatch.setattr(cli, "configure_logging", lambda _level: ("INFO", False))

    def test_seeds_selected_types(
        self, tmp_path: Path, fake_registry: FakeRegistry
    ) -> None:
        """--types subunits seeds only the sub-unit partition."""
        fake_registry.set_export("underenheter", [make_record("333")])

        code = cli.main_command(output=tmp_path, types="subunits", base_url=BASE_URL)

        assert code == 0
        assert (tmp_path / "underenheter" / "333").is_file()
        assert fake_registry.export_requests("enheter") == []

    def test_accepts_registry_tag_as_type(
        self, tmp_path: Path, fake_registry: FakeRegistry
    ) -> None:
        """--types enheter is an alias of --types units."""
        fake_registry.set_export("enheter", [make_record("111")])

        code = cli.main_command(output=tmp_path, types="enheter", base_url=BASE_URL)

        assert code == 0
        assert (tmp_path / "enheter" / "111").is_file()
        assert fake_registry.export_requests("underenheter") == []

    def test_failure_returns_exit_code_one(
        self, tmp_path: Path, fake_registry: FakeRegistry
    ) -> None:
        """Any failed partition makes the command exit with 1."""
        fake_registry.set_export("enheter", [make_record("111")])
        fake_registry.export_status["underenheter"] = HTTPStatus.BAD_GATEWAY

        code = cli.main_command(output=tmp_path, base_url=BASE_URL, write_state=True)

        assert code == 1
        assert not (tmp_path / "state").exists()


def test_types_map_to_partition_tags() -> None:
    """Each --types choice names its partitions."""
    assert cli._TAGS_FOR_TYPES == {  # noqa: SLF001
        "units": ("enheter",),
        "subunits": ("underenheter",),
        "enheter": ("enheter",),
        "underenheter": ("underenheter",),
        "both": ("enheter", "underenheter"),
    }

