"""Seed a local directory with a full copy of the registry.

A fresh mirror is seeded out of band: ``erproxy-seed`` downloads the bulk
exports and lays the records out exactly as the object store expects them::

    {output}/enheter/912345678
    {output}/underenheter/987654321
    {output}/state/enheter.json        (with --write-state)

The directory can then be bulk-uploaded (for example with ``azcopy``) into
the mirror container, after which the service continues with incremental
syncs.

Usage
-----
::

    erproxy-seed --output ./seed --types both --keep-downloaded --write-state

"""

from __future__ import annotations

import asyncio
import contextlib
import os
import typing as typ
from pathlib import Path

from cyclopts import App, Parameter

from erproxy.common.time import utcnow
from erproxy.logging import (
    configure_logging,
    get_logger,
    log_exception,
    log_info,
    log_warning,
)
from erproxy.registry.client import RegistryClient, RegistryClientConfig
from erproxy.registry.models import DEFAULT_BASE_URL, PartitionDescriptor
from erproxy.sink.filesystem import FilesystemObjectSink
from erproxy.sync.errors import IngestionError, SyncError
from erproxy.sync.pool import DEFAULT_CONCURRENCY
from erproxy.sync.snapshot import SnapshotIngestor, SnapshotResult
from erproxy.sync.state import StateStore

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

# The registry tag names are accepted as aliases of the English names.
SeedTypes = typ.Literal["units", "subunits", "enheter", "underenheter", "both"]

_TAGS_FOR_TYPES: dict[str, tuple[str, ...]] = {
    "units": ("enheter",),
    "subunits": ("underenheter",),
    "enheter": ("enheter",),
    "underenheter": ("underenheter",),
    "both": ("enheter", "underenheter"),
}
_FILE_CHUNK_SIZE = 256 * 1024

app = App(
    name="erproxy-seed",
    help="Download the registry bulk exports into a directory ready for upload.",
    version="0.1.0",
)


def cached_export_path(output: Path, tag: str) -> Path:
    """Return where the compressed export for ``tag`` is cached."""
    return output / f"downloaded_{tag}.json.gz"


async def _read_file(path: Path) -> cabc.AsyncIterator[bytes]:
    with path.open("rb") as handle:
        while chunk := await asyncio.to_thread(handle.read, _FILE_CHUNK_SIZE):
            yield chunk


async def _tee_to_file(
    chunks: cabc.AsyncIterable[bytes], handle: typ.BinaryIO
) -> cabc.AsyncIterator[bytes]:
    async for chunk in chunks:
        await asyncio.to_thread(handle.write, chunk)
        yield chunk


@contextlib.asynccontextmanager
async def _open_source(
    client: RegistryClient,
    partition: PartitionDescriptor,
    cached: Path,
    *,
    keep_downloaded: bool,
    use_downloaded: bool,
) -> cabc.AsyncIterator[cabc.AsyncIterator[bytes]]:
    """Yield the compressed export from the cache or the registry."""
    if use_downloaded and cached.is_file():
        log_info(logger, "Using cached export %s", cached)
        yield _read_file(cached)
        return

    async with client.open_export(partition) as chunks:
        log_info(logger, "Downloading %s export", partition.tag)
        if not keep_downloaded:
            yield chunks
            return
        partial = cached.with_name(f"{cached.name}.part")
        try:
            with partial.open("wb") as handle:
                yield _tee_to_file(chunks, handle)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        os.replace(partial, cached)
        log_info(logger, "Saved %s export to %s", partition.tag, cached)


async def seed_partition(  # noqa: PLR0913
    client: RegistryClient,
    ingestor: SnapshotIngestor,
    partition: PartitionDescriptor,
    output: Path,
    *,
    keep_downloaded: bool = False,
    use_downloaded: bool = False,
) -> SnapshotResult:
    """Write every record of ``partition`` below ``output``.

    Raises
    ------
    IngestionError
        If the export cannot be fetched, decoded or written.

    """
    cached = cached_export_path(output, partition.tag)
    try:
        async with _open_source(
            client,
            partition,
            cached,
            keep_downloaded=keep_downloaded,
            use_downloaded=use_downloaded,
        ) as chunks:
            return await ingestor.ingest_stream(partition, chunks)
    except IngestionError:
        raise
    except SyncError as exc:
        raise IngestionError(partition.name, exc) from exc


async def seed(  # noqa: PLR0913
    output: Path,
    partitions: cabc.Sequence[PartitionDescriptor],
    *,
    client: RegistryClient,
    keep_downloaded: bool = False,
    use_downloaded: bool = False,
    write_state: bool = False,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[SnapshotResult]:
    """Seed ``output`` with the given partitions, downloading them concurrently.

    With ``write_state`` the checkpoint of every partition is set to the
    time seeding started, so changes made during the download are picked
    up by the first incremental sync.
    """
    sink = FilesystemObjectSink(output)
    await sink.create()
    ingestor = SnapshotIngestor(client, sink, concurrency=concurrency)
    started_at = utcnow()

    results = await asyncio.gather(
        *(
            seed_partition(
                client,
                ingestor,
                partition,
                output,
                keep_downloaded=keep_downloaded,
                use_downloaded=use_downloaded,
            )
            for partition in partitions
        )
    )

    if write_state:
        state = StateStore(sink)
        for partition in partitions:
            await state.save(partition.checkpoint_key, started_at)
    return list(results)


@app.default
def main_command(  # noqa: PLR0913
    *,
    output: typ.Annotated[Path, Parameter(name=["--output", "-o"])],
    types: typ.Annotated[SeedTypes, Parameter(name=["--types", "-t"])] = "both",
    keep_downloaded: typ.Annotated[
        bool, Parameter(name=["--keep-downloaded", "-k"])
    ] = False,
    use_downloaded: typ.Annotated[
        bool, Parameter(name=["--use-downloaded", "-u"])
    ] = False,
    write_state: bool = False,
    base_url: typ.Annotated[
        str, Parameter(env_var="ERPROXY_REGISTRY_BASE_URL")
    ] = DEFAULT_BASE_URL,
    concurrency: typ.Annotated[
        int, Parameter(env_var="ERPROXY_MAX_CONCURRENCY")
    ] = DEFAULT_CONCURRENCY,
    log_level: typ.Annotated[str, Parameter(env_var="ERPROXY_LOG_LEVEL")] = "INFO",
) -> int:
    """Download registry exports into OUTPUT, one file per entity.

    Args:
        output: Directory to fill; created when missing.
        types: Which partitions to seed.
        keep_downloaded: Cache each compressed export as downloaded_{tag}.json.gz.
        use_downloaded: Reuse a cached export instead of downloading it.
        write_state: Also write the partition checkpoints under state/.
        base_url: Root of the registry API.
        concurrency: Maximum file writes in flight per partition.
        log_level: Log level for progress output.

    Returns:
        Exit code (0 for success, 1 when any partition failed).

    """
    normalized, invalid = configure_logging(log_level)
    if invalid:
        log_warning(logger, "Invalid log level %r, using %s", log_level, normalized)

    partitions = [
        PartitionDescriptor.for_tag(tag, base_url=base_url)
        for tag in _TAGS_FOR_TYPES[types]
    ]
    tags = ", ".join(partition.tag for partition in partitions)
    log_info(logger, "Seeding %s into %s", tags, output)

    async def run() -> list[SnapshotResult]:
        client = RegistryClient(RegistryClientConfig(timeout_s=300.0))
        try:
            return await seed(
                output,
                partitions,
                client=client,
                keep_downloaded=keep_downloaded,
                use_downloaded=use_downloaded,
                write_state=write_state,
                concurrency=concurrency,
            )
        finally:
            await client.aclose()

    try:
        results = asyncio.run(run())
    except (SyncError, OSError) as exc:
        log_exception(logger, "Seeding failed", exc)
        return 1

    for result in results:
        log_info(
            logger,
            "Seeded %d %s records in %.1fs",
            result.records,
            result.partition,
            result.elapsed.total_seconds(),
        )
    log_info(logger, "All done; upload %s to the mirror container", output)
    return 0


def main() -> int:
    """Entry point for the ``erproxy-seed`` console script."""
    return app()
