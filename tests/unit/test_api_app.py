"""Unit tests for erproxy.api.app application factory.

Usage
-----
Run with pytest::

    pytest tests/unit/test_api_app.py

"""

from __future__ import annotations

import datetime as dt
import typing as typ

import falcon
import falcon.asgi
import falcon.testing
import pytest

from erproxy.api.app import AppDependencies, create_app
from erproxy.registry.models import PartitionDescriptor, default_partitions
from erproxy.sink.errors import StorageError
from erproxy.sync.coordinator import PartitionOutcome, RunReport

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_STARTED = dt.datetime(2024, 5, 1, 4, 0, tzinfo=dt.UTC)


class _StubCoordinator:
    """Coordinator double recording run() calls."""

    def __init__(self, *, fail_partition: str | None = None) -> None:
        self.calls: list[tuple[tuple[str, ...] | None, bool]] = []
        self.fail_partition = fail_partition
        self.error: Exception | None = None
        self.closed = False

    @property
    def partitions(self) -> tuple[PartitionDescriptor, ...]:
        return default_partitions()

    async def run(
        self,
        partitions: cabc.Sequence[PartitionDescriptor] | None = None,
        *,
        force_full: bool = False,
    ) -> RunReport:
        tags = tuple(p.tag for p in partitions) if partitions is not None else None
        self.calls.append((tags, force_full))
        if self.error is not None:
            raise self.error
        selected = tags or tuple(p.tag for p in self.partitions)
        outcomes = tuple(
            PartitionOutcome(
                partition=tag,
                status="failed" if tag == self.fail_partition else "succeeded",
                mode="full" if force_full else "incremental",
            )
            for tag in selected
        )
        return RunReport(
            run_id="run-1",
            started_at=_STARTED,
            finished_at=_STARTED + dt.timedelta(seconds=3),
            outcomes=outcomes,
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def coordinator() -> _StubCoordinator:
    """Return a coordinator double whose runs succeed."""
    return _StubCoordinator()


@pytest.fixture
def health_client() -> falcon.testing.TestClient:
    """Build a test client for health-only mode."""
    return falcon.testing.TestClient(create_app())


@pytest.fixture
def full_client(coordinator: _StubCoordinator) -> falcon.testing.TestClient:
    """Build a test client with the sync endpoint."""
    deps = AppDependencies(coordinator=coordinator)  # type: ignore[arg-type]
    return falcon.testing.TestClient(create_app(deps))


class TestCreateAppHealthOnly:
    """Tests for create_app() without a coordinator."""

    def test_returns_falcon_app(self) -> None:
        """create_app() returns a Falcon ASGI App."""
        assert isinstance(create_app(), falcon.asgi.App), "expected Falcon ASGI App"

    def test_health_is_ok(self, health_client: falcon.testing.TestClient) -> None:
        """Health-only app responds to /health."""
        result = health_client.simulate_get("/health")
        assert result.status == falcon.HTTP_200, "expected HTTP 200 from /health"
        assert result.json == {"status": "ok"}, "wrong /health body"

    def test_ready_reports_unconfigured(
        self, health_client: falcon.testing.TestClient
    ) -> None:
        """Without a coordinator the service is not ready."""
        result = health_client.simulate_get("/ready")
        assert result.status == falcon.HTTP_503, "expected HTTP 503 from /ready"
        assert result.json == {"status": "unconfigured"}, "wrong /ready body"

    def test_sync_endpoint_not_registered(
        self, health_client: falcon.testing.TestClient
    ) -> None:
        """Without a coordinator, /sync returns 404."""
        result = health_client.simulate_post("/sync")
        assert result.status == falcon.HTTP_404, "expected HTTP 404"


class TestSyncEndpoint:
    """Tests for POST /sync."""

    def test_ready_when_configured(
        self, full_client: falcon.testing.TestClient
    ) -> None:
        """A configured app reports ready."""
        result = full_client.simulate_get("/ready")
        assert result.json == {"status": "ready"}

    def test_successful_run_returns_report(
        self,
        full_client: falcon.testing.TestClient,
        coordinator: _StubCoordinator,
    ) -> None:
        """A run where every partition succeeds answers 200 with the report."""
        result = full_client.simulate_post("/sync")

        assert result.status == falcon.HTTP_200
        assert result.json["succeeded"] is True
        assert result.json["run_id"] == "run-1"
        assert [o["partition"] for o in result.json["outcomes"]] == [
            "enheter",
            "underenheter",
        ]
        assert coordinator.calls == [(None, False)]

    def test_force_and_partition_parameters(
        self,
        full_client: falcon.testing.TestClient,
        coordinator: _StubCoordinator,
    ) -> None:
        """force=true and repeated partition parameters reach the coordinator."""
        result = full_client.simulate_post(
            "/sync", params={"force": "true", "partition": ["underenheter"]}
        )

        assert result.status == falcon.HTTP_200
        assert coordinator.calls == [(("underenheter",), True)]
        assert result.json["outcomes"][0]["mode"] == "full"

    @pytest.mark.parametrize("query", ["forceupdate", "forceupdate=1"])
    def test_forceupdate_flag_forces_full_resync(
        self,
        full_client: falcon.testing.TestClient,
        coordinator: _StubCoordinator,
        query: str,
    ) -> None:
        """The legacy forceupdate flag is honoured with or without a value."""
        result = full_client.simulate_post("/sync", query_string=query)

        assert result.status == falcon.HTTP_200
        assert coordinator.calls == [(None, True)]

    def test_partial_failure_returns_500(self, coordinator: _StubCoordinator) -> None:
        """A failed partition turns the response into a 500 with the report."""
        coordinator.fail_partition = "enheter"
        deps = AppDependencies(coordinator=coordinator)  # type: ignore[arg-type]
        client = falcon.testing.TestClient(create_app(deps))

        result = client.simulate_post("/sync")

        assert result.status == falcon.HTTP_500
        assert result.json["succeeded"] is False
        statuses = {o["partition"]: o["status"] for o in result.json["outcomes"]}
        assert statuses == {"enheter": "failed", "underenheter": "succeeded"}

    def test_unknown_partition_is_rejected(
        self,
        full_client: falcon.testing.TestClient,
        coordinator: _StubCoordinator,
    ) -> None:
        """Unknown partition tags are a client error; nothing runs."""
        result = full_client.simulate_post("/sync", params={"partition": "foretak"})

        assert result.status == falcon.HTTP_400
        assert result.json["field"] == "partition"
        assert "foretak" in result.json["description"]
        assert coordinator.calls == []

    def test_run_level_failure_is_categorised(
        self,
        full_client: falcon.testing.TestClient,
        coordinator: _StubCoordinator,
    ) -> None:
        """Errors that stop the run are mapped to 500 with a category."""
        coordinator.error = StorageError("container unreachable")

        result = full_client.simulate_post("/sync")

        assert result.status == falcon.HTTP_500
        assert result.json == {
            "title": "Sync failed",
            "description": "container unreachable",
            "error_category": "storage",
        }


@pytest.mark.asyncio
async def test_lifespan_shutdown_closes_coordinator(
    coordinator: _StubCoordinator,
) -> None:
    """The coordinator's clients are released when the server shuts down."""
    app = create_app(AppDependencies(coordinator=coordinator))  # type: ignore[arg-type]

    async with falcon.testing.ASGIConductor(app) as conductor:
        result = await conductor.simulate_get("/health")
        assert result.status == falcon.HTTP_200
        assert coordinator.closed is False

    assert coordinator.closed is True, "shutdown must close the coordinator"
