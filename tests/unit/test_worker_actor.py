"""Unit tests for the scheduled sync Dramatiq actor."""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

import dramatiq
import pytest

from erproxy.config import ConfigurationError
from erproxy.sync.coordinator import build_coordinator
from erproxy.worker import actor
from erproxy.worker._broker import ensure_broker_configured
from tests.helpers.fake_registry import BASE_URL, FakeRegistry, make_record
from tests.helpers.memory_sink import MemoryObjectSink

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from erproxy.config import MirrorConfig
    from erproxy.sync.coordinator import PipelineCoordinator


class _FakeLogger:
    """Collects femtologging-style calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, object | None]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        del stack_info
        self.calls.append((level, message, exc_info))
        return message


@pytest.fixture
def fake_logger(monkeypatch: pytest.MonkeyPatch) -> _FakeLogger:
    """Capture the actor's log output."""
    logger = _FakeLogger()
    monkeypatch.setattr(actor, "logger", logger)
    return logger


@pytest.fixture
def mirror_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Configure the mirror through the environment."""
    monkeypatch.setenv("ERPROXY_STORAGE_PATH", str(tmp_path))
    monkeypatch.setenv("ERPROXY_REGISTRY_BASE_URL", BASE_URL)
    monkeypatch.delenv("ERPROXY_STORAGE_CONNECTION_STRING", raising=False)
    monkeypatch.delenv("ERPROXY_PARTITIONS", raising=False)


@pytest.fixture
def use_fakes(
    fake_registry: FakeRegistry, memory_sink: MemoryObjectSink
) -> cabc.Iterator[list[MirrorConfig]]:
    """Route the actor's coordinator to the fake registry and memory sink."""
    configs: list[MirrorConfig] = []

    def factory(config: MirrorConfig) -> PipelineCoordinator:
        configs.append(config)
        return build_coordinator(
            config, http_client=fake_registry.client(), sink=memory_sink
        )

    actor.set_coordinator_factory(factory)
    try:
        yield configs
    finally:
        actor.set_coordinator_factory(None)


def test_actor_is_registered_without_retries() -> None:
    """The actor is declared on the configured broker and never retried."""
    ensure_broker_configured()

    assert actor.sync_registry_job.actor_name == "sync_registry_job"
    assert actor.sync_registry_job.options["max_retries"] == 0
    assert dramatiq.get_broker() is actor.sync_registry_job.broker


@pytest.mark.usefixtures("mirror_env")
def test_successful_run_returns_report(
    use_fakes: list[MirrorConfig],
    fake_registry: FakeRegistry,
    memory_sink: MemoryObjectSink,
    fake_logger: _FakeLogger,
) -> None:
    """A run over both partitions succeeds and is logged at INFO."""
    fake_registry.set_export("enheter", [make_record("111")])
    fake_registry.set_export("underenheter", [make_record("222")])

    payload = actor.sync_registry_job()

    assert payload is not None
    assert payload["succeeded"] is True
    assert use_fakes[0].registry_base_url == BASE_URL
    assert memory_sink.keys("enheter/") == ["enheter/111"]
    assert fake_logger.calls[-1][0] == "INFO"


@pytest.mark.usefixtures("mirror_env", "use_fakes")
def test_partitions_restrict_the_run(fake_registry: FakeRegistry) -> None:
    """Only the named partitions are synced."""
    fake_registry.set_export("underenheter", [make_record("222")])

    payload = actor.sync_registry_job(force_full=True, partitions=["underenheter"])

    assert payload is not None
    assert [o["partition"] for o in payload["outcomes"]] == ["underenheter"]
    assert fake_registry.export_requests("enheter") == []


@pytest.mark.usefixtures("mirror_env", "use_fakes")
def test_failed_partitions_are_logged(
    fake_registry: FakeRegistry, fake_logger: _FakeLogger
) -> None:
    """Partition failures are reported via a warning naming them."""
    fake_registry.export_status["enheter"] = HTTPStatus.INTERNAL_SERVER_ERROR
    fake_registry.set_export("underenheter", [])

    payload = actor.sync_registry_job()

    assert payload is not None
    assert payload["succeeded"] is False
    level, message, _ = fake_logger.calls[-1]
    assert level == "WARNING"
    assert "enheter" in message


@pytest.mark.usefixtures("mirror_env")
def test_fresh_container_asks_for_seeding(
    fake_registry: FakeRegistry, fake_logger: _FakeLogger
) -> None:
    """A missing container is created and the operator told to seed it."""
    sink = MemoryObjectSink(container_exists=False)
    actor.set_coordinator_factory(
        lambda config: build_coordinator(
            config, http_client=fake_registry.client(), sink=sink
        )
    )
    try:
        payload = actor.sync_registry_job()
    finally:
        actor.set_coordinator_factory(None)

    assert payload is not None
    assert payload["seeding_required"] is True
    assert sink.container_exists is True
    assert fake_logger.calls[-1][0] == "WARNING"


def test_configuration_error_is_logged_not_raised(
    monkeypatch: pytest.MonkeyPatch, fake_logger: _FakeLogger
) -> None:
    """A run that cannot start returns None and logs the exception."""
    monkeypatch.delenv("ERPROXY_STORAGE_PATH", raising=False)
    monkeypatch.delenv("ERPROXY_STORAGE_CONNECTION_STRING", raising=False)

    assert actor.sync_registry_job() is None

    [(level, message, exc_info)] = fake_logger.calls
    assert level == "ERROR"
    assert message == "Scheduled sync could not run"
    assert isinstance(exc_info, ConfigurationError)
