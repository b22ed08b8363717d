import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from pcm_server.backend.application.session_registry import (
    BackendKind,
    RuntimeEnvironment,
    SessionRegistry,
    is_dev_mode,
    select_backend,
)
from pcm_server.backend.component.blob_store import InMemoryBlobStore
from pcm_server.backend.runtime.metrics import Metrics
from pcm_server.backend.storage.durable import LocalActorNamespace
from pcm_server.backend.storage.ephemeral import EphemeralSessionStore
from pcm_server.errors import (
    BackendUnavailableError,
    ErrorCode,
    InvalidSessionIdError,
    PcmServerError,
    SessionNotFoundError,
)

HOUR = 3600.0


class FakeClock:
    def __init__(self, start: float = 10_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def ephemeral():
    clock = FakeClock()
    store = EphemeralSessionStore(timeout_sec=2 * HOUR, clock=clock)
    store.clock = clock
    yield store
    store.stop()


def _durable_env(tmp_path, **overrides) -> RuntimeEnvironment:
    values = {
        "app_env": "production",
        "dev_build": False,
        "sessions": LocalActorNamespace(tmp_path / "actors"),
        "blob_store": InMemoryBlobStore(),
    }
    values.update(overrides)
    return RuntimeEnvironment(**values)


def test_is_dev_mode_priority(tmp_path) -> None:
    durable = _durable_env(tmp_path)
    assert is_dev_mode(durable) is False
    assert select_backend(durable) is BackendKind.DURABLE

    assert is_dev_mode(_durable_env(tmp_path, app_env="development")) is True
    assert is_dev_mode(_durable_env(tmp_path, app_env=" Development ")) is True
    assert is_dev_mode(_durable_env(tmp_path, dev_build=True)) is True
    assert is_dev_mode(_durable_env(tmp_path, sessions=None)) is True
    assert is_dev_mode(_durable_env(tmp_path, blob_store=None)) is True
    assert select_backend(RuntimeEnvironment()) is BackendKind.EPHEMERAL


def test_from_environ_reads_marker() -> None:
    env = RuntimeEnvironment.from_environ({"PCM_SERVER_ENV": "development"})
    assert env.app_env == "development"
    assert RuntimeEnvironment.from_environ({}).app_env is None


def test_ephemeral_create_uses_candidate_verbatim(ephemeral) -> None:
    metrics = Metrics()
    registry = SessionRegistry(ephemeral, metrics)
    env = RuntimeEnvironment(app_env="development")

    async def run():
        created = await registry.create("my-session", ["a.mp3"], env)
        routing_id = created.session_id
        assert created.backend is BackendKind.EPHEMERAL
        record = await registry.get_metadata(routing_id, env)
        valid = await registry.validate(routing_id, env)
        return routing_id, record, valid

    routing_id, record, valid = asyncio.run(run())
    assert routing_id == "my-session"
    assert record.session_id == "my-session"
    assert record.internal_id == "my-session"
    assert valid is True
    assert metrics.render()["sessions_created"] == {"ephemeral": 1}


def test_ephemeral_expiry_surfaces_not_found(ephemeral) -> None:
    registry = SessionRegistry(ephemeral)
    env = RuntimeEnvironment()
    asyncio.run(registry.create("s", ["a.mp3"], env))

    ephemeral.clock.now += HOUR
    assert asyncio.run(registry.validate("s", env)) is True

    ephemeral.clock.now += HOUR + 0.001
    assert asyncio.run(registry.validate("s", env)) is False
    with pytest.raises(SessionNotFoundError):
        asyncio.run(registry.get_metadata("s", env))


def test_durable_create_mints_new_identifier(tmp_path, ephemeral) -> None:
    registry = SessionRegistry(ephemeral)
    env = _durable_env(tmp_path)

    async def run():
        created = await registry.create("candidate", ["a.mp3"], env)
        assert created.backend is BackendKind.DURABLE
        routing_id = created.session_id
        return routing_id, await registry.get_metadata(routing_id, env)

    routing_id, record = asyncio.run(run())
    assert routing_id != "candidate"
    assert len(routing_id) == 64
    assert record.internal_id == "candidate"
    assert ephemeral.active_count() == 0


def test_backend_choice_is_per_call(tmp_path, ephemeral) -> None:
    registry = SessionRegistry(ephemeral)
    durable_env = _durable_env(tmp_path)
    routing_id = asyncio.run(registry.create("candidate", ["a.mp3"], durable_env)).session_id

    dev_env = RuntimeEnvironment(app_env="development")
    assert asyncio.run(registry.validate(routing_id, dev_env)) is False
    assert asyncio.run(registry.validate(routing_id, durable_env)) is True


def test_durable_rejects_malformed_id_distinctly(tmp_path, ephemeral) -> None:
    metrics = Metrics()
    registry = SessionRegistry(ephemeral, metrics)
    env = _durable_env(tmp_path)

    with pytest.raises(InvalidSessionIdError):
        asyncio.run(registry.get_metadata("not-hex", env))
    with pytest.raises(SessionNotFoundError):
        asyncio.run(registry.get_metadata("f" * 64, env))
    assert metrics.render()["session_errors"] == {
        ErrorCode.SESSION_ID_INVALID.value: 1,
        ErrorCode.SESSION_NOT_FOUND.value: 1,
    }


def test_transport_errors_are_wrapped(tmp_path, ephemeral, caplog) -> None:
    actor = MagicMock()
    actor.get_session_metadata = AsyncMock(side_effect=OSError("disk gone"))
    namespace = MagicMock()
    namespace.id_from_string.side_effect = lambda value: value.lower()
    namespace.get.return_value = actor
    registry = SessionRegistry(ephemeral)
    env = _durable_env(tmp_path, sessions=namespace)

    with caplog.at_level(logging.ERROR, logger="pcm_server.session_registry"):
        with pytest.raises(BackendUnavailableError) as excinfo:
            asyncio.run(registry.get_metadata("a" * 64, env))

    assert isinstance(excinfo.value.__cause__, OSError)
    assert excinfo.value.code is ErrorCode.BACKEND_UNAVAILABLE
    assert "Session backend failure during get_metadata" in caplog.text


def test_create_requires_sources_and_candidate(ephemeral) -> None:
    registry = SessionRegistry(ephemeral)
    env = RuntimeEnvironment()

    with pytest.raises(PcmServerError) as excinfo:
        asyncio.run(registry.create("s", [], env))
    assert excinfo.value.code is ErrorCode.SOURCE_IDS_REQUIRED

    with pytest.raises(InvalidSessionIdError):
        asyncio.run(registry.create("", ["a.mp3"], env))


def test_delete_is_routed_and_idempotent(tmp_path, ephemeral) -> None:
    registry = SessionRegistry(ephemeral)
    dev_env = RuntimeEnvironment(dev_build=True)
    durable_env = _durable_env(tmp_path)

    async def run():
        await registry.create("e", ["a.mp3"], dev_env)
        durable_id = (await registry.create("d", ["a.mp3"], durable_env)).session_id
        await registry.delete("e", dev_env)
        await registry.delete("e", dev_env)
        await registry.delete(durable_id, durable_env)
        return (
            await registry.validate("e", dev_env),
            await registry.validate(durable_id, durable_env),
        )

    assert asyncio.run(run()) == (False, False)


def test_ephemeral_candidate_is_never_reissued(ephemeral) -> None:
    metrics = Metrics()
    registry = SessionRegistry(ephemeral, metrics)
    env = RuntimeEnvironment(dev_build=True)

    async def run():
        await registry.create("once", ["a.mp3"], env)
        await registry.delete("once", env)
        await registry.create("once", ["b.mp3"], env)

    with pytest.raises(PcmServerError) as excinfo:
        asyncio.run(run())
    assert excinfo.value.code is ErrorCode.SESSION_ID_ALREADY_ISSUED
    assert metrics.render()["sessions_created"] == {"ephemeral": 1}
