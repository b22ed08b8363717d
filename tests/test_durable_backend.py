import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from pcm_server.backend.storage.durable import (
    ActorId,
    DurableSessionBackend,
    LocalActorNamespace,
    parse_actor_id,
)
from pcm_server.errors import InvalidSessionIdError, SessionNotFoundError

HOUR = 3600.0


class FakeClock:
    def __init__(self, start: float = 50_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _backend(tmp_path, clock=None):
    namespace = LocalActorNamespace(tmp_path / "actors", timeout_sec=2 * HOUR, clock=clock)
    return DurableSessionBackend(namespace), namespace


def test_create_mints_hex_identity_and_keeps_candidate(tmp_path) -> None:
    backend, _namespace = _backend(tmp_path)

    async def run():
        routing_id = await backend.create("client-candidate", ["a.mp3", "b.mp3"])
        record = await backend.get_metadata(routing_id)
        return routing_id, record

    routing_id, record = asyncio.run(run())
    assert len(routing_id) == 64
    assert routing_id == routing_id.lower()
    int(routing_id, 16)
    assert record.session_id == routing_id
    assert record.internal_id == "client-candidate"
    assert record.source_ids == ["a.mp3", "b.mp3"]

    state = json.loads((tmp_path / "actors" / f"{routing_id}.json").read_text("utf-8"))
    assert state["internal_id"] == "client-candidate"


def test_identity_reconstruction_reaches_same_actor(tmp_path) -> None:
    backend, namespace = _backend(tmp_path)
    routing_id = asyncio.run(backend.create("c", ["a.mp3"]))

    first = namespace.get(namespace.id_from_string(routing_id))
    second = namespace.get(namespace.id_from_string(routing_id.upper()))
    assert first is second

    record = asyncio.run(backend.get_metadata(routing_id.upper()))
    assert record.session_id == routing_id


@pytest.mark.parametrize(
    "bad_id",
    ["", "abc", "g" * 64, "a" * 63, "a" * 65, "a" * 63 + "-", " " + "a" * 63, "a" * 64 + "\n"],
)
def test_malformed_ids_rejected_before_lookup(bad_id) -> None:
    namespace = MagicMock()
    backend = DurableSessionBackend(namespace)

    with pytest.raises(InvalidSessionIdError):
        asyncio.run(backend.get_metadata(bad_id))
    with pytest.raises(InvalidSessionIdError):
        asyncio.run(backend.validate(bad_id))
    namespace.id_from_string.assert_not_called()
    namespace.get.assert_not_called()


def test_namespace_receives_normalized_id_once() -> None:
    actor = MagicMock()
    actor.get_session_metadata = AsyncMock(return_value="record")
    namespace = MagicMock()
    namespace.id_from_string.return_value = ActorId("a" * 64)
    namespace.get.return_value = actor
    backend = DurableSessionBackend(namespace)

    assert asyncio.run(backend.get_metadata("A" * 64)) == "record"
    namespace.id_from_string.assert_called_once_with("a" * 64)
    namespace.get.assert_called_once_with(ActorId("a" * 64))
    actor.get_session_metadata.assert_awaited_once_with("a" * 64)


def test_unknown_valid_id_is_not_found(tmp_path) -> None:
    backend, _namespace = _backend(tmp_path)
    unknown = "0" * 64

    with pytest.raises(SessionNotFoundError):
        asyncio.run(backend.get_metadata(unknown))
    assert asyncio.run(backend.validate(unknown)) is False
    asyncio.run(backend.delete(unknown))


def test_idle_expiry_destroys_state(tmp_path) -> None:
    clock = FakeClock()
    backend, _namespace = _backend(tmp_path, clock)
    routing_id = asyncio.run(backend.create("c", ["a.mp3"]))

    clock.now += 1.5 * HOUR
    asyncio.run(backend.get_metadata(routing_id))
    # access refreshed the idle window
    clock.now += 1.5 * HOUR
    assert asyncio.run(backend.validate(routing_id)) is True

    clock.now += 2 * HOUR + 1
    with pytest.raises(SessionNotFoundError):
        asyncio.run(backend.get_metadata(routing_id))
    assert not (tmp_path / "actors" / f"{routing_id}.json").exists()


def test_delete_destroys_actor_state(tmp_path) -> None:
    backend, _namespace = _backend(tmp_path)

    async def run():
        routing_id = await backend.create("c", ["a.mp3"])
        await backend.delete(routing_id)
        return routing_id, await backend.validate(routing_id)

    routing_id, valid = asyncio.run(run())
    assert valid is False
    assert not (tmp_path / "actors" / f"{routing_id}.json").exists()


def test_parse_actor_id_normalizes_case() -> None:
    actor_id = parse_actor_id("AB" * 32)
    assert actor_id.hex == "ab" * 32
    assert str(actor_id) == "ab" * 32
