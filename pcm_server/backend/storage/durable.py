"""Durable session backend built on per-session keyed actors.

Each session lives in its own actor, addressed by a 64-hex-digit identity.
The identity is minted by the namespace on creation and reconstructed from
its string form on every later call; it is never derived by hashing.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import secrets
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Sequence, Tuple

from pcm_server.backend.storage.types import SessionRecord
from pcm_server.config.default import DEFAULT_SESSION_TIMEOUT_SEC
from pcm_server.errors import InvalidSessionIdError, SessionNotFoundError
from pcm_server.utils.logger import LOGGER

ACTOR_ID_HEX_DIGITS = 64
_ACTOR_ID_RE = re.compile(r"[0-9a-fA-F]{64}")


@dataclass(frozen=True)
class ActorId:
    """Identity of a single actor; ``hex`` is always lowercase."""

    hex: str

    def __str__(self) -> str:
        return self.hex


def parse_actor_id(value: object) -> ActorId:
    """Reconstruct an ActorId from its string form, rejecting malformed input."""
    if not isinstance(value, str) or not _ACTOR_ID_RE.fullmatch(value):
        raise InvalidSessionIdError(
            f"session id must be exactly {ACTOR_ID_HEX_DIGITS} hexadecimal characters"
        )
    return ActorId(value.lower())


class SessionActor(Protocol):
    async def create_session(
        self, routing_id: str, internal_id: str, source_ids: Sequence[str]
    ) -> str: ...

    async def get_session_metadata(self, routing_id: str) -> SessionRecord: ...

    async def validate_session(self, routing_id: str) -> bool: ...

    async def delete_session(self, routing_id: str) -> None: ...


class ActorNamespace(Protocol):
    """Binding that mints identities and resolves them to actor handles."""

    def new_unique_id(self) -> ActorId: ...

    def id_from_string(self, value: str) -> ActorId: ...

    def get(self, actor_id: ActorId) -> SessionActor: ...


class LocalSessionActor:
    """File-backed actor; all calls on one actor are serialized by its lock.

    Sessions idle for longer than ``timeout_sec`` are destroyed on the next
    access and reported as not found.
    """

    def __init__(
        self,
        actor_id: ActorId,
        path: Path,
        timeout_sec: float,
        clock: Callable[[], float],
    ) -> None:
        self.actor_id = actor_id
        self._path = path
        self._timeout_sec = float(timeout_sec)
        self._clock = clock
        self._lock = threading.Lock()

    async def create_session(
        self, routing_id: str, internal_id: str, source_ids: Sequence[str]
    ) -> str:
        return await asyncio.to_thread(
            self._create, routing_id, internal_id, list(source_ids)
        )

    async def get_session_metadata(self, routing_id: str) -> SessionRecord:
        return await asyncio.to_thread(self._get, routing_id, True)

    async def validate_session(self, routing_id: str) -> bool:
        try:
            await asyncio.to_thread(self._get, routing_id, False)
        except SessionNotFoundError:
            return False
        return True

    async def delete_session(self, routing_id: str) -> None:
        await asyncio.to_thread(self._delete, routing_id)

    def _create(self, routing_id: str, internal_id: str, source_ids: list) -> str:
        now = self._clock()
        record = SessionRecord(
            session_id=routing_id,
            source_ids=source_ids,
            created_at=now,
            internal_id=internal_id,
            last_accessed_at=now,
        )
        with self._lock:
            self._persist_locked(record)
        LOGGER.info(
            "Created durable session %s (internal: %s) sources=%d",
            routing_id,
            internal_id,
            len(source_ids),
        )
        return routing_id

    def _get(self, routing_id: str, touch: bool) -> SessionRecord:
        now = self._clock()
        with self._lock:
            record = self._load_locked()
            if record is None or record.session_id != routing_id:
                raise SessionNotFoundError()
            if now - record.last_accessed_at > self._timeout_sec:
                self._destroy_locked()
                LOGGER.info("Durable session %s expired, state destroyed", routing_id)
                raise SessionNotFoundError("Session expired")
            if touch:
                record.last_accessed_at = now
                self._persist_locked(record)
            return record

    def _delete(self, routing_id: str) -> None:
        with self._lock:
            record = self._load_locked()
            if record is None or record.session_id != routing_id:
                return
            self._destroy_locked()
        LOGGER.info("Deleted durable session %s", routing_id)

    def _load_locked(self) -> Optional[SessionRecord]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return SessionRecord.from_dict(json.loads(raw))

    def _persist_locked(self, record: SessionRecord) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(record.to_dict(), sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def _destroy_locked(self) -> None:
        self._path.unlink(missing_ok=True)


class LocalActorNamespace:
    """Actor namespace persisting each actor's state as ``<id>.json``."""

    def __init__(
        self,
        directory: Path | str,
        timeout_sec: float = DEFAULT_SESSION_TIMEOUT_SEC,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._directory = Path(directory).expanduser()
        self._directory.mkdir(parents=True, exist_ok=True)
        self._timeout_sec = float(timeout_sec)
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._actors: Dict[ActorId, LocalSessionActor] = {}

    def new_unique_id(self) -> ActorId:
        return ActorId(secrets.token_hex(ACTOR_ID_HEX_DIGITS // 2))

    def id_from_string(self, value: str) -> ActorId:
        return parse_actor_id(value)

    def get(self, actor_id: ActorId) -> LocalSessionActor:
        with self._lock:
            actor = self._actors.get(actor_id)
            if actor is None:
                actor = LocalSessionActor(
                    actor_id,
                    self._directory / f"{actor_id.hex}.json",
                    self._timeout_sec,
                    self._clock,
                )
                self._actors[actor_id] = actor
            return actor


class DurableSessionBackend:
    """Session operations routed to the actor owning each identifier."""

    def __init__(self, namespace: ActorNamespace) -> None:
        self._namespace = namespace

    async def create(self, candidate_id: str, source_ids: Sequence[str]) -> str:
        """Mint a fresh identity; ``candidate_id`` is kept as the internal id."""
        actor_id = self._namespace.new_unique_id()
        routing_id = str(actor_id)
        actor = self._namespace.get(actor_id)
        await actor.create_session(routing_id, candidate_id, list(source_ids))
        return routing_id

    async def get_metadata(self, routing_id: str) -> SessionRecord:
        actor, normalized = self._resolve(routing_id)
        return await actor.get_session_metadata(normalized)

    async def validate(self, routing_id: str) -> bool:
        actor, normalized = self._resolve(routing_id)
        return await actor.validate_session(normalized)

    async def delete(self, routing_id: str) -> None:
        actor, normalized = self._resolve(routing_id)
        await actor.delete_session(normalized)

    def _resolve(self, routing_id: str) -> Tuple[SessionActor, str]:
        normalized = parse_actor_id(routing_id).hex
        actor_id = self._namespace.id_from_string(normalized)
        return self._namespace.get(actor_id), str(actor_id)


__all__ = [
    "ACTOR_ID_HEX_DIGITS",
    "ActorId",
    "ActorNamespace",
    "DurableSessionBackend",
    "LocalActorNamespace",
    "LocalSessionActor",
    "SessionActor",
    "parse_actor_id",
]
