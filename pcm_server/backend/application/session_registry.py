"""Session registry facade routing each call to the durable or ephemeral backend."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar

from pcm_server.backend.component.blob_store import BlobStore
from pcm_server.backend.storage.durable import ActorNamespace, DurableSessionBackend
from pcm_server.backend.storage.ephemeral import EphemeralSessionStore
from pcm_server.backend.storage.types import SessionRecord
from pcm_server.config.default import APP_ENV_VAR, DEVELOPMENT_ENV
from pcm_server.errors import (
    BackendUnavailableError,
    ErrorCode,
    InvalidSessionIdError,
    PcmServerError,
)
from pcm_server.utils.logger import clear_session_id, set_session_id

if TYPE_CHECKING:
    from pcm_server.backend.runtime.metrics import Metrics

LOGGER = logging.getLogger("pcm_server.session_registry")

T = TypeVar("T")


class BackendKind(str, Enum):
    DURABLE = "durable"
    EPHEMERAL = "ephemeral"


@dataclass(frozen=True)
class RuntimeEnvironment:
    """Snapshot of the bindings visible to one request.

    ``sessions`` is the durable actor namespace and ``blob_store`` the cache
    store; either may be absent in a partially configured deployment.
    """

    app_env: Optional[str] = None
    dev_build: bool = False
    sessions: Optional[ActorNamespace] = None
    blob_store: Optional[BlobStore] = None

    @classmethod
    def from_environ(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        dev_build: bool = False,
        sessions: Optional[ActorNamespace] = None,
        blob_store: Optional[BlobStore] = None,
    ) -> "RuntimeEnvironment":
        source = os.environ if environ is None else environ
        return cls(
            app_env=source.get(APP_ENV_VAR),
            dev_build=dev_build,
            sessions=sessions,
            blob_store=blob_store,
        )


def is_dev_mode(env: RuntimeEnvironment) -> bool:
    """True when any development condition holds, checked in priority order."""
    if (env.app_env or "").strip().lower() == DEVELOPMENT_ENV:
        return True
    if env.dev_build:
        return True
    if env.sessions is None:
        return True
    return env.blob_store is None


def select_backend(env: RuntimeEnvironment) -> BackendKind:
    return BackendKind.EPHEMERAL if is_dev_mode(env) else BackendKind.DURABLE


@dataclass(frozen=True)
class CreatedSession:
    """Routing id handed to the client and the backend that issued it."""

    session_id: str
    backend: BackendKind


class SessionRegistry:
    """Creates, reads, validates and deletes sessions.

    The backend is chosen afresh from ``env`` on every call. Not-found and
    malformed-identifier failures propagate unchanged; any other backend
    failure is wrapped in :class:`BackendUnavailableError`.
    """

    def __init__(
        self,
        ephemeral_store: EphemeralSessionStore,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._ephemeral = ephemeral_store
        self._metrics = metrics

    async def create(
        self, candidate_id: str, source_ids: Sequence[str], env: RuntimeEnvironment
    ) -> CreatedSession:
        """Create a session on the backend selected for this call."""
        if not candidate_id:
            raise InvalidSessionIdError("candidate session id must not be empty")
        sources = [str(source_id) for source_id in source_ids]
        if not sources:
            raise PcmServerError(ErrorCode.SOURCE_IDS_REQUIRED)
        backend = select_backend(env)
        if backend is BackendKind.DURABLE:
            routing_id = await self._guard(
                "create",
                lambda: DurableSessionBackend(env.sessions).create(candidate_id, sources),
            )
        else:
            routing_id = await self._guard(
                "create", lambda: self._ephemeral_create(candidate_id, sources)
            )
        if self._metrics is not None:
            self._metrics.record_session_created(backend.value)
        set_session_id(routing_id)
        try:
            LOGGER.info(
                "Session created backend=%s internal=%s sources=%d",
                backend.value,
                candidate_id,
                len(sources),
            )
        finally:
            clear_session_id()
        return CreatedSession(routing_id, backend)

    async def get_metadata(self, routing_id: str, env: RuntimeEnvironment) -> SessionRecord:
        if select_backend(env) is BackendKind.DURABLE:
            return await self._guard(
                "get_metadata",
                lambda: DurableSessionBackend(env.sessions).get_metadata(routing_id),
            )
        return await self._guard(
            "get_metadata", lambda: self._ephemeral_get(routing_id)
        )

    async def validate(self, routing_id: str, env: RuntimeEnvironment) -> bool:
        """True iff a live record exists; missing or expired is not an error."""
        if select_backend(env) is BackendKind.DURABLE:
            return await self._guard(
                "validate",
                lambda: DurableSessionBackend(env.sessions).validate(routing_id),
            )
        return await self._guard(
            "validate", lambda: self._ephemeral_validate(routing_id)
        )

    async def delete(self, routing_id: str, env: RuntimeEnvironment) -> None:
        """Remove a session; unknown identifiers are ignored."""
        if select_backend(env) is BackendKind.DURABLE:
            await self._guard(
                "delete",
                lambda: DurableSessionBackend(env.sessions).delete(routing_id),
            )
            return
        await self._guard("delete", lambda: self._ephemeral_delete(routing_id))

    async def _ephemeral_create(self, candidate_id: str, sources: Sequence[str]) -> str:
        record = self._ephemeral.create_session(candidate_id, candidate_id, sources)
        return record.session_id

    async def _ephemeral_get(self, routing_id: str) -> SessionRecord:
        return self._ephemeral.get_session_metadata(routing_id)

    async def _ephemeral_validate(self, routing_id: str) -> bool:
        return self._ephemeral.validate_session(routing_id)

    async def _ephemeral_delete(self, routing_id: str) -> None:
        self._ephemeral.delete_session(routing_id)

    async def _guard(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except PcmServerError as exc:
            if self._metrics is not None:
                self._metrics.record_session_error(exc.code.value)
            raise
        except Exception as exc:
            LOGGER.exception("Session backend failure during %s", operation)
            if self._metrics is not None:
                self._metrics.record_session_error(ErrorCode.BACKEND_UNAVAILABLE.value)
            raise BackendUnavailableError(f"{operation} failed: {exc}") from exc


__all__ = [
    "BackendKind",
    "CreatedSession",
    "RuntimeEnvironment",
    "SessionRegistry",
    "is_dev_mode",
    "select_backend",
]
