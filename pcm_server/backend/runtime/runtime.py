"""Application wiring for the PCM cache server."""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional

from pcm_server.backend.application.decode_cache import (
    CacheStats,
    DecodeCacheConfig,
    DecodeCacheManager,
    PrewarmReport,
)
from pcm_server.backend.application.session_registry import (
    CreatedSession,
    RuntimeEnvironment,
    SessionRegistry,
    select_backend,
)
from pcm_server.backend.component.audio_decoder import AudioDecoder, SoundfileDecoder
from pcm_server.backend.component.blob_store import BlobStore, FileSystemBlobStore
from pcm_server.backend.runtime.metrics import Metrics
from pcm_server.backend.storage.durable import ActorNamespace, LocalActorNamespace
from pcm_server.backend.storage.ephemeral import EphemeralSessionStore
from pcm_server.backend.storage.types import SessionRecord
from pcm_server.backend.utils.rate_limit import KeyedRateLimiter
from pcm_server.config import ServerConfig
from pcm_server.errors import ErrorCode, PcmServerError
from pcm_server.utils.logger import LOGGER


class ApplicationRuntime:  # pylint: disable=too-many-instance-attributes
    """Builds and owns application-layer dependencies."""

    def __init__(
        self,
        config: ServerConfig,
        *,
        decoder: Optional[AudioDecoder] = None,
        cache_store: Optional[BlobStore] = None,
        source_store: Optional[BlobStore] = None,
        session_namespace: Optional[ActorNamespace] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> None:
        self.config = config
        self.metrics = Metrics()
        self._environ = environ

        self.decoder = decoder or SoundfileDecoder(config.decode_sample_rate)
        self.cache_manager = DecodeCacheManager(
            DecodeCacheConfig(
                enabled=config.cache_enabled,
                prefix=config.cache_prefix,
                force_regenerate=config.cache_force_regenerate,
            ),
            decoder=self.decoder,
            metrics=self.metrics,
        )
        if cache_store is None and config.cache_store_dir:
            cache_store = FileSystemBlobStore(config.cache_store_dir)
        self.cache_store = cache_store
        self.source_store = source_store or FileSystemBlobStore(config.source_store_dir)

        if session_namespace is None and config.durable_session_dir:
            session_namespace = LocalActorNamespace(
                config.durable_session_dir, timeout_sec=config.session_timeout_sec
            )
        self.session_namespace = session_namespace
        self.ephemeral_store = EphemeralSessionStore(
            timeout_sec=config.session_timeout_sec,
            sweep_interval_sec=config.session_sweep_interval_sec,
        )
        self.session_registry = SessionRegistry(self.ephemeral_store, self.metrics)
        self.create_session_limiter = KeyedRateLimiter.per_window(
            config.session_rate_limit_count, config.session_rate_limit_window_sec
        )
        self._allowed_sources = frozenset(config.allowed_sources)

    def environment(self) -> RuntimeEnvironment:
        """Snapshot of the bindings handed to the session registry per call."""
        return RuntimeEnvironment.from_environ(
            self._environ,
            dev_build=self.config.dev_build,
            sessions=self.session_namespace,
            blob_store=self.cache_store,
        )

    def start(self) -> None:
        self.ephemeral_store.start()

    def shutdown(self) -> None:
        """Release runtime resources before exiting."""
        self.ephemeral_store.stop()

    def check_sources_allowed(self, source_ids: Iterable[str]) -> List[str]:
        sources = [str(source_id) for source_id in source_ids]
        if not self._allowed_sources:
            return sources
        rejected = [source_id for source_id in sources if source_id not in self._allowed_sources]
        if rejected:
            raise PcmServerError(
                ErrorCode.SOURCE_NOT_ALLOWED, f"Unknown source ids: {', '.join(rejected)}"
            )
        return sources

    async def fetch_source(self, source_id: str) -> bytes:
        data = await self.source_store.get(source_id)
        if data is None:
            raise PcmServerError(ErrorCode.SOURCE_NOT_FOUND, f"Source '{source_id}' not found")
        return data

    async def create_session(
        self, source_ids: Iterable[str], client_key: str
    ) -> CreatedSession:
        """Create a session under a freshly minted candidate id."""
        if not self.create_session_limiter.allow(client_key):
            self.metrics.record_rate_limit_block()
            LOGGER.warning("Session creation rate limited for %s", client_key)
            raise PcmServerError(ErrorCode.SESSION_RATE_LIMITED)
        sources = self.check_sources_allowed(source_ids)
        return await self.session_registry.create(
            uuid.uuid4().hex, sources, self.environment()
        )

    async def get_session(self, routing_id: str) -> SessionRecord:
        return await self.session_registry.get_metadata(routing_id, self.environment())

    async def validate_session(self, routing_id: str) -> bool:
        return await self.session_registry.validate(routing_id, self.environment())

    async def delete_session(self, routing_id: str) -> None:
        await self.session_registry.delete(routing_id, self.environment())

    async def prewarm(self, source_ids: Iterable[str]) -> PrewarmReport:
        sources = self.check_sources_allowed(source_ids)
        return await self.cache_manager.prewarm(sources, self.fetch_source, self.cache_store)

    async def cache_stats(self, source_ids: Iterable[str]) -> CacheStats:
        return await self.cache_manager.stats(source_ids, self.cache_store)

    async def clear_cache(self, source_ids: Iterable[str]) -> List[str]:
        if self.cache_store is None:
            raise PcmServerError(ErrorCode.CACHE_STORE_UNAVAILABLE)
        return await self.cache_manager.clear(source_ids, self.cache_store)

    def health_snapshot(self) -> Dict[str, Any]:
        """Return a point-in-time snapshot of runtime health."""
        env = self.environment()
        return {
            "session_backend": select_backend(env).value,
            "cache_enabled": self.config.cache_enabled,
            "cache_store_configured": self.cache_store is not None,
            "durable_sessions_configured": self.session_namespace is not None,
            "ephemeral_sweep_running": self.ephemeral_store.running,
            "ephemeral_active_sessions": self.ephemeral_store.active_count(),
            "pending_cache_writes": self.cache_manager.pending_write_count,
        }
