"""Cache-aside pipeline for decoded PCM artifacts.

A request for a source first looks up ``<prefix><source-without-ext>.pcm.wav``
in the blob store. On a miss the source is decoded, encoded as PCM16 WAV and
returned immediately while the write-back runs as a detached task. Any store
or decode failure degrades to returning the original bytes.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from pcm_server.backend.component.audio_decoder import AudioDecoder, SoundfileDecoder
from pcm_server.backend.component.blob_store import BlobStore
from pcm_server.backend.component.pcm_encoder import encode_wav
from pcm_server.config.default import DEFAULT_CACHE_PREFIX
from pcm_server.errors import DecodeError
from pcm_server.utils.audio import wav_duration_seconds

if TYPE_CHECKING:
    from pcm_server.backend.runtime.metrics import Metrics

LOGGER = logging.getLogger("pcm_server.decode_cache")

PCM_CACHE_SUFFIX = ".pcm.wav"
PCM_CONTENT_TYPE = "audio/wav"

SourceFetcher = Callable[[str], Awaitable[bytes]]


class CacheOutcome(str, Enum):
    HIT = "hit"
    MISS = "miss"
    DISABLED = "disabled"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class DecodeCacheConfig:
    enabled: bool = True
    prefix: str = DEFAULT_CACHE_PREFIX
    force_regenerate: bool = False


@dataclass
class ResolveResult:
    """Bytes handed back to the caller plus how they were obtained."""

    data: bytes
    from_cache: bool
    size: int
    elapsed_ms: float
    outcome: CacheOutcome


@dataclass
class CacheStats:
    total: int
    cached: int
    uncached: int
    hit_rate_percent: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "total": self.total,
            "cached": self.cached,
            "uncached": self.uncached,
            "hit_rate_percent": self.hit_rate_percent,
        }


@dataclass
class PrewarmReport:
    """Per-source outcome of a prewarm batch."""

    outcomes: Dict[str, str] = field(default_factory=dict)

    def _count(self, status: str) -> int:
        return sum(1 for value in self.outcomes.values() if value == status)

    @property
    def succeeded(self) -> int:
        return self._count("generated")

    @property
    def skipped(self) -> int:
        return self._count("cached")

    @property
    def failed(self) -> int:
        return self._count("failed")

    def to_dict(self) -> Dict[str, object]:
        return {
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "outcomes": dict(self.outcomes),
        }


def derive_cache_key(source_id: str, prefix: str = DEFAULT_CACHE_PREFIX) -> str:
    """Map a source identifier to its PCM cache key.

    Only the extension of the final path segment is stripped, so
    ``albums/v1.2/song.mp3`` becomes ``<prefix>albums/v1.2/song.pcm.wav``.
    """
    base, _ext = posixpath.splitext(source_id)
    return f"{prefix}{base}{PCM_CACHE_SUFFIX}"


class DecodeCacheManager:
    """Resolves decoded PCM for a source, caching results in a blob store."""

    def __init__(
        self,
        config: Optional[DecodeCacheConfig] = None,
        decoder: Optional[AudioDecoder] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._config = config or DecodeCacheConfig()
        self._decoder = decoder or SoundfileDecoder()
        self._metrics = metrics
        self._pending_writes: Set[asyncio.Task] = set()

    @property
    def config(self) -> DecodeCacheConfig:
        return self._config

    def cache_key(self, source_id: str) -> str:
        return derive_cache_key(source_id, self._config.prefix)

    async def resolve(
        self,
        source_id: str,
        source_bytes: bytes,
        store: Optional[BlobStore] = None,
    ) -> ResolveResult:
        """Return cached PCM, freshly decoded PCM, or the original bytes."""
        start = time.perf_counter()
        if not self._config.enabled or store is None:
            LOGGER.info("PCM cache disabled for %s, using original audio", source_id)
            return self._finish(source_bytes, start, CacheOutcome.DISABLED)

        try:
            key = self.cache_key(source_id)
            if not self._config.force_regenerate:
                cached = await store.get(key)
                if cached is not None:
                    result = self._finish(cached, start, CacheOutcome.HIT)
                    LOGGER.info(
                        "PCM cache HIT for %s (%d bytes, %.2fs audio, %.1fms)",
                        source_id,
                        result.size,
                        wav_duration_seconds(cached),
                        result.elapsed_ms,
                    )
                    return result

            LOGGER.info("PCM cache MISS for %s, decoding", source_id)
            pcm = await asyncio.to_thread(self._decode_to_wav, source_bytes)
            self._schedule_write(store, key, source_id, pcm)
            result = self._finish(pcm, start, CacheOutcome.MISS)
            LOGGER.info(
                "PCM generated for %s (%d bytes, %.1fms)",
                source_id,
                result.size,
                result.elapsed_ms,
            )
            return result
        except DecodeError as exc:
            LOGGER.warning(
                "Decode failed for %s, falling back to original audio: %s",
                source_id,
                exc.detail,
            )
        except Exception:
            LOGGER.exception(
                "PCM cache error for %s, falling back to original audio", source_id
            )
        return self._finish(source_bytes, start, CacheOutcome.FALLBACK)

    async def cache_exists(self, source_id: str, store: Optional[BlobStore]) -> bool:
        if store is None or not self._config.enabled or self._config.force_regenerate:
            return False
        return await store.head(self.cache_key(source_id))

    async def prewarm(
        self,
        source_ids: Iterable[str],
        fetcher: SourceFetcher,
        store: Optional[BlobStore] = None,
    ) -> PrewarmReport:
        """Populate the cache for each source; one failure never aborts the batch."""
        ids = list(dict.fromkeys(source_ids))
        report = PrewarmReport()
        if store is None or not self._config.enabled:
            LOGGER.warning("Cannot prewarm PCM cache without an enabled store")
            report.outcomes = {source_id: "disabled" for source_id in ids}
            return report

        LOGGER.info("Pre-warming PCM cache for %d sources", len(ids))
        results = await asyncio.gather(
            *(self._prewarm_one(source_id, fetcher, store) for source_id in ids),
            return_exceptions=True,
        )
        for source_id, outcome in zip(ids, results):
            if isinstance(outcome, BaseException):
                LOGGER.error("Prewarm failed for %s: %s", source_id, outcome)
                report.outcomes[source_id] = "failed"
            else:
                report.outcomes[source_id] = outcome
        await self.wait_for_pending_writes()
        LOGGER.info(
            "PCM cache pre-warm complete: %d generated, %d already cached, %d failed",
            report.succeeded,
            report.skipped,
            report.failed,
        )
        return report

    async def clear(
        self, source_ids: Iterable[str], store: Optional[BlobStore] = None
    ) -> List[str]:
        """Delete cached PCM for each source; missing keys are not an error."""
        if store is None:
            LOGGER.warning("Cannot clear PCM cache without a store")
            return []
        keys = list(dict.fromkeys(self.cache_key(source_id) for source_id in source_ids))
        results = await asyncio.gather(
            *(store.delete(key) for key in keys), return_exceptions=True
        )
        deleted: List[str] = []
        for key, outcome in zip(keys, results):
            if isinstance(outcome, BaseException):
                LOGGER.error("Failed to delete PCM cache %s: %s", key, outcome)
            else:
                LOGGER.info("Deleted PCM cache: %s", key)
                deleted.append(key)
        return deleted

    async def stats(
        self, source_ids: Iterable[str], store: Optional[BlobStore] = None
    ) -> CacheStats:
        ids = list(source_ids)
        total = len(ids)
        if store is None:
            return CacheStats(total=total, cached=0, uncached=total, hit_rate_percent=0.0)
        results = await asyncio.gather(
            *(self.cache_exists(source_id, store) for source_id in ids),
            return_exceptions=True,
        )
        cached = 0
        for source_id, exists in zip(ids, results):
            if isinstance(exists, BaseException):
                LOGGER.warning("Existence check failed for %s: %s", source_id, exists)
            elif exists:
                cached += 1
        hit_rate = round(cached / total * 100.0, 2) if total else 0.0
        return CacheStats(
            total=total,
            cached=cached,
            uncached=total - cached,
            hit_rate_percent=hit_rate,
        )

    async def wait_for_pending_writes(self) -> None:
        """Wait for write-backs started on the running loop to settle."""
        loop = asyncio.get_running_loop()
        while True:
            pending = [task for task in self._pending_writes if task.get_loop() is loop]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def pending_write_count(self) -> int:
        return sum(1 for task in self._pending_writes if not task.done())

    async def _prewarm_one(
        self, source_id: str, fetcher: SourceFetcher, store: BlobStore
    ) -> str:
        if await self.cache_exists(source_id, store):
            LOGGER.info("PCM cache already exists for %s", source_id)
            return "cached"
        data = await fetcher(source_id)
        result = await self.resolve(source_id, data, store)
        if result.outcome is CacheOutcome.FALLBACK:
            return "failed"
        return "generated"

    def _decode_to_wav(self, source_bytes: bytes) -> bytes:
        start = time.perf_counter()
        decoded = self._decoder.decode(source_bytes)
        pcm = encode_wav(decoded.samples, decoded.sample_rate)
        if self._metrics is not None:
            self._metrics.record_decode(time.perf_counter() - start)
        return pcm

    def _schedule_write(
        self, store: BlobStore, key: str, source_id: str, data: bytes
    ) -> None:
        task = asyncio.get_running_loop().create_task(
            self._store_pcm(store, key, source_id, data)
        )
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _store_pcm(
        self, store: BlobStore, key: str, source_id: str, data: bytes
    ) -> None:
        metadata = {
            "original_source_id": source_id,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await store.put(key, data, content_type=PCM_CONTENT_TYPE, metadata=metadata)
        except Exception:
            LOGGER.exception("Failed to store PCM cache for %s", source_id)
            if self._metrics is not None:
                self._metrics.record_write_back(False)
            return
        if self._metrics is not None:
            self._metrics.record_write_back(True)
        LOGGER.info("Stored PCM cache: %s (%d bytes)", key, len(data))

    def _finish(self, data: bytes, start: float, outcome: CacheOutcome) -> ResolveResult:
        if self._metrics is not None:
            self._metrics.record_cache_outcome(outcome.value)
        return ResolveResult(
            data=data,
            from_cache=outcome is CacheOutcome.HIT,
            size=len(data),
            elapsed_ms=(time.perf_counter() - start) * 1000.0,
            outcome=outcome,
        )


__all__ = [
    "CacheOutcome",
    "CacheStats",
    "DecodeCacheConfig",
    "DecodeCacheManager",
    "PrewarmReport",
    "ResolveResult",
    "derive_cache_key",
]
