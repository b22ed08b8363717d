"""Application layer for the PCM cache server."""

from .decode_cache import (
    CacheOutcome,
    CacheStats,
    DecodeCacheConfig,
    DecodeCacheManager,
    PrewarmReport,
    ResolveResult,
    derive_cache_key,
)
from .session_registry import (
    BackendKind,
    CreatedSession,
    RuntimeEnvironment,
    SessionRegistry,
    is_dev_mode,
    select_backend,
)

__all__ = [
    "BackendKind",
    "CacheOutcome",
    "CacheStats",
    "CreatedSession",
    "DecodeCacheConfig",
    "DecodeCacheManager",
    "PrewarmReport",
    "ResolveResult",
    "RuntimeEnvironment",
    "SessionRegistry",
    "derive_cache_key",
    "is_dev_mode",
    "select_backend",
]
