"""Default configuration values."""

from .server import (
    APP_ENV_VAR,
    DEFAULT_CACHE_ENABLED,
    DEFAULT_CACHE_FORCE_REGENERATE,
    DEFAULT_CACHE_PREFIX,
    DEFAULT_CACHE_STORE_DIR,
    DEFAULT_DECODE_SAMPLE_RATE,
    DEFAULT_DEV_BUILD,
    DEFAULT_DURABLE_SESSION_DIR,
    DEFAULT_HOST,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
    DEFAULT_SESSION_RATE_LIMIT_COUNT,
    DEFAULT_SESSION_RATE_LIMIT_WINDOW_SEC,
    DEFAULT_SESSION_SWEEP_INTERVAL_SEC,
    DEFAULT_SESSION_TIMEOUT_SEC,
    DEFAULT_SOURCE_STORE_DIR,
    DEVELOPMENT_ENV,
    NULLABLE_KEYS,
    SERVER_SECTION_MAP,
)

__all__ = [
    "APP_ENV_VAR",
    "DEFAULT_CACHE_ENABLED",
    "DEFAULT_CACHE_FORCE_REGENERATE",
    "DEFAULT_CACHE_PREFIX",
    "DEFAULT_CACHE_STORE_DIR",
    "DEFAULT_DECODE_SAMPLE_RATE",
    "DEFAULT_DEV_BUILD",
    "DEFAULT_DURABLE_SESSION_DIR",
    "DEFAULT_HOST",
    "DEFAULT_LOG_FILE",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_PORT",
    "DEFAULT_SESSION_RATE_LIMIT_COUNT",
    "DEFAULT_SESSION_RATE_LIMIT_WINDOW_SEC",
    "DEFAULT_SESSION_SWEEP_INTERVAL_SEC",
    "DEFAULT_SESSION_TIMEOUT_SEC",
    "DEFAULT_SOURCE_STORE_DIR",
    "DEVELOPMENT_ENV",
    "NULLABLE_KEYS",
    "SERVER_SECTION_MAP",
]
