"""Default values for server/runtime configuration."""

from typing import Dict

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = None

DEFAULT_CACHE_ENABLED = True
DEFAULT_CACHE_PREFIX = "pcm-cache/"
DEFAULT_CACHE_FORCE_REGENERATE = False
DEFAULT_DECODE_SAMPLE_RATE = 44100
DEFAULT_CACHE_STORE_DIR = "data/pcm-cache"
DEFAULT_SOURCE_STORE_DIR = "data/audio"

DEFAULT_SESSION_TIMEOUT_SEC = 2 * 60 * 60.0
DEFAULT_SESSION_SWEEP_INTERVAL_SEC = 5 * 60.0
DEFAULT_DURABLE_SESSION_DIR = None
DEFAULT_DEV_BUILD = False
DEFAULT_SESSION_RATE_LIMIT_COUNT = 10
DEFAULT_SESSION_RATE_LIMIT_WINDOW_SEC = 60.0

# Environment variable acting as the execution-environment marker.
APP_ENV_VAR = "PCM_SERVER_ENV"
DEVELOPMENT_ENV = "development"

SERVER_SECTION_MAP: Dict[str, Dict[str, str]] = {
    "server": {
        "host": "host",
        "port": "port",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
    },
    "cache": {
        "enabled": "cache_enabled",
        "prefix": "cache_prefix",
        "force_regenerate": "cache_force_regenerate",
        "sample_rate": "decode_sample_rate",
        "store_dir": "cache_store_dir",
    },
    "sources": {
        "directory": "source_store_dir",
        "allowed": "allowed_sources",
    },
    "sessions": {
        "timeout_sec": "session_timeout_sec",
        "sweep_interval_sec": "session_sweep_interval_sec",
        "durable_dir": "durable_session_dir",
        "dev_build": "dev_build",
        "rate_limit_count": "session_rate_limit_count",
        "rate_limit_window_sec": "session_rate_limit_window_sec",
    },
}

# Keys whose explicit ``null`` in YAML is meaningful (disables the binding).
NULLABLE_KEYS = frozenset({"cache_store_dir", "durable_session_dir", "log_file"})

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
