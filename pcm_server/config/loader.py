from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from pcm_server.config.default import (
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
    NULLABLE_KEYS,
    SERVER_SECTION_MAP,
)


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = DEFAULT_LOG_FILE
    cache_enabled: bool = DEFAULT_CACHE_ENABLED
    cache_prefix: str = DEFAULT_CACHE_PREFIX
    cache_force_regenerate: bool = DEFAULT_CACHE_FORCE_REGENERATE
    decode_sample_rate: int = DEFAULT_DECODE_SAMPLE_RATE
    cache_store_dir: Optional[str] = DEFAULT_CACHE_STORE_DIR
    source_store_dir: str = DEFAULT_SOURCE_STORE_DIR
    allowed_sources: List[str] = field(default_factory=list)
    session_timeout_sec: float = DEFAULT_SESSION_TIMEOUT_SEC
    session_sweep_interval_sec: float = DEFAULT_SESSION_SWEEP_INTERVAL_SEC
    durable_session_dir: Optional[str] = DEFAULT_DURABLE_SESSION_DIR
    dev_build: bool = DEFAULT_DEV_BUILD
    session_rate_limit_count: int = DEFAULT_SESSION_RATE_LIMIT_COUNT
    session_rate_limit_window_sec: float = DEFAULT_SESSION_RATE_LIMIT_WINDOW_SEC


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "server.yaml"


def load_config(path: Optional[Path] = None) -> ServerConfig:
    """Load server configuration from YAML, falling back to defaults."""
    cfg = ServerConfig()
    data = _read_yaml(path or DEFAULT_CONFIG_PATH)
    if data:
        _apply_sections(cfg, data)
    return cfg


def _read_yaml(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if not path or not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, dict):
        return data
    return None


def _apply_sections(cfg: ServerConfig, raw: Dict[str, Any]) -> None:
    field_names = {f.name for f in fields(ServerConfig)}
    for section, mapping in SERVER_SECTION_MAP.items():
        data = raw.get(section)
        if not isinstance(data, dict):
            continue
        for key, attr in mapping.items():
            if key not in data:
                continue
            value = data[key]
            if value is None and attr not in NULLABLE_KEYS:
                continue
            setattr(cfg, attr, value)

    cfg.allowed_sources = _normalize_sources(cfg.allowed_sources)

    for key, value in raw.items():
        if key in SERVER_SECTION_MAP:
            continue
        if key in field_names and value is not None:
            setattr(cfg, key, value)


def _normalize_sources(sources: Any) -> List[str]:
    if not isinstance(sources, (list, tuple)):
        return []
    return [str(item).strip() for item in sources if str(item).strip()]


__all__ = [
    "ServerConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
]
