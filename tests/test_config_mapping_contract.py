"""Config mapping contract tests for YAML/CLI -> ServerConfig."""

from dataclasses import fields

import yaml

from pcm_server.config.default import NULLABLE_KEYS, SERVER_SECTION_MAP
from pcm_server.config.loader import DEFAULT_CONFIG_PATH, ServerConfig, load_config
from pcm_server.main import configure_from_args, parse_args
from pcm_server.utils.logger import stop_logging


def test_section_maps_target_valid_server_config_fields() -> None:
    """All section-map targets must resolve to real ServerConfig fields."""
    field_names = {f.name for f in fields(ServerConfig)}

    for _section, mapping in SERVER_SECTION_MAP.items():
        for _yaml_key, target_field in mapping.items():
            assert target_field in field_names
    assert NULLABLE_KEYS <= field_names


def test_bundled_yaml_matches_defaults() -> None:
    assert DEFAULT_CONFIG_PATH.exists()
    loaded = load_config(DEFAULT_CONFIG_PATH)
    assert loaded == ServerConfig()


def test_missing_file_falls_back_to_defaults(tmp_path) -> None:
    loaded = load_config(tmp_path / "absent.yaml")
    assert loaded.port == 8080
    assert loaded.cache_prefix == "pcm-cache/"
    assert loaded.decode_sample_rate == 44100
    assert loaded.session_timeout_sec == 7200
    assert loaded.session_sweep_interval_sec == 300
    assert loaded.durable_session_dir is None


def test_yaml_and_cli_overrides_map_into_server_config(tmp_path, monkeypatch) -> None:
    """YAML values should load, and CLI flags should override selected fields."""
    server_yaml = tmp_path / "server.yaml"
    server_yaml.write_text(
        yaml.safe_dump(
            {
                "server": {"host": "127.0.0.1", "port": 9001},
                "cache": {"prefix": "decoded/", "store_dir": None, "sample_rate": 0},
                "sources": {"allowed": ["a.mp3", " ", "b.mp3 "]},
                "sessions": {
                    "timeout_sec": 60,
                    "durable_dir": str(tmp_path / "actors"),
                    "rate_limit_count": 2,
                },
                "logging": {"level": None},
            }
        ),
        encoding="utf-8",
    )

    loaded = load_config(server_yaml)
    assert loaded.host == "127.0.0.1"
    assert loaded.port == 9001
    assert loaded.cache_prefix == "decoded/"
    assert loaded.cache_store_dir is None
    assert loaded.decode_sample_rate == 0
    assert loaded.allowed_sources == ["a.mp3", "b.mp3"]
    assert loaded.session_timeout_sec == 60
    assert loaded.durable_session_dir == str(tmp_path / "actors")
    assert loaded.session_rate_limit_count == 2
    # null for a non-nullable key keeps the default
    assert loaded.log_level == "INFO"

    monkeypatch.setattr(
        "sys.argv",
        [
            "pcm_server.main",
            "--config",
            str(server_yaml),
            "--port",
            "9100",
            "--log-level",
            "DEBUG",
            "--no-cache",
            "--force-regenerate",
            "--dev-build",
        ],
    )
    args = parse_args()
    try:
        configured = configure_from_args(args)
    finally:
        stop_logging()

    assert args.command is None
    assert configured.port == 9100
    assert configured.log_level == "DEBUG"
    assert configured.cache_enabled is False
    assert configured.cache_force_regenerate is True
    assert configured.dev_build is True

    # Non-overridden YAML fields should remain intact.
    assert configured.host == "127.0.0.1"
    assert configured.cache_prefix == "decoded/"


def test_cli_defaults_leave_yaml_values(tmp_path) -> None:
    server_yaml = tmp_path / "server.yaml"
    server_yaml.write_text(
        yaml.safe_dump({"cache": {"enabled": False}, "sessions": {"dev_build": True}}),
        encoding="utf-8",
    )

    args = parse_args(["--config", str(server_yaml), "stats", "a.mp3", "b.mp3"])
    try:
        configured = configure_from_args(args)
    finally:
        stop_logging()

    assert args.command == "stats"
    assert args.source_ids == ["a.mp3", "b.mp3"]
    assert configured.cache_enabled is False
    assert configured.dev_build is True
