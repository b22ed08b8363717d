import argparse
import asyncio
import json
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from pcm_server.backend.runtime import ApplicationRuntime
from pcm_server.backend.transport import start_http_server
from pcm_server.config import DEFAULT_CONFIG_PATH, ServerConfig, load_config
from pcm_server.errors import PcmServerError, format_error
from pcm_server.utils.logger import LOGGER, configure_logging, stop_logging


def serve(config: ServerConfig, stop_event: Optional[threading.Event] = None) -> None:
    """Launch the HTTP server and block until interrupted."""
    runtime = ApplicationRuntime(config)
    runtime.start()
    handle = start_http_server(runtime, host=config.host, port=config.port)
    LOGGER.info(
        "PCM server started on %s:%s (cache=%s, backend=%s)",
        config.host,
        config.port,
        "on" if config.cache_enabled else "off",
        runtime.health_snapshot()["session_backend"],
    )
    stop_event = stop_event or threading.Event()
    try:
        while not stop_event.wait(1.0):
            if not handle.thread.is_alive():
                LOGGER.error("HTTP server thread exited unexpectedly")
                break
    except KeyboardInterrupt:
        LOGGER.info("Shutdown requested")
    finally:
        handle.stop(timeout=5.0)
        runtime.shutdown()


def run_cache_command(
    config: ServerConfig, command: str, source_ids: Sequence[str]
) -> Dict[str, Any]:
    """Run a one-shot cache command and return its JSON-ready result."""
    runtime = ApplicationRuntime(config)

    async def _run() -> Dict[str, Any]:
        if command == "prewarm":
            report = await runtime.prewarm(source_ids)
            return report.to_dict()
        if command == "stats":
            stats = await runtime.cache_stats(source_ids)
            return stats.to_dict()
        if command == "clear":
            deleted = await runtime.clear_cache(source_ids)
            return {"deleted": deleted, "count": len(deleted)}
        raise ValueError(f"unknown cache command: {command}")

    return asyncio.run(_run())


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Decoded PCM cache and session server")
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to YAML config (default search: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", default=None, help="Host interface to bind")
    parser.add_argument("--port", type=int, default=None, help="Port to bind")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO); overrides config",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path; overrides config",
    )
    parser.add_argument(
        "--no-cache",
        dest="cache_enabled",
        action="store_false",
        help="Disable the PCM cache and pass original audio through",
    )
    parser.add_argument(
        "--force-regenerate",
        dest="force_regenerate",
        action="store_true",
        help="Ignore cached PCM and decode every source again",
    )
    parser.add_argument(
        "--dev-build",
        dest="dev_build",
        action="store_true",
        help="Treat this process as a development build (ephemeral sessions)",
    )
    parser.set_defaults(cache_enabled=None, force_regenerate=None, dev_build=None)

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the HTTP server (default)")
    for name, help_text in (
        ("prewarm", "Decode and cache the given sources"),
        ("stats", "Report how many of the given sources are cached"),
        ("clear", "Delete cached PCM for the given sources"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("source_ids", nargs="+", help="Source object keys")
    return parser.parse_args(argv)


def configure_from_args(args: argparse.Namespace) -> ServerConfig:
    config_arg_path = Path(args.config).expanduser() if args.config else None
    effective_config_path = config_arg_path or DEFAULT_CONFIG_PATH
    config = load_config(effective_config_path)

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file
    if args.cache_enabled is not None:
        config.cache_enabled = args.cache_enabled
    if args.force_regenerate is not None:
        config.cache_force_regenerate = args.force_regenerate
    if args.dev_build is not None:
        config.dev_build = args.dev_build

    configure_logging(config.log_level, config.log_file)
    if effective_config_path.exists():
        LOGGER.info("Loaded server config from %s", effective_config_path)
    else:
        LOGGER.info(
            "Server config file not found at %s; using defaults/CLI overrides",
            effective_config_path,
        )
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    config = configure_from_args(args)
    command = args.command or "serve"
    try:
        if command == "serve":
            serve(config)
            return 0
        try:
            result = run_cache_command(config, command, args.source_ids)
        except PcmServerError as exc:
            LOGGER.error(format_error(exc.code, exc.detail))
            return 1
        print(json.dumps(result, indent=2, sort_keys=True))
        return 0
    finally:
        stop_logging()


if __name__ == "__main__":
    raise SystemExit(main())
