"""HTTP endpoints for sessions, cache administration, health and metrics."""

import logging
import threading
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from uvicorn.config import LOGGING_CONFIG

from pcm_server.backend.runtime import ApplicationRuntime
from pcm_server.errors import PcmServerError, http_payload_for, http_status_for

_ACCESS_LOG_IGNORED_PATHS = frozenset({"/metrics.json", "/health"})
LOGGER = logging.getLogger("pcm_server.http_server")


class _AccessLogPathFilter(logging.Filter):
    """Filter out noisy access logs for internal endpoints."""

    def __init__(self, ignored_paths: Tuple[str, ...]) -> None:
        super().__init__()
        self._ignored_paths = set(ignored_paths)

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple) and len(record.args) >= 3:
            path = record.args[2]
            if path in self._ignored_paths:
                return False
        return True


def _build_uvicorn_log_config() -> Dict[str, Any]:
    log_config = deepcopy(LOGGING_CONFIG)
    log_config.setdefault("filters", {})
    log_config["filters"]["ignore_internal_endpoints"] = {
        "()": _AccessLogPathFilter,
        "ignored_paths": tuple(sorted(_ACCESS_LOG_IGNORED_PATHS)),
    }
    access_handler = log_config["handlers"].get("access", {})
    access_filters = access_handler.get("filters", [])
    access_handler["filters"] = [*access_filters, "ignore_internal_endpoints"]
    log_config["handlers"]["access"] = access_handler
    return log_config


class CreateSessionRequest(BaseModel):
    """Request body for session creation."""

    source_ids: List[str] = Field(default_factory=list)


class SourceBatchRequest(BaseModel):
    """Request body for cache prewarm/clear."""

    source_ids: List[str] = Field(default_factory=list)


@dataclass
class HttpServerHandle:
    """Handle for the background uvicorn server thread."""

    server: uvicorn.Server
    thread: threading.Thread

    def stop(self, timeout: Optional[float] = None) -> None:
        if self.thread.is_alive():
            self.server.should_exit = True
            self.thread.join(timeout=timeout)


def _client_key(request: Request) -> str:
    client = request.client
    return client.host if client else "unknown"


def build_http_app(runtime: ApplicationRuntime) -> FastAPI:
    """Create the FastAPI app bound to ``runtime``."""
    app = FastAPI(title="pcm-server")
    metrics = runtime.metrics

    @app.exception_handler(PcmServerError)
    async def pcm_error_handler(_request: Request, exc: PcmServerError) -> JSONResponse:
        return JSONResponse(
            http_payload_for(exc.code, exc.detail),
            status_code=http_status_for(exc.code),
        )

    @app.post("/sessions", status_code=201)
    async def create_session_endpoint(
        req: CreateSessionRequest, request: Request
    ) -> Dict[str, Any]:
        created = await runtime.create_session(req.source_ids, _client_key(request))
        return {"session_id": created.session_id, "backend": created.backend.value}

    @app.get("/sessions/{session_id}")
    async def get_session_endpoint(session_id: str) -> Dict[str, Any]:
        record = await runtime.get_session(session_id)
        return record.to_dict()

    @app.get("/sessions/{session_id}/valid")
    async def validate_session_endpoint(session_id: str) -> Dict[str, Any]:
        valid = await runtime.validate_session(session_id)
        return {"session_id": session_id, "valid": valid}

    @app.delete("/sessions/{session_id}", status_code=204)
    async def delete_session_endpoint(session_id: str) -> Response:
        await runtime.delete_session(session_id)
        return Response(status_code=204)

    @app.get("/cache/stats")
    async def cache_stats_endpoint(
        source_ids: List[str] = Query(default=[]),
    ) -> Dict[str, Any]:
        stats = await runtime.cache_stats(source_ids)
        return stats.to_dict()

    @app.post("/cache/prewarm")
    async def cache_prewarm_endpoint(req: SourceBatchRequest) -> Dict[str, Any]:
        report = await runtime.prewarm(req.source_ids)
        return report.to_dict()

    @app.post("/cache/clear")
    async def cache_clear_endpoint(req: SourceBatchRequest) -> Dict[str, Any]:
        deleted = await runtime.clear_cache(req.source_ids)
        return {"deleted": deleted, "count": len(deleted)}

    @app.get("/health")
    def health_endpoint() -> JSONResponse:
        return JSONResponse({"status": "ok", **runtime.health_snapshot()}, status_code=200)

    @app.get("/metrics.json")
    def metrics_json_endpoint() -> JSONResponse:
        return JSONResponse(metrics.render(), status_code=200)

    return app


def start_http_server(runtime: ApplicationRuntime, host: str, port: int) -> HttpServerHandle:
    """Start the FastAPI app in a background thread."""
    app = build_http_app(runtime)
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        log_config=_build_uvicorn_log_config(),
    )
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="http-server", daemon=True)
    thread.start()
    LOGGER.info("HTTP server listening on %s:%d", host, port)
    return HttpServerHandle(server=server, thread=thread)
