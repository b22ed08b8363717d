"""Transport layer for the PCM cache server."""

from .http_server import HttpServerHandle, build_http_app, start_http_server

__all__ = [
    "HttpServerHandle",
    "build_http_app",
    "start_http_server",
]
