"""Centralized error codes and status mappings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced to clients and logs."""

    # session (ERR100x)
    SESSION_NOT_FOUND = "ERR1001"
    SESSION_ID_INVALID = "ERR1002"
    SESSION_ID_ALREADY_ISSUED = "ERR1003"
    SOURCE_IDS_REQUIRED = "ERR1004"
    SOURCE_NOT_ALLOWED = "ERR1005"
    SESSION_RATE_LIMITED = "ERR1006"

    # cache (ERR200x)
    DECODE_FAILED = "ERR2001"
    CACHE_STORE_UNAVAILABLE = "ERR2002"
    SOURCE_NOT_FOUND = "ERR2003"

    # backend (ERR300x)
    BACKEND_UNAVAILABLE = "ERR3001"


@dataclass(frozen=True)
class ErrorSpec:
    """Maps an error code to an HTTP status and default message."""

    code: ErrorCode
    http_status: int
    message: str


ERROR_SPECS: Final[dict[ErrorCode, ErrorSpec]] = {
    ErrorCode.SESSION_NOT_FOUND: ErrorSpec(
        ErrorCode.SESSION_NOT_FOUND,
        404,
        "Session not found or expired",
    ),
    ErrorCode.SESSION_ID_INVALID: ErrorSpec(
        ErrorCode.SESSION_ID_INVALID,
        400,
        "Malformed session identifier",
    ),
    ErrorCode.SESSION_ID_ALREADY_ISSUED: ErrorSpec(
        ErrorCode.SESSION_ID_ALREADY_ISSUED,
        409,
        "session_id already issued",
    ),
    ErrorCode.SOURCE_IDS_REQUIRED: ErrorSpec(
        ErrorCode.SOURCE_IDS_REQUIRED,
        400,
        "At least one source id is required",
    ),
    ErrorCode.SOURCE_NOT_ALLOWED: ErrorSpec(
        ErrorCode.SOURCE_NOT_ALLOWED,
        404,
        "One or more requested audio sources are not available",
    ),
    ErrorCode.SESSION_RATE_LIMITED: ErrorSpec(
        ErrorCode.SESSION_RATE_LIMITED,
        429,
        "Too many session requests, try again later",
    ),
    ErrorCode.DECODE_FAILED: ErrorSpec(
        ErrorCode.DECODE_FAILED,
        422,
        "Source bytes are not decodable audio",
    ),
    ErrorCode.CACHE_STORE_UNAVAILABLE: ErrorSpec(
        ErrorCode.CACHE_STORE_UNAVAILABLE,
        503,
        "PCM cache store is not configured",
    ),
    ErrorCode.SOURCE_NOT_FOUND: ErrorSpec(
        ErrorCode.SOURCE_NOT_FOUND,
        404,
        "Audio source not found",
    ),
    ErrorCode.BACKEND_UNAVAILABLE: ErrorSpec(
        ErrorCode.BACKEND_UNAVAILABLE,
        503,
        "Session backend unavailable",
    ),
}


def http_status_for(code: ErrorCode) -> int:
    """Return the HTTP status associated with an error code."""
    return ERROR_SPECS[code].http_status


def format_error(code: ErrorCode, detail: Optional[str] = None) -> str:
    """Format an error code and optional detail into a message."""
    spec = ERROR_SPECS[code]
    message = detail if detail else spec.message
    return f"{spec.code.value} {message}"


def http_payload_for(code: ErrorCode, detail: Optional[str] = None) -> dict[str, str]:
    """Build an HTTP error payload for a given error code."""
    spec = ERROR_SPECS[code]
    message = detail if detail else spec.message
    return {"code": spec.code.value, "message": message}


class PcmServerError(RuntimeError):
    """Raised for application-defined errors with status metadata."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None) -> None:
        """Create an error with formatted message and status metadata."""
        self.code = code
        self.http_status = http_status_for(code)
        self.detail = detail or ERROR_SPECS[code].message
        super().__init__(format_error(code, detail))


class SessionNotFoundError(PcmServerError):
    """No live session exists for the identifier (unknown or expired)."""

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.SESSION_NOT_FOUND, detail)


class InvalidSessionIdError(PcmServerError):
    """The identifier is malformed; a client bug rather than an expiry."""

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.SESSION_ID_INVALID, detail)


class DecodeError(PcmServerError):
    """Source bytes could not be decoded into audio samples."""

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.DECODE_FAILED, detail)


class BackendUnavailableError(PcmServerError):
    """A store or actor call failed for reasons outside the request."""

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.BACKEND_UNAVAILABLE, detail)


__all__ = [
    "BackendUnavailableError",
    "DecodeError",
    "ErrorCode",
    "ErrorSpec",
    "ERROR_SPECS",
    "InvalidSessionIdError",
    "PcmServerError",
    "SessionNotFoundError",
    "format_error",
    "http_payload_for",
    "http_status_for",
]
