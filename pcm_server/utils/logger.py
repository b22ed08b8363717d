import contextvars
import logging
import logging.handlers
import queue
from pathlib import Path
from typing import List, Optional

_SESSION_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "pcm_server_session_id", default=None
)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s session_id=%(session_id)s: %(message)s"

LOG_QUEUE: "queue.Queue[logging.LogRecord]" = queue.Queue()
QUEUE_LISTENER: Optional[logging.handlers.QueueListener] = None
_QUEUE_HANDLER: Optional[logging.handlers.QueueHandler] = None


class SessionContextFilter(logging.Filter):
    """Stamp records with the session id bound to the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = _SESSION_ID.get() or "-"
        return True


def set_session_id(session_id: Optional[str]) -> None:
    """Bind a session id to log records emitted from this context."""
    _SESSION_ID.set(session_id or None)


def clear_session_id() -> None:
    _SESSION_ID.set(None)


def configure_logging(level: str, log_file: Optional[str]) -> None:
    """Configure root logging with queue-based handlers."""
    global QUEUE_LISTENER, _QUEUE_HANDLER
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT)

    handlers: List[logging.Handler] = []
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # The filter runs on the emitting thread so the context var is still bound.
    queue_handler = logging.handlers.QueueHandler(LOG_QUEUE)
    queue_handler.addFilter(SessionContextFilter())
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(queue_handler)
    _QUEUE_HANDLER = queue_handler

    if QUEUE_LISTENER:
        QUEUE_LISTENER.stop()
    QUEUE_LISTENER = logging.handlers.QueueListener(
        LOG_QUEUE, *handlers, respect_handler_level=True
    )
    QUEUE_LISTENER.start()


def stop_logging() -> None:
    """Detach the queue handler, then flush and stop the listener."""
    global QUEUE_LISTENER, _QUEUE_HANDLER
    if _QUEUE_HANDLER is not None:
        logging.getLogger().removeHandler(_QUEUE_HANDLER)
        _QUEUE_HANDLER = None
    if QUEUE_LISTENER:
        QUEUE_LISTENER.stop()
        for handler in QUEUE_LISTENER.handlers:
            handler.close()
        QUEUE_LISTENER = None


LOGGER = logging.getLogger("pcm_server")

__all__ = [
    "configure_logging",
    "clear_session_id",
    "set_session_id",
    "stop_logging",
    "LOGGER",
    "LOG_FORMAT",
]
