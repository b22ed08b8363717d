"""In-process session table for development deployments.

Records expire ``timeout_sec`` after creation through three independent
paths: a one-shot timer per record, an age check on every lookup, and a
periodic sweep thread started with :meth:`EphemeralSessionStore.start`.
"""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Set

from pcm_server.backend.storage.types import SessionRecord
from pcm_server.config.default import (
    DEFAULT_SESSION_SWEEP_INTERVAL_SEC,
    DEFAULT_SESSION_TIMEOUT_SEC,
)
from pcm_server.errors import ErrorCode, PcmServerError, SessionNotFoundError
from pcm_server.utils.logger import LOGGER


class EphemeralSessionStore:
    """Thread-safe identifier → SessionRecord table with timed expiry."""

    def __init__(
        self,
        timeout_sec: float = DEFAULT_SESSION_TIMEOUT_SEC,
        sweep_interval_sec: float = DEFAULT_SESSION_SWEEP_INTERVAL_SEC,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._timeout_sec = float(timeout_sec)
        self._sweep_interval_sec = max(0.01, float(sweep_interval_sec))
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionRecord] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._issued: Set[str] = set()
        self._stop = threading.Event()
        self._sweep_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the periodic sweep thread (idempotent)."""
        with self._lock:
            if self._sweep_thread and self._sweep_thread.is_alive():
                return
            self._stop.clear()
            self._sweep_thread = threading.Thread(
                target=self._sweep_loop, name="ephemeral-session-sweep", daemon=True
            )
            self._sweep_thread.start()
        LOGGER.info(
            "Ephemeral session sweep started interval=%.0fs timeout=%.0fs",
            self._sweep_interval_sec,
            self._timeout_sec,
        )

    def stop(self) -> None:
        """Stop the sweep thread and cancel pending per-record timers."""
        self._stop.set()
        thread = self._sweep_thread
        if thread:
            thread.join(timeout=1.0)
        with self._lock:
            self._sweep_thread = None
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    @property
    def running(self) -> bool:
        thread = self._sweep_thread
        return bool(thread and thread.is_alive())

    def create_session(
        self, session_id: str, internal_id: str, source_ids: Sequence[str]
    ) -> SessionRecord:
        """Insert a record keyed by ``session_id`` and schedule its deletion.

        An identifier is issued at most once for the lifetime of the store;
        it stays taken after the record is deleted or expires.
        """
        now = self._clock()
        record = SessionRecord(
            session_id=session_id,
            source_ids=list(source_ids),
            created_at=now,
            internal_id=internal_id,
            last_accessed_at=now,
        )
        timer = threading.Timer(self._timeout_sec, self._expire, args=(session_id,))
        timer.daemon = True
        with self._lock:
            if session_id in self._issued:
                raise PcmServerError(ErrorCode.SESSION_ID_ALREADY_ISSUED)
            self._issued.add(session_id)
            self._sessions[session_id] = record
            self._timers[session_id] = timer
        timer.start()
        LOGGER.info(
            "Created ephemeral session %s (internal: %s) sources=%d",
            session_id,
            internal_id,
            len(record.source_ids),
        )
        return record

    def get_session_metadata(self, session_id: str) -> SessionRecord:
        """Return the record, evicting it first when it has aged out."""
        now = self._clock()
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                raise SessionNotFoundError()
            if self._is_expired(record, now):
                self._evict_locked(session_id)
                raise SessionNotFoundError("Session expired")
            record.last_accessed_at = now
            return replace(record, source_ids=list(record.source_ids))

    def validate_session(self, session_id: str) -> bool:
        try:
            self.get_session_metadata(session_id)
        except SessionNotFoundError:
            return False
        return True

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            removed = self._evict_locked(session_id)
        if removed:
            LOGGER.info("Deleted ephemeral session %s", session_id)
        return removed

    def sweep(self) -> int:
        """Evict every expired record; returns the number removed."""
        now = self._clock()
        with self._lock:
            expired: List[str] = [
                session_id
                for session_id, record in self._sessions.items()
                if self._is_expired(record, now)
            ]
            for session_id in expired:
                self._evict_locked(session_id)
        if expired:
            LOGGER.info("Cleaned up %d expired ephemeral sessions", len(expired))
        return len(expired)

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _is_expired(self, record: SessionRecord, now: float) -> bool:
        return record.age(now) > self._timeout_sec

    def _evict_locked(self, session_id: str) -> bool:
        record = self._sessions.pop(session_id, None)
        timer = self._timers.pop(session_id, None)
        if timer:
            timer.cancel()
        return record is not None

    def _expire(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                return
            self._timers.pop(session_id, None)
        LOGGER.info("Auto-expired ephemeral session %s", session_id)

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._sweep_interval_sec):
            self.sweep()


__all__ = ["EphemeralSessionStore"]
