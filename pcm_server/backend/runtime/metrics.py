import threading
from collections import defaultdict
from typing import Any, Dict


class Metrics:
    """Thread-safe in-process counters rendered at ``/metrics.json``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cache_outcomes: Dict[str, int] = defaultdict(int)
        self._write_success = 0
        self._write_failure = 0
        self._decode_count = 0
        self._decode_total = 0.0
        self._decode_max = 0.0
        self._sessions_created: Dict[str, int] = defaultdict(int)
        self._session_errors: Dict[str, int] = defaultdict(int)
        self._rate_limit_blocks = 0

    def record_cache_outcome(self, outcome: str) -> None:
        with self._lock:
            self._cache_outcomes[outcome] += 1

    def record_write_back(self, success: bool) -> None:
        with self._lock:
            if success:
                self._write_success += 1
            else:
                self._write_failure += 1

    def record_decode(self, latency_sec: float) -> None:
        with self._lock:
            self._decode_count += 1
            self._decode_total += latency_sec
            self._decode_max = max(self._decode_max, latency_sec)

    def record_session_created(self, backend: str) -> None:
        with self._lock:
            self._sessions_created[backend] += 1

    def record_session_error(self, code: str) -> None:
        with self._lock:
            self._session_errors[code] += 1

    def record_rate_limit_block(self) -> None:
        with self._lock:
            self._rate_limit_blocks += 1

    def render(self) -> Dict[str, Any]:
        with self._lock:
            decode_avg = (
                (self._decode_total / self._decode_count) if self._decode_count else 0.0
            )
            return {
                "cache_outcomes": dict(self._cache_outcomes),
                "cache_write_success": self._write_success,
                "cache_write_failure": self._write_failure,
                "decode_count": self._decode_count,
                "decode_latency_total": self._decode_total,
                "decode_latency_avg": decode_avg,
                "decode_latency_max": self._decode_max,
                "sessions_created": dict(self._sessions_created),
                "session_errors": dict(self._session_errors),
                "rate_limit_blocks": self._rate_limit_blocks,
            }
