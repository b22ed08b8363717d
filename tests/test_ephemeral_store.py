import threading
import time

import pytest

from pcm_server.backend.storage.ephemeral import EphemeralSessionStore
from pcm_server.errors import ErrorCode, PcmServerError, SessionNotFoundError

HOUR = 3600.0


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _store(clock: FakeClock, **kwargs) -> EphemeralSessionStore:
    return EphemeralSessionStore(timeout_sec=2 * HOUR, clock=clock, **kwargs)


def test_session_survives_one_hour_and_expires_lazily() -> None:
    clock = FakeClock()
    store = _store(clock)
    try:
        store.create_session("abc", "abc", ["a.mp3", "b.mp3"])

        clock.now += HOUR
        record = store.get_session_metadata("abc")
        assert record.session_id == "abc"
        assert record.source_ids == ["a.mp3", "b.mp3"]
        assert store.validate_session("abc") is True

        clock.now += HOUR + 0.001
        with pytest.raises(SessionNotFoundError):
            store.get_session_metadata("abc")
        assert store.active_count() == 0
        assert store.validate_session("abc") is False
    finally:
        store.stop()


def test_sweep_evicts_expired_records_only() -> None:
    clock = FakeClock()
    store = _store(clock)
    try:
        store.create_session("old", "old", ["a.mp3"])
        clock.now += HOUR
        store.create_session("new", "new", ["b.mp3"])
        clock.now += HOUR + 0.001

        assert store.sweep() == 1
        assert store.active_count() == 1
        assert store.validate_session("new") is True
        assert store.validate_session("old") is False
    finally:
        store.stop()


def test_per_record_timer_deletes_session() -> None:
    store = EphemeralSessionStore(timeout_sec=0.05)
    try:
        store.create_session("short", "short", ["a.mp3"])
        deadline = time.monotonic() + 2.0
        while store.active_count() and time.monotonic() < deadline:
            time.sleep(0.01)
        assert store.active_count() == 0
    finally:
        store.stop()


def test_sweep_thread_start_stop_is_idempotent() -> None:
    clock = FakeClock()
    store = _store(clock, sweep_interval_sec=0.01)
    store.start()
    store.start()
    try:
        assert store.running is True
        store.create_session("s", "s", ["a.mp3"])
        clock.now += 3 * HOUR
        deadline = time.monotonic() + 2.0
        while store.active_count() and time.monotonic() < deadline:
            time.sleep(0.01)
        assert store.active_count() == 0
    finally:
        store.stop()
    assert store.running is False


def test_issued_id_is_never_reused() -> None:
    clock = FakeClock()
    store = _store(clock)
    try:
        store.create_session("dup", "dup", ["a.mp3"])
        with pytest.raises(PcmServerError) as excinfo:
            store.create_session("dup", "dup", ["b.mp3"])
        assert excinfo.value.code is ErrorCode.SESSION_ID_ALREADY_ISSUED

        assert store.delete_session("dup") is True
        with pytest.raises(PcmServerError):
            store.create_session("dup", "dup", ["c.mp3"])

        store.create_session("aged", "aged", ["a.mp3"])
        clock.now += 3 * HOUR
        assert store.sweep() == 1
        with pytest.raises(PcmServerError) as excinfo:
            store.create_session("aged", "aged", ["c.mp3"])
        assert excinfo.value.code is ErrorCode.SESSION_ID_ALREADY_ISSUED
        assert store.active_count() == 0
    finally:
        store.stop()


def test_delete_and_returned_records_are_copies() -> None:
    clock = FakeClock()
    store = _store(clock)
    try:
        store.create_session("s1", "internal", ["a.mp3"])
        record = store.get_session_metadata("s1")
        record.source_ids.append("mutated.mp3")
        assert store.get_session_metadata("s1").source_ids == ["a.mp3"]
        assert store.get_session_metadata("s1").internal_id == "internal"

        assert store.delete_session("s1") is True
        assert store.delete_session("s1") is False
        with pytest.raises(SessionNotFoundError):
            store.get_session_metadata("s1")
    finally:
        store.stop()


def test_concurrent_creates_and_sweeps_are_safe() -> None:
    clock = FakeClock()
    store = _store(clock)
    errors = []

    def worker(offset: int) -> None:
        try:
            for idx in range(50):
                store.create_session(f"w{offset}-{idx}", "x", ["a.mp3"])
                store.sweep()
        except Exception as exc:  # pragma: no cover - surfaced via assertion
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    try:
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert errors == []
        assert store.active_count() == 200
    finally:
        store.stop()
