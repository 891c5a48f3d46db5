"""Tests for StateCache: load/corruption, unknown fields, debounced flush."""

import json
import threading
from pathlib import Path

import pytest

from extkit.extensions.cache import StateCache
from extkit.extensions.contract import CacheRecord

from tests.fakes import FakeScheduler


def _record(state: str = "active", at: int = 1000, duration: float = 1.5) -> CacheRecord:
    return CacheRecord(last_activated_at_ms=at, activation_duration_ms=duration, last_state=state)


class TestLoad:
    """Reading the cache file."""

    def test_missing_file_is_empty(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        cache = StateCache(tmp_path / "cache.json", schedule=scheduler, flush_on_exit=False)
        assert len(cache) == 0
        assert cache.get("x") is None

    def test_corrupt_file_is_empty(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "cache.json"
        path.write_text("{not json", encoding="utf-8")
        cache = StateCache(path, schedule=scheduler, flush_on_exit=False)
        assert len(cache) == 0

    def test_wrong_layout_is_empty(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "cache.json"
        path.write_text('{"extensions": [1, 2]}', encoding="utf-8")
        assert len(StateCache(path, schedule=scheduler, flush_on_exit=False)) == 0

    def test_reads_records(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "cache.json"
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "extensions": {
                        "a": {"last_activated_at_ms": 5, "activation_duration_ms": 2.0, "last_state": "failed"}
                    },
                }
            ),
            encoding="utf-8",
        )
        cache = StateCache(path, schedule=scheduler, flush_on_exit=False)
        assert cache.get("a") == CacheRecord(5, 2.0, "failed")
        assert set(cache.records()) == {"a"}


class TestWrite:
    """Dirty tracking, debounce and persistence."""

    def test_set_arms_single_timer(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        cache = StateCache(tmp_path / "c.json", flush_interval=30, schedule=scheduler, flush_on_exit=False)
        cache.set("a", _record())
        cache.set("b", _record())
        assert cache.dirty
        assert [t.delay for t in scheduler.timers] == [30]

    def test_timer_flushes(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "sub" / "c.json"
        cache = StateCache(path, schedule=scheduler, flush_on_exit=False)
        cache.set("a", _record())
        scheduler.run_all()
        assert not cache.dirty
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["version"] == 1
        assert data["extensions"]["a"]["last_state"] == "active"
        assert not path.with_name("c.json.tmp").exists()

        cache.set("b", _record())
        assert len(scheduler.timers) == 2

    def test_flush_when_clean_writes_nothing(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "c.json"
        cache = StateCache(path, schedule=scheduler, flush_on_exit=False)
        assert cache.flush() is False
        assert not path.exists()

    def test_close_cancels_timer_and_flushes(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "c.json"
        cache = StateCache(path, schedule=scheduler)
        cache.set("a", _record())
        cache.close()
        assert scheduler.timers[0].cancelled
        assert path.exists()
        cache.close()

    def test_unknown_fields_preserved(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "c.json"
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "host": "kept",
                    "extensions": {"a": {"last_state": "active", "note": "mine"}},
                }
            ),
            encoding="utf-8",
        )
        cache = StateCache(path, schedule=scheduler, flush_on_exit=False)
        cache.set("a", _record(state="failed"))
        cache.flush()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["host"] == "kept"
        assert data["extensions"]["a"]["note"] == "mine"
        assert data["extensions"]["a"]["last_state"] == "failed"

    def test_remove(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        path = tmp_path / "c.json"
        cache = StateCache(path, schedule=scheduler, flush_on_exit=False)
        cache.set("a", _record())
        cache.flush()
        cache.remove("a")
        cache.remove("never-there")
        cache.flush()
        assert json.loads(path.read_text(encoding="utf-8"))["extensions"] == {}

    def test_write_error_keeps_dirty(self, tmp_path: Path, scheduler: FakeScheduler) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        cache = StateCache(blocker / "c.json", schedule=scheduler, flush_on_exit=False)
        cache.set("a", _record())
        assert cache.flush() is False
        assert cache.dirty

    def test_memory_only(self, scheduler: FakeScheduler) -> None:
        cache = StateCache(None, schedule=scheduler)
        cache.set("a", _record())
        assert scheduler.timers == []
        assert cache.flush() is False
        assert cache.get("a") is not None

    def test_stats(self, scheduler: FakeScheduler) -> None:
        cache = StateCache(None, schedule=scheduler)
        cache.set("a", _record())
        stats = cache.stats()
        assert stats["extension_count"] == 1
        assert stats["size"] > 0

    def test_concurrent_flushes_write_newest_last(
        self, tmp_path: Path, scheduler: FakeScheduler, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "c.json"
        cache = StateCache(path, schedule=scheduler, flush_on_exit=False)
        entered, release = threading.Event(), threading.Event()
        written: list[list[str]] = []

        def slow_write(p: Path, payload: dict) -> None:
            written.append(sorted(payload["extensions"]))
            if len(written) == 1:
                entered.set()
                release.wait(5)
            StateCache._write(p, payload)

        monkeypatch.setattr(cache, "_write", slow_write)
        cache.set("a", _record())
        first = threading.Thread(target=cache.flush)
        first.start()
        assert entered.wait(5)
        cache.set("b", _record())
        second = threading.Thread(target=cache.flush)
        second.start()
        release.set()
        first.join(5)
        second.join(5)

        assert written == [["a"], ["a", "b"]]
        assert set(json.loads(path.read_text(encoding="utf-8"))["extensions"]) == {"a", "b"}
        assert not cache.dirty
