"""State Cache: persisted per-extension activation facts.

Reporting only. Nothing here gates an activation decision, so a corrupt or
missing file just means an empty cache.
"""

import atexit
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from extkit.extensions.contract import CacheRecord
from extkit.extensions.timers import Scheduler, TimerHandle, thread_timer

logger = logging.getLogger(__name__)

_FORMAT_VERSION = 1


class StateCache:
    """JSON-backed record per extension name with debounced auto-flush.

    Unknown fields, per record or at the top level, are kept and written back.
    With path=None the cache lives in memory only.
    """

    def __init__(
        self,
        path: Path | None,
        flush_interval: float = 60.0,
        schedule: Scheduler = thread_timer,
        flush_on_exit: bool = True,
    ) -> None:
        self._path = path
        self._flush_interval = flush_interval
        self._schedule = schedule
        self._records: dict[str, dict[str, Any]] = {}
        self._extra: dict[str, Any] = {}
        self._dirty = False
        self._timer: TimerHandle | None = None
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._flush_on_exit = flush_on_exit and path is not None
        self._load()
        if self._flush_on_exit:
            atexit.register(self.close)

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to read cache %s, starting empty: %s", self._path, e)
            return
        if not isinstance(data, dict) or not isinstance(data.get("extensions", {}), dict):
            logger.warning("Unexpected cache layout in %s, starting empty", self._path)
            return
        self._records = {
            name: record
            for name, record in data.get("extensions", {}).items()
            if isinstance(record, dict)
        }
        self._extra = {k: v for k, v in data.items() if k not in ("version", "extensions")}
        logger.debug("Loaded %d cache records from %s", len(self._records), self._path)

    def get(self, name: str) -> CacheRecord | None:
        with self._lock:
            record = self._records.get(name)
        return CacheRecord.from_dict(record) if record is not None else None

    def records(self) -> dict[str, CacheRecord]:
        with self._lock:
            raw = dict(self._records)
        return {name: CacheRecord.from_dict(r) for name, r in raw.items()}

    def set(self, name: str, record: CacheRecord) -> None:
        with self._lock:
            merged = dict(self._records.get(name, {}))
            merged.update(record.to_dict())
            self._records[name] = merged
            self._mark_dirty()

    def remove(self, name: str) -> None:
        with self._lock:
            if self._records.pop(name, None) is not None:
                self._mark_dirty()

    def _mark_dirty(self) -> None:
        # Caller holds self._lock. One timer per dirty period.
        self._dirty = True
        if self._path is not None and self._timer is None:
            self._timer = self._schedule(self._flush_interval, self._auto_flush)

    def _auto_flush(self) -> None:
        with self._lock:
            self._timer = None
        self.flush()

    def flush(self) -> bool:
        """Persist if dirty. Returns True when a file was written.

        The snapshot is taken inside the write critical section, so concurrent
        flushes land on disk in snapshot order and the newest state is written last.
        """
        path = self._path
        if path is None:
            with self._lock:
                self._dirty = False
            return False
        with self._write_lock:
            with self._lock:
                if not self._dirty:
                    return False
                self._dirty = False
                payload = {
                    **self._extra,
                    "version": _FORMAT_VERSION,
                    "extensions": {k: dict(v) for k, v in self._records.items()},
                }
            try:
                self._write(path, payload)
            except (OSError, TypeError, ValueError) as e:
                logger.exception("Failed to write cache %s: %s", path, e)
                with self._lock:
                    self._dirty = True
                return False
        logger.debug("Cache flushed to %s", path)
        return True

    @staticmethod
    def _write(path: Path, payload: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, path)

    def close(self) -> None:
        """Cancel the pending auto-flush and flush now. Safe to call more than once."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self.flush()
        if self._flush_on_exit:
            atexit.unregister(self.close)
            self._flush_on_exit = False

    def stats(self) -> dict[str, int]:
        with self._lock:
            records = dict(self._records)
        return {
            "extension_count": len(records),
            "size": len(json.dumps(records, default=str)),
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
