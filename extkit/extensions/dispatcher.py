"""Trigger Dispatcher: pending lazy extensions keyed by trigger kind and key.

A fired trigger claims its pending extensions under the lock and removes them from
every other table before any activation runs, so each extension is handed to the
activation callback at most once no matter how many triggers race for it.
"""

import bisect
import logging
import threading
from typing import Any, Callable

from extkit.extensions.contract import ActivationResult, Extension, TriggerKind
from extkit.extensions.timers import Scheduler, TimerHandle, thread_timer

logger = logging.getLogger(__name__)

ActivateFn = Callable[[Extension, str], ActivationResult]


class TriggerDispatcher:
    """Per-kind listener tables for lazy extensions."""

    def __init__(
        self,
        activate: ActivateFn,
        schedule: Scheduler = thread_timer,
        fallback_delay_ms: int | None = 2000,
    ) -> None:
        self._activate = activate
        self._schedule = schedule
        self._fallback_delay_ms = fallback_delay_ms
        self._tables: dict[TriggerKind, dict[str, list[Extension]]] = {
            kind: {} for kind in TriggerKind
        }
        self._timers: dict[str, TimerHandle] = {}
        self._lock = threading.Lock()

    def register_lazy(self, ext: Extension) -> None:
        """Add ext to the pending list of each declared trigger; arm its elapsed-time timer."""
        keyed = ext.triggers.keyed()
        delay_ms = ext.triggers.lazy_delay_ms
        if delay_ms is None and not keyed:
            delay_ms = self._fallback_delay_ms
        with self._lock:
            for kind, key in keyed:
                self._insert(self._tables[kind].setdefault(key, []), ext)
            if delay_ms is not None:
                self._tables[TriggerKind.ELAPSED][ext.name] = [ext]
        if delay_ms is None and not keyed:
            logger.debug("%s is lazy with no triggers; waiting for explicit activation", ext.name)
        if delay_ms is not None:
            self._arm_timer(ext.name, delay_ms)
        logger.debug("Registered lazy extension %s: %s", ext.name, ext.triggers)

    @staticmethod
    def _insert(pending: list[Extension], ext: Extension) -> None:
        if ext in pending:
            return
        seqs = [e.seq for e in pending]
        pending.insert(bisect.bisect_right(seqs, ext.seq), ext)

    def _arm_timer(self, name: str, delay_ms: int) -> None:
        handle = self._schedule(
            delay_ms / 1000, lambda: self.fire(TriggerKind.ELAPSED, name)
        )
        with self._lock:
            still_pending = name in self._tables[TriggerKind.ELAPSED]
            if still_pending:
                self._timers[name] = handle
        if not still_pending:
            handle.cancel()

    def fire(
        self, kind: TriggerKind | str, key: str, payload: Any = None
    ) -> list[ActivationResult]:
        """Activate every extension pending on (kind, key) in registration order.

        The trigger is consumed whatever the outcome; failed extensions are not re-queued.
        Unknown kinds and keys are no-ops.
        """
        parsed = TriggerKind.parse(kind)
        if parsed is None:
            logger.debug("Ignoring trigger of unknown kind %r", kind)
            return []
        timers: list[TimerHandle] = []
        with self._lock:
            claimed = self._tables[parsed].pop(key, None)
            if not claimed:
                return []
            for ext in claimed:
                timers.extend(self._purge_locked(ext.name))
        for timer in timers:
            timer.cancel()
        trigger = f"{parsed.value}:{key}"
        logger.debug("Trigger %s fired for %s (payload=%r)", trigger, [e.name for e in claimed], payload)
        return [self._activate(ext, trigger) for ext in claimed]

    def _purge_locked(self, name: str) -> list[TimerHandle]:
        for table in self._tables.values():
            for key in list(table):
                remaining = [e for e in table[key] if e.name != name]
                if remaining:
                    table[key] = remaining
                else:
                    del table[key]
        timer = self._timers.pop(name, None)
        return [timer] if timer is not None else []

    def unregister(self, name: str) -> bool:
        """Drop name from every listener table and cancel its timer."""
        with self._lock:
            was_pending = self._is_pending_locked(name)
            timers = self._purge_locked(name)
        for timer in timers:
            timer.cancel()
        return was_pending

    def _is_pending_locked(self, name: str) -> bool:
        return any(
            e.name == name
            for table in self._tables.values()
            for pending in table.values()
            for e in pending
        )

    def is_pending(self, name: str) -> bool:
        with self._lock:
            return self._is_pending_locked(name)

    def pending(self) -> dict[str, dict[str, list[str]]]:
        """Snapshot: {kind: {key: [names in activation order]}}."""
        with self._lock:
            return {
                kind.value: {key: [e.name for e in exts] for key, exts in table.items()}
                for kind, table in self._tables.items()
                if table
            }

    def cancel_all(self) -> None:
        """Cancel every timer and drop all pending listeners."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            for table in self._tables.values():
                table.clear()
        for timer in timers:
            timer.cancel()
