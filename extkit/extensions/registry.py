"""Registry: authoritative map of known extensions by name."""

import logging
import threading
from typing import Callable, Iterator

from extkit.extensions.contract import Extension

logger = logging.getLogger(__name__)


class Registry:
    """Owns extension identity and existence. Insertion order is registration order."""

    def __init__(self, on_remove: list[Callable[[Extension], None]] | None = None) -> None:
        self._extensions: dict[str, Extension] = {}
        self._on_remove: list[Callable[[Extension], None]] = list(on_remove or [])
        self._next_seq = 0
        self._lock = threading.Lock()

    def add_remove_listener(self, listener: Callable[[Extension], None]) -> None:
        """Called with the removed entry after a known extension is removed."""
        self._on_remove.append(listener)

    def add(self, ext: Extension) -> bool:
        """Insert ext. An existing name is kept unchanged and False is returned."""
        return self._insert(ext)[1]

    def setdefault(self, ext: Extension) -> Extension:
        """Insert ext unless its name is taken; return the stored entry either way."""
        return self._insert(ext)[0]

    def _insert(self, ext: Extension) -> tuple[Extension, bool]:
        with self._lock:
            existing = self._extensions.get(ext.name)
            if existing is None:
                ext.seq = self._next_seq
                self._next_seq += 1
                self._extensions[ext.name] = ext
        if existing is not None:
            logger.warning("Extension already registered: %s", ext.name)
            return existing, False
        logger.debug("Registered extension %s (%s)", ext.name, ext.source)
        return ext, True

    def get(self, name: str) -> Extension | None:
        with self._lock:
            return self._extensions.get(name)

    def remove(self, name: str) -> bool:
        with self._lock:
            removed = self._extensions.pop(name, None)
        if removed is None:
            return False
        for listener in self._on_remove:
            listener(removed)
        logger.info("Removed extension %s", name)
        return True

    def all(self) -> list[Extension]:
        """Snapshot of all extensions in registration order."""
        with self._lock:
            return list(self._extensions.values())

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._extensions

    def __len__(self) -> int:
        with self._lock:
            return len(self._extensions)

    def __iter__(self) -> Iterator[Extension]:
        return iter(self.all())
