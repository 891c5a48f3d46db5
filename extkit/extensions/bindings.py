"""Key binding parsing and an in-process KeyBindingSink."""

import logging
import threading
from typing import Any

from extkit.extensions.contract import KeyBinding

logger = logging.getLogger(__name__)

_OPTION_KEYS = ("buffer", "silent", "remap", "noremap", "nowait", "expr")


def parse_key_binding(raw: Any) -> KeyBinding:
    """Build a KeyBinding from "lhs", [lhs, rhs, ...] or a mapping. Raises ValueError."""
    if isinstance(raw, KeyBinding):
        return raw
    if isinstance(raw, str):
        if not raw:
            raise ValueError("Key binding lhs is empty")
        return KeyBinding(lhs=raw)
    if isinstance(raw, (list, tuple)):
        if not raw or not isinstance(raw[0], str) or not raw[0]:
            raise ValueError(f"Invalid key binding entry: {raw!r}")
        rhs = raw[1] if len(raw) > 1 else None
        extra = raw[2] if len(raw) > 2 and isinstance(raw[2], dict) else {}
        return _from_mapping({"lhs": raw[0], "rhs": rhs, **extra})
    if isinstance(raw, dict):
        return _from_mapping(raw)
    raise ValueError(f"Invalid key binding entry: {raw!r}")


def _from_mapping(data: dict[str, Any]) -> KeyBinding:
    lhs = data.get("lhs")
    if not isinstance(lhs, str) or not lhs:
        raise ValueError(f"Key binding needs a non-empty lhs: {data!r}")
    mode = data.get("mode", data.get("modes", ("n",)))
    modes = (mode,) if isinstance(mode, str) else tuple(mode)
    options = {k: data[k] for k in _OPTION_KEYS if k in data}
    options.update(data.get("options") or {})
    return KeyBinding(
        lhs=lhs,
        rhs=data.get("rhs"),
        modes=modes or ("n",),
        desc=str(data.get("desc", "")),
        options=options,
    )


class KeyBindingRegistry:
    """Records bindings by (mode, lhs). Later bindings for the same mapping replace earlier ones."""

    def __init__(self) -> None:
        self._bindings: dict[tuple[str, str], tuple[str, KeyBinding]] = {}
        self._lock = threading.Lock()

    def bind(self, extension: str, binding: KeyBinding) -> None:
        with self._lock:
            for mode in binding.modes:
                key = (mode, binding.lhs)
                current = self._bindings.get(key)
                if current == (extension, binding):
                    continue
                if current is not None and current[0] != extension:
                    logger.warning(
                        "Key %s (%s) rebound from %s to %s",
                        binding.lhs,
                        mode,
                        current[0],
                        extension,
                    )
                self._bindings[key] = (extension, binding)

    def lookup(self, lhs: str, mode: str = "n") -> KeyBinding | None:
        with self._lock:
            entry = self._bindings.get((mode, lhs))
        return entry[1] if entry else None

    def bound_by(self, extension: str) -> list[KeyBinding]:
        with self._lock:
            return [b for ext, b in self._bindings.values() if ext == extension]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
