"""Activation Engine: the registered -> activating -> active | failed protocol for one extension."""

import importlib
import logging
import threading
import time
import weakref
from typing import Any, Callable

from extkit.extensions.cache import StateCache
from extkit.extensions.contract import (
    ActivationResult,
    CacheRecord,
    Extension,
    ExtensionState,
    Hook,
    Installer,
    KeyBindingSink,
)
from extkit.extensions.errors import InstallerFailed
from extkit.settings import deep_copy_nested, deep_merge

logger = logging.getLogger(__name__)


def resolve_hook(hook: Hook) -> Callable[..., Any]:
    """Return hook itself, or import "module:attribute" and return the attribute."""
    if callable(hook):
        return hook
    module_name, _, attr_path = hook.partition(":")
    target: Any = importlib.import_module(module_name)
    for part in attr_path.split("."):
        target = getattr(target, part)
    if not callable(target):
        raise TypeError(f"{hook} is not callable")
    return target


def merge_config(opts: dict[str, Any], config: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge config over opts without mutating either."""
    return deep_merge(deep_copy_nested(opts), deep_copy_nested(config))


class ActivationEngine:
    """Runs activation at most once per extension and records the outcome in the cache.

    Fail-soft steps (hooks, configuration, key bindings) are logged and collected in
    step_errors; the installer step is fail-hard.
    """

    def __init__(
        self,
        installer: Installer,
        cache: StateCache | None = None,
        bindings: KeyBindingSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._installer = installer
        self._cache = cache
        self._bindings = bindings
        self._clock = clock
        self._lock = threading.Lock()
        # id(ext) -> (activating thread id, done event)
        self._inflight: dict[int, tuple[int, threading.Event]] = {}
        # Removed from the registry; their outcome is not cached.
        self._discarded: weakref.WeakSet[Extension] = weakref.WeakSet()

    def activate(self, ext: Extension, trigger: str | None = None) -> ActivationResult:
        with self._lock:
            if ext.state is not ExtensionState.REGISTERED:
                return self._prior_result(ext)
            if not ext.enabled:
                return self._skip_locked(ext)
            ext.state = ExtensionState.ACTIVATING
            ext.activated_by = trigger
            self._inflight[id(ext)] = (threading.get_ident(), threading.Event())
        logger.info("Activating %s%s", ext.name, f" ({trigger})" if trigger else "")
        started = time.perf_counter()
        step_errors: list[str] = []

        if ext.init_hook is not None:
            self._run_soft(ext, "init hook", step_errors, lambda: resolve_hook(ext.init_hook)())

        try:
            ext.install_path = self._installer.ensure_present(ext.source, ext.name)
        except InstallerFailed as e:
            return self._finish(ext, started, step_errors, error=str(e))
        except Exception as e:
            logger.exception("Installer raised for %s: %s", ext.name, e)
            return self._finish(
                ext, started, step_errors, error=str(InstallerFailed(ext.source, str(e)))
            )

        merged = merge_config(ext.opts, ext.config)
        if ext.configure_hook is not None:
            self._run_soft(
                ext, "configure hook", step_errors, lambda: resolve_hook(ext.configure_hook)(merged)
            )
        elif ext.module:
            module_name = ext.module
            self._run_soft(
                ext, "module setup", step_errors, lambda: self._setup_module(module_name, merged)
            )

        if self._bindings is not None:
            for binding in ext.key_bindings:
                self._run_soft(
                    ext,
                    f"key binding {binding.lhs}",
                    step_errors,
                    lambda b=binding: self._bindings.bind(ext.name, b),
                )

        if ext.post_hook is not None:
            self._run_soft(ext, "post hook", step_errors, lambda: resolve_hook(ext.post_hook)())

        return self._finish(ext, started, step_errors)

    def skip(self, ext: Extension) -> ActivationResult:
        """registered -> skipped. No cache write."""
        with self._lock:
            if ext.state is not ExtensionState.REGISTERED:
                return self._prior_result(ext)
            return self._skip_locked(ext)

    def wait(self, ext: Extension, timeout: float | None = None) -> ActivationResult:
        """Block until an activation running on another thread finishes; return the outcome.

        Returns at once when ext is not activating or is being activated by this thread.
        """
        with self._lock:
            inflight = self._inflight.get(id(ext))
        if inflight is not None and inflight[0] != threading.get_ident():
            inflight[1].wait(timeout)
        with self._lock:
            return self._prior_result(ext)

    def fail(self, ext: Extension, error: str) -> ActivationResult:
        """registered -> failed without running any step (unresolved or failed dependency)."""
        with self._lock:
            if ext.state is not ExtensionState.REGISTERED:
                return self._prior_result(ext)
            ext.state = ExtensionState.ACTIVATING
            self._inflight[id(ext)] = (threading.get_ident(), threading.Event())
        return self._finish(ext, time.perf_counter(), [], error=error)

    def discard(self, ext: Extension) -> None:
        """Stop caching the outcome of ext; an activation still in flight completes uncached."""
        with self._lock:
            self._discarded.add(ext)

    def _prior_result(self, ext: Extension) -> ActivationResult:
        if ext.last_result is not None:
            return ext.last_result
        return ActivationResult(ok=ext.active, state=ext.state, error=ext.error)

    def _skip_locked(self, ext: Extension) -> ActivationResult:
        ext.state = ExtensionState.SKIPPED
        ext.last_result = ActivationResult(ok=False, state=ExtensionState.SKIPPED, error="disabled")
        logger.debug("Skipped disabled extension %s", ext.name)
        return ext.last_result

    def _run_soft(
        self,
        ext: Extension,
        step: str,
        step_errors: list[str],
        fn: Callable[[], Any],
    ) -> None:
        try:
            fn()
        except Exception as e:
            logger.exception("%s failed for %s: %s", step, ext.name, e)
            step_errors.append(f"{step}: {e}")

    def _setup_module(self, module_name: str, merged: dict[str, Any]) -> None:
        module = importlib.import_module(module_name)
        setup = getattr(module, "setup", None)
        if not callable(setup):
            raise AttributeError(f"module {module_name} has no setup()")
        setup(merged)

    def _finish(
        self,
        ext: Extension,
        started: float,
        step_errors: list[str],
        error: str | None = None,
    ) -> ActivationResult:
        duration_ms = round((time.perf_counter() - started) * 1000, 3)
        state = ExtensionState.FAILED if error else ExtensionState.ACTIVE
        result = ActivationResult(
            ok=error is None,
            state=state,
            duration_ms=duration_ms,
            error=error,
            step_errors=tuple(step_errors),
        )
        activated_at_ms = int(self._clock() * 1000)
        with self._lock:
            ext.state = state
            ext.error = error
            ext.step_errors = list(step_errors)
            ext.activation_duration_ms = duration_ms
            ext.activated_at_ms = activated_at_ms
            ext.last_result = result
            inflight = self._inflight.pop(id(ext), None)
            # discard() and this write are serialized by the lock.
            if self._cache is not None and ext not in self._discarded:
                self._cache.set(
                    ext.name,
                    CacheRecord(
                        last_activated_at_ms=activated_at_ms,
                        activation_duration_ms=duration_ms,
                        last_state=state.value,
                    ),
                )
        if inflight is not None:
            inflight[1].set()
        if error:
            logger.error("Activation of %s failed: %s", ext.name, error)
        else:
            logger.info("Activated %s in %.1f ms", ext.name, duration_ms)
        return result
