"""Orchestrator: explicitly constructed context owning registry, resolver, dispatcher, engine and cache.

Lifecycle: register specs -> start (resolve; activate immediate; hand lazy to the
dispatcher) -> fire triggers / activate on demand -> shutdown.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

from extkit.extensions.activation import ActivationEngine
from extkit.extensions.bindings import KeyBindingRegistry
from extkit.extensions.cache import StateCache
from extkit.extensions.contract import (
    ActivationResult,
    CacheRecord,
    Extension,
    ExtensionState,
    Installer,
    KeyBindingSink,
    TriggerKind,
)
from extkit.extensions.dispatcher import TriggerDispatcher
from extkit.extensions.errors import ActivationFailed, InvalidSpec, UnresolvedDependency
from extkit.extensions.installer import GitInstaller
from extkit.extensions.manifest import normalize_batch
from extkit.extensions.registry import Registry
from extkit.extensions.resolver import DependencyResolver
from extkit.extensions.timers import Scheduler, thread_timer
from extkit.settings import get_setting

logger = logging.getLogger(__name__)


@dataclass
class RegistrationReport:
    registered: list[Extension] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    errors: list[InvalidSpec] = field(default_factory=list)


@dataclass
class StartupReport:
    """Outcome of one start() pass. Per-item problems are listed, not raised."""

    activated: dict[str, ActivationResult] = field(default_factory=dict)
    lazy: list[str] = field(default_factory=list)
    unresolved: list[UnresolvedDependency] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [name for name, result in self.activated.items() if not result.ok]


class Orchestrator:
    """Extension lifecycle: register -> resolve -> activate immediate / dispatch lazy."""

    def __init__(
        self,
        installer: Installer,
        cache: StateCache | None = None,
        bindings: KeyBindingSink | None = None,
        resolver: DependencyResolver | None = None,
        schedule: Scheduler = thread_timer,
        fallback_delay_ms: int | None = 2000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache if cache is not None else StateCache(None)
        self._bindings = bindings if bindings is not None else KeyBindingRegistry()
        self._engine = ActivationEngine(installer, self._cache, self._bindings, clock)
        self._dispatcher = TriggerDispatcher(
            self._activate_from_trigger, schedule, fallback_delay_ms
        )
        self._registry = Registry(on_remove=[self._forget])
        self._resolver = resolver or DependencyResolver()
        # Read once; reporting only, never consulted for activation decisions.
        self._previous: dict[str, CacheRecord] = self._cache.records()
        self._planned: set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: dict[str, Any],
        project_root: Path,
        installer: Installer | None = None,
        schedule: Scheduler = thread_timer,
    ) -> "Orchestrator":
        """Default wiring: GitInstaller and a JSON StateCache under project_root."""
        if installer is None:
            installer = GitInstaller(
                project_root / get_setting(settings, "installer.install_dir", "data/extensions"),
                timeout=int(get_setting(settings, "installer.timeout", 60)),
            )
        cache_path = None
        if get_setting(settings, "cache.enabled", True):
            cache_path = project_root / get_setting(settings, "cache.path", "data/cache/extkit.json")
        cache = StateCache(
            cache_path,
            flush_interval=float(get_setting(settings, "cache.flush_interval", 60.0)),
            schedule=schedule,
        )
        return cls(
            installer,
            cache=cache,
            schedule=schedule,
            fallback_delay_ms=get_setting(settings, "performance.lazy_delay_ms", 2000),
        )

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def dispatcher(self) -> TriggerDispatcher:
        return self._dispatcher

    @property
    def cache(self) -> StateCache:
        return self._cache

    @property
    def bindings(self) -> KeyBindingSink:
        return self._bindings

    def register(self, raws: Iterable[Any]) -> RegistrationReport:
        """Normalize and add a batch of raw specs. Invalid specs and duplicates are reported."""
        extensions, errors = normalize_batch(raws)
        report = RegistrationReport(errors=errors)
        for ext in extensions:
            if self._registry.add(ext):
                report.registered.append(ext)
            else:
                report.duplicates.append(ext.name)
        return report

    def add(self, ext: Extension) -> Extension:
        """Add an already-normalized extension; returns the stored entry."""
        return self._registry.setdefault(ext)

    def get(self, name: str) -> Extension | None:
        return self._registry.get(name)

    def start(self) -> StartupReport:
        """Resolve and run the activation plan for extensions not planned yet.

        Raises CycleDetected before anything is activated when the graph has a cycle.
        """
        resolution = self._resolver.resolve(self._registry)
        report = StartupReport()

        for ext in resolution.skipped:
            if self._claim_plan(ext.name):
                self._engine.skip(ext)
                report.skipped.append(ext.name)

        for err in resolution.unresolved:
            ext = self._registry.get(err.name)
            if ext is not None and self._claim_plan(ext.name):
                self._engine.fail(ext, str(err))
                report.unresolved.append(err)

        for ext in resolution.immediate:
            if self._claim_plan(ext.name):
                report.activated[ext.name] = self._activate_with_dependencies(ext, "startup")

        for ext in resolution.lazy:
            if not self._claim_plan(ext.name):
                continue
            report.lazy.append(ext.name)
            if ext.state is ExtensionState.REGISTERED:
                self._dispatcher.register_lazy(ext)

        logger.info(
            "Startup: %d activated (%d failed), %d lazy, %d unresolved, %d skipped",
            len(report.activated),
            len(report.failed),
            len(report.lazy),
            len(report.unresolved),
            len(report.skipped),
        )
        return report

    def _claim_plan(self, name: str) -> bool:
        with self._lock:
            if name in self._planned:
                return False
            self._planned.add(name)
            return True

    def fire(
        self, kind: TriggerKind | str, key: str, payload: Any = None
    ) -> list[ActivationResult]:
        """Host trigger entry point. Unknown kinds or keys are no-ops."""
        return self._dispatcher.fire(kind, key, payload)

    def activate(self, name: str) -> ActivationResult | None:
        """Activate name now, consuming its pending triggers. None for an unknown name."""
        ext = self._registry.get(name)
        if ext is None:
            logger.warning("Cannot activate unknown extension %s", name)
            return None
        self._dispatcher.unregister(name)
        return self._activate_with_dependencies(ext, "manual")

    def _activate_from_trigger(self, ext: Extension, trigger: str) -> ActivationResult:
        return self._activate_with_dependencies(ext, trigger)

    def _activate_with_dependencies(
        self,
        ext: Extension,
        trigger: str,
        visiting: frozenset[str] = frozenset(),
    ) -> ActivationResult:
        """Activate dependencies first (depth first, declaration order), then ext.

        Always returns a settled outcome: an activation started meanwhile on another
        thread is waited for.
        """
        if ext.state is not ExtensionState.REGISTERED:
            return self._engine.wait(ext)
        visiting = visiting | {ext.name}
        for dep_name in ext.dependencies:
            dep = self._registry.get(dep_name)
            if dep is None:
                return self._settled(
                    ext, self._engine.fail(ext, str(UnresolvedDependency(ext.name, dep_name)))
                )
            if dep_name in visiting:
                reason = f"dependency cycle through {dep_name!r}"
                return self._settled(
                    ext, self._engine.fail(ext, str(ActivationFailed(ext.name, reason)))
                )
            if dep.state is ExtensionState.REGISTERED:
                self._dispatcher.unregister(dep_name)
                dep_result = self._activate_with_dependencies(
                    dep, f"dependency:{ext.name}", visiting
                )
            else:
                dep_result = self._engine.wait(dep)
            if not dep_result.ok:
                reason = f"dependency {dep_name!r} is {dep_result.state.value}"
                return self._settled(
                    ext, self._engine.fail(ext, str(ActivationFailed(ext.name, reason)))
                )
        return self._settled(ext, self._engine.activate(ext, trigger))

    def _settled(self, ext: Extension, result: ActivationResult) -> ActivationResult:
        # Another thread claimed ext between the state check and the engine call.
        if result.state is ExtensionState.ACTIVATING:
            return self._engine.wait(ext)
        return result

    def remove(self, name: str) -> bool:
        """Remove name from the registry, its pending triggers and the cache."""
        return self._registry.remove(name)

    def _forget(self, ext: Extension) -> None:
        # discard() before cache.remove(): an in-flight activation then stays uncached.
        self._dispatcher.unregister(ext.name)
        self._engine.discard(ext)
        self._cache.remove(ext.name)
        with self._lock:
            self._planned.discard(ext.name)
            self._previous.pop(ext.name, None)

    def status(self) -> dict[str, dict[str, Any]]:
        """Read-only reporting snapshot keyed by extension name."""
        snapshot: dict[str, dict[str, Any]] = {}
        for ext in self._registry.all():
            previous = self._previous.get(ext.name)
            snapshot[ext.name] = {
                "registered": True,
                "active": ext.active,
                "lazy": ext.lazy,
                "failed": ext.failed,
                "priority": ext.priority,
                "activation_duration_ms": ext.activation_duration_ms,
                "state": ext.state.value,
                "error": ext.error,
                "step_errors": list(ext.step_errors),
                "pending": self._dispatcher.is_pending(ext.name),
                "activated_by": ext.activated_by,
                "previous": previous.to_dict() if previous else None,
            }
        return snapshot

    def pending(self) -> dict[str, dict[str, list[str]]]:
        return self._dispatcher.pending()

    def shutdown(self) -> None:
        """Cancel pending timers and flush the cache."""
        self._dispatcher.cancel_all()
        self._cache.close()
        logger.info("Orchestrator shut down")
