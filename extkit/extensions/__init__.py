"""Extension lifecycle: contract, normalizer, registry, resolver, dispatcher, activation, cache."""

from extkit.extensions.activation import ActivationEngine
from extkit.extensions.bindings import KeyBindingRegistry, parse_key_binding
from extkit.extensions.cache import StateCache
from extkit.extensions.contract import (
    ActivationResult,
    CacheRecord,
    Extension,
    ExtensionState,
    Installer,
    KeyBinding,
    KeyBindingSink,
    Triggers,
    TriggerKind,
)
from extkit.extensions.dispatcher import TriggerDispatcher
from extkit.extensions.errors import (
    ActivationFailed,
    CycleDetected,
    ExtensionError,
    InstallerFailed,
    InvalidSpec,
    UnresolvedDependency,
)
from extkit.extensions.health_check import HealthReport, check_health, format_report
from extkit.extensions.installer import GitInstaller, NullInstaller
from extkit.extensions.manifest import load_specs, normalize, normalize_batch
from extkit.extensions.orchestrator import Orchestrator, RegistrationReport, StartupReport
from extkit.extensions.registry import Registry
from extkit.extensions.resolver import DependencyResolver, Resolution

__all__ = [
    "ActivationEngine",
    "ActivationFailed",
    "ActivationResult",
    "CacheRecord",
    "CycleDetected",
    "DependencyResolver",
    "Extension",
    "ExtensionError",
    "ExtensionState",
    "GitInstaller",
    "HealthReport",
    "Installer",
    "InstallerFailed",
    "InvalidSpec",
    "KeyBinding",
    "KeyBindingRegistry",
    "KeyBindingSink",
    "NullInstaller",
    "Orchestrator",
    "RegistrationReport",
    "Registry",
    "Resolution",
    "StartupReport",
    "StateCache",
    "TriggerDispatcher",
    "TriggerKind",
    "Triggers",
    "UnresolvedDependency",
    "check_health",
    "format_report",
    "load_specs",
    "normalize",
    "normalize_batch",
    "parse_key_binding",
]
