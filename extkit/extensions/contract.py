"""Extension record, lifecycle states and collaborator protocols.

One entity shape: the Normalizer builds an Extension, the Activation Engine is the
only component that mutates its lifecycle fields.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

# Callable, or "module:attribute" resolved when the hook runs.
Hook = Callable[..., Any] | str


class ExtensionState(Enum):
    REGISTERED = "registered"
    SKIPPED = "skipped"
    ACTIVATING = "activating"
    ACTIVE = "active"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ExtensionState.SKIPPED, ExtensionState.ACTIVE, ExtensionState.FAILED)


class TriggerKind(str, Enum):
    EVENT = "event"
    COMMAND = "command"
    FILE_CATEGORY = "file_category"
    ELAPSED = "elapsed"

    @classmethod
    def parse(cls, value: "TriggerKind | str") -> "TriggerKind | None":
        """Return the kind for value, or None when it names no known kind."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class Triggers:
    """Lazy-activation triggers declared by an extension."""

    events: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()
    file_categories: tuple[str, ...] = ()
    lazy_delay_ms: int | None = None

    def any(self) -> bool:
        return bool(
            self.events
            or self.commands
            or self.file_categories
            or self.lazy_delay_ms is not None
        )

    def keyed(self) -> list[tuple[TriggerKind, str]]:
        """(kind, key) pairs for the named triggers; elapsed time is not keyed."""
        pairs = [(TriggerKind.EVENT, k) for k in self.events]
        pairs += [(TriggerKind.COMMAND, k) for k in self.commands]
        pairs += [(TriggerKind.FILE_CATEGORY, k) for k in self.file_categories]
        return pairs


@dataclass(frozen=True)
class KeyBinding:
    """Declarative key mapping bound during activation."""

    lhs: str
    rhs: str | Callable[..., Any] | None = None
    modes: tuple[str, ...] = ("n",)
    desc: str = ""
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ActivationResult:
    """Outcome of one activation attempt."""

    ok: bool
    state: ExtensionState
    duration_ms: float = 0.0
    error: str | None = None
    step_errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class CacheRecord:
    """Persisted fact about the last activation of an extension."""

    last_activated_at_ms: int | None
    activation_duration_ms: float | None
    last_state: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_activated_at_ms": self.last_activated_at_ms,
            "activation_duration_ms": self.activation_duration_ms,
            "last_state": self.last_state,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheRecord":
        """Build from persisted data. Unknown keys are ignored."""
        return cls(
            last_activated_at_ms=data.get("last_activated_at_ms"),
            activation_duration_ms=data.get("activation_duration_ms"),
            last_state=str(data.get("last_state", ExtensionState.REGISTERED.value)),
        )


@dataclass(eq=False)
class Extension:
    """Canonical extension record. Identity is the name."""

    name: str
    source: str
    dependencies: tuple[str, ...] = ()
    priority: int | None = None
    triggers: Triggers = field(default_factory=Triggers)
    lazy: bool = False
    enabled: bool = True
    init_hook: Hook | None = None
    configure_hook: Hook | None = None
    post_hook: Hook | None = None
    opts: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)
    module: str | None = None
    key_bindings: tuple[KeyBinding, ...] = ()

    # Owned by the Activation Engine.
    state: ExtensionState = ExtensionState.REGISTERED
    error: str | None = None
    step_errors: list[str] = field(default_factory=list)
    activation_duration_ms: float | None = None
    activated_at_ms: int | None = None
    activated_by: str | None = None
    install_path: Path | None = None
    last_result: ActivationResult | None = None

    # Registration sequence number, assigned by the Registry.
    seq: int = -1

    @property
    def active(self) -> bool:
        return self.state is ExtensionState.ACTIVE

    @property
    def failed(self) -> bool:
        return self.state is ExtensionState.FAILED


@runtime_checkable
class Installer(Protocol):
    """Makes extension code present on disk."""

    def ensure_present(self, source: str, name: str) -> Path:
        """Return the install path. Raise InstallerFailed (or any error) on failure."""


@runtime_checkable
class KeyBindingSink(Protocol):
    """Host key binding registry. Write-only from the core's point of view."""

    def bind(self, extension: str, binding: KeyBinding) -> None:
        """Bind one mapping. Re-binding the same mapping must be safe."""
