"""Error taxonomy for normalization, resolution and activation."""

__all__ = [
    "ActivationFailed",
    "CycleDetected",
    "ExtensionError",
    "InstallerFailed",
    "InvalidSpec",
    "UnresolvedDependency",
]


class ExtensionError(Exception):
    """Base exception for extension lifecycle errors."""


class InvalidSpec(ExtensionError):
    """Raw spec could not be normalized. Per item; the batch continues."""

    def __init__(self, message: str, raw: object = None) -> None:
        super().__init__(message)
        self.raw = raw


class UnresolvedDependency(ExtensionError):
    """Extension depends on a name that cannot be activated."""

    def __init__(self, name: str, missing: str, via: tuple[str, ...] = ()) -> None:
        self.name = name
        self.missing = missing
        self.via = via
        if via:
            chain = " -> ".join((name, *via, missing))
            message = f"Extension {name!r} depends on missing {missing!r} ({chain})"
        else:
            message = f"Extension {name!r} depends on missing {missing!r}"
        super().__init__(message)


class CycleDetected(ExtensionError):
    """Dependency graph has a cycle; no valid activation order exists."""

    def __init__(self, cycles: list[list[str]]) -> None:
        self.cycles = cycles
        rendered = "; ".join(", ".join(c) for c in cycles)
        super().__init__(f"Cycle in dependencies among: {rendered}")

    @property
    def names(self) -> set[str]:
        return {name for cycle in self.cycles for name in cycle}


class ActivationFailed(ExtensionError):
    """Activation ended in the failed state."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Activation of {name!r} failed: {reason}")
        self.name = name
        self.reason = reason


class InstallerFailed(ExtensionError):
    """Package installer could not make the extension present on disk."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Installer failed for {source}: {reason}")
        self.source = source
        self.reason = reason
