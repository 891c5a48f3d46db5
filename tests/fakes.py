"""Test doubles: deterministic timers and a recording installer."""

import threading
from pathlib import Path
from typing import Callable

from extkit.extensions.errors import InstallerFailed


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True

    def run(self) -> None:
        self.ran = True
        self.callback()


class FakeScheduler:
    """Scheduler that records timers; tests run them explicitly."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.ran]

    def run_all(self) -> None:
        for timer in self.live:
            timer.run()


class RecordingInstaller:
    """Installer double: records calls, fails for sources listed in fail_for."""

    def __init__(self, fail_for: tuple[str, ...] = ()) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_for = fail_for

    def ensure_present(self, source: str, name: str) -> Path:
        self.calls.append((source, name))
        if source in self.fail_for:
            raise InstallerFailed(source, "clone failed")
        return Path("/opt/extensions") / name


class GatedInstaller(RecordingInstaller):
    """Blocks ensure_present for one source until gate is set."""

    def __init__(self, gated_source: str) -> None:
        super().__init__()
        self.gated_source = gated_source
        self.gate = threading.Event()

    def ensure_present(self, source: str, name: str) -> Path:
        if source == self.gated_source:
            self.gate.wait(5)
        return super().ensure_present(source, name)
