"""One-shot timers for lazy delays and debounced cache flushes."""

import threading
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


# schedule(delay_seconds, callback) -> handle
Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Run callback once on a daemon thread after delay seconds."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer
