"""Injectable time source used by the cache and the polling loop."""

import threading
from datetime import datetime
from typing import Optional, Protocol

from .date_utils import utc_now


class Clock(Protocol):
    """Protocol for reading the time and suspending between polls."""

    def now(self) -> datetime:
        """Current aware UTC time."""
        ...

    def sleep(self, seconds: float) -> bool:
        """
        Suspend for ``seconds``.

        Returns:
            True if the wait was cut short by cancellation, False otherwise
        """
        ...


class SystemClock:
    """Wall clock whose waits can be interrupted through a cancel event."""

    def __init__(self, cancel_event: Optional[threading.Event] = None):
        self.cancel_event = cancel_event or threading.Event()

    def now(self) -> datetime:
        return utc_now()

    def sleep(self, seconds: float) -> bool:
        if seconds <= 0:
            return self.cancel_event.is_set()
        return self.cancel_event.wait(seconds)

    def cancel(self) -> None:
        """Wake any pending wait and mark it cancelled."""
        self.cancel_event.set()
