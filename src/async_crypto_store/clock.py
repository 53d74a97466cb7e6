"""Clock abstraction for testable time-dependent logic."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Protocol for getting the current time.  Inject a fake in tests."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Default clock backed by the real system time."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)
