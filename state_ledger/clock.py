"""
Logical clock for ledger timestamps
"""

import threading
import time
from typing import Callable, Optional


class LogicalClock:
    """
    Nanosecond wall-clock timestamps, forced to strictly increase across
    calls so records written in one invocation never share a createdAt.
    """

    def __init__(self, source: Optional[Callable[[], int]] = None):
        self._source = source or time.time_ns
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._source(), self._last + 1)
            return self._last
