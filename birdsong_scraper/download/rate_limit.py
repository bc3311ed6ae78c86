import threading
import time
from typing import Callable


class RateLimiter:
    """
    Global minimum interval between requests, shared by every worker.

    The check of the last request time, the wait and the update happen under
    one lock, so requests are totally ordered and never issued closer than
    min_interval apart.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request: float | None = None

    def acquire(self) -> float:
        """Block until a request may be issued; returns the time waited."""
        with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_request is not None:
                wait = self._last_request + self.min_interval - now
                if wait > 0:
                    self._sleep(wait)
                    waited = wait
                    now = self._clock()
            self._last_request = now
            return waited
