import time
from typing import Callable

from core.errors import TimedOut


class Deadline:
    """Wall-clock budget handed down into each underlying operation.

    Playwright calls receive ``remaining_ms()`` as their ``timeout`` and LLM
    requests receive ``remaining()``, so running out of budget aborts the
    operation itself instead of abandoning it.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def remaining_ms(self) -> float:
        return self.remaining() * 1000

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, what: str) -> None:
        if self.expired:
            raise TimedOut(what, self.seconds)
