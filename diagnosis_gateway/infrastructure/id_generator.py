"""Identifier generation for requests and benchmark forms.

Production instances draw from the operating system's secure random source;
tests pass a seed and a fixed clock for reproducible identifiers.
"""

import random
import string
import threading
import time
from typing import Callable, Optional

_ALPHABET = string.ascii_lowercase + string.digits


class IdGenerator:
    """Generates request correlation ids and diagnosis form ids.

    Parameters:
        seed: Seed for a deterministic generator; None uses ``SystemRandom``
        clock: Millisecond clock, defaults to wall time
    """

    def __init__(self, seed: Optional[int] = None, clock: Optional[Callable[[], int]] = None):
        self._rng = random.SystemRandom() if seed is None else random.Random(seed)
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._last_ms = 0
        self._lock = threading.Lock()

    def _next_ms(self) -> int:
        # Strictly increasing even when the clock stalls or steps back.
        with self._lock:
            now = self._clock()
            self._last_ms = now if now > self._last_ms else self._last_ms + 1
            return self._last_ms

    def request_id(self) -> str:
        """Return a 26 character lowercase alphanumeric correlation id."""
        return "".join(self._rng.choice(_ALPHABET) for _ in range(26))

    def form_id(self, prefix: str = "DIAG") -> str:
        """Return ``<prefix>-<monotonic ms>-<6 digit random suffix>``."""
        return f"{prefix}-{self._next_ms()}-{self._rng.randrange(1_000_000):06d}"

    def random(self) -> float:
        return self._rng.random()

    def randrange(self, stop: int) -> int:
        return self._rng.randrange(stop)
