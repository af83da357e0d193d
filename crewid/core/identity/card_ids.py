from __future__ import annotations

import secrets
import threading
import time
from typing import Callable

_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("n must be non-negative")
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_ALPHABET[r])
    return "".join(reversed(out))


class CardIdGenerator:
    """
    <PREFIX>-<base36 millis>-<random>.

    The millisecond component never repeats or goes backwards within one
    generator, even if the clock does.
    """

    def __init__(self, *, prefix: str = "TSL", clock: Callable[[], float] = time.time, random_length: int = 6):
        self.prefix = str(prefix).upper()
        self.clock = clock
        self.random_length = int(random_length)
        self._lock = threading.Lock()
        self._last_ms = 0

    def next_id(self) -> str:
        with self._lock:
            ms = int(self.clock() * 1000)
            if ms <= self._last_ms:
                ms = self._last_ms + 1
            self._last_ms = ms
        rnd = "".join(secrets.choice(_ALPHABET) for _ in range(self.random_length))
        return f"{self.prefix}-{to_base36(ms)}-{rnd}"
