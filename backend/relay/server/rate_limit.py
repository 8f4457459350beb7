"""Per-connection token bucket for inbound WebSocket frames."""

import time
from collections.abc import Callable


class TokenBucket:
    """Allow ``rate`` frames per second on average with bursts up to ``burst``.

    consume() returns False once the bucket is empty; the caller drops the
    frame and tells the client it is being throttled.
    """

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._rate = rate
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last_refill = clock()

    @property
    def tokens(self) -> float:
        return self._tokens

    def consume(self) -> bool:
        now = self._clock()
        self._tokens = min(self._burst, self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now

        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
