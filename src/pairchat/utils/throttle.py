"""
Minimum-interval send throttle.

A send is allowed when at least 'interval_ms' have passed since the last
*recorded* send for the same key. Callers record only accepted sends, so a
rejected or failed send does not push the window forward.
"""

from collections.abc import Callable

from pairchat.utils.time import get_current_timestamp


class SendThrottle:
    def __init__(self, interval_ms: int, clock: Callable[[], int] = get_current_timestamp) -> None:
        self.interval_ms = interval_ms
        self.clock = clock
        self._last_sent: dict[str, int] = {}

    def is_allowed(self, key: str, now: int | None = None) -> bool:
        now = self.clock() if now is None else now
        last = self._last_sent.get(key)
        return last is None or now - last >= self.interval_ms

    def record(self, key: str, now: int | None = None) -> None:
        self._last_sent[key] = self.clock() if now is None else now
