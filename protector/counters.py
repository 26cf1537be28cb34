"""In-memory sliding-window event logs keyed by string."""
from typing import Dict, List


def count_within(log: List[float], now: float, window: float) -> int:
    return len([t for t in log if now - t < window])


class SlidingWindowCounter:
    """Per-key timestamp logs, trimmed to a retention window on every record.

    State lives in process memory only. Callers serialize access (the
    admission pipeline holds one lock across a whole decision).
    """

    def __init__(self):
        self._logs: Dict[str, List[float]] = {}

    def record(self, key: str, now: float, retention: float) -> List[float]:
        log = [t for t in self._logs.get(key, []) if now - t < retention]
        log.append(now)
        self._logs[key] = log
        return list(log)

    def purge(self, now: float, retention: float) -> int:
        """Forget keys with nothing left inside ``retention``. Returns how many."""
        idle = [k for k, log in self._logs.items() if not log or now - log[-1] >= retention]
        for key in idle:
            del self._logs[key]
        return len(idle)

    def __len__(self):
        return len(self._logs)

    def __contains__(self, key):
        return key in self._logs
