"""
Metrics collection for the interaction engine.

Tracks:
- Questions asked, answered and rejected (by reason)
- Banter ticks and lines emitted
- Scripted lines said
"""
from __future__ import annotations

import threading
from typing import Dict


class Counter:
    """Thread-safe counter."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, n: int = 1) -> int:
        """Increment and return new value."""
        with self._lock:
            self._value += n
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def reset(self) -> int:
        """Reset and return old value."""
        with self._lock:
            old = self._value
            self._value = 0
            return old


class EngineMetrics:
    """
    Counters for one NpcEngine.

    Example:
        >>> metrics = EngineMetrics()
        >>> metrics.asks.inc()
        >>> metrics.snapshot()["asks"]
        1
    """

    NAMES = (
        "asks",
        "answered",
        "no_match",
        "rejected_cooldown",
        "rejected_range",
        "banter_ticks",
        "banter_emitted",
        "said",
    )

    def __init__(self):
        for name in self.NAMES:
            setattr(self, name, Counter())

    def counter(self, name: str) -> Counter:
        if name not in self.NAMES:
            raise KeyError(name)
        return getattr(self, name)

    def snapshot(self) -> Dict[str, int]:
        return {name: getattr(self, name).value for name in self.NAMES}

    def reset(self) -> Dict[str, int]:
        """Reset all counters and return their old values."""
        return {name: getattr(self, name).reset() for name in self.NAMES}
