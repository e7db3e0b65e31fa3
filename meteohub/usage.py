"""Per-provider daily usage counters.

Counters live for one calendar day. The day rollover is detected lazily by the
tracker itself whenever a counter is touched or read, so callers never have to
remember to reset anything.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from threading import Lock
from typing import Callable, Dict, Iterable, Optional


@dataclass(frozen=True)
class ProviderUsage:
    calls: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"calls": self.calls, "errors": self.errors}


class UsageTracker:
    """Thread-safe call/error counters keyed by provider name."""

    def __init__(
        self,
        providers: Iterable[str] = (),
        today: Callable[[], date] = date.today,
    ) -> None:
        self._today = today
        self._known = list(providers)
        self._calls: Dict[str, int] = {}
        self._errors: Dict[str, int] = {}
        self._last_reset: date = today()
        self._lock = Lock()
        self._zero()

    # -- Counters -----------------------------------------------------------
    def record_call(self, provider: str) -> None:
        self._increment(self._calls, provider)

    def record_error(self, provider: str) -> None:
        self._increment(self._errors, provider)

    def calls(self, provider: str) -> int:
        with self._lock:
            self._reset_if_new_day()
            return self._calls.get(provider, 0)

    def errors(self, provider: str) -> int:
        with self._lock:
            self._reset_if_new_day()
            return self._errors.get(provider, 0)

    # -- Snapshot -----------------------------------------------------------
    @property
    def last_reset(self) -> date:
        return self._last_reset

    def snapshot(self) -> Dict[str, ProviderUsage]:
        with self._lock:
            self._reset_if_new_day()
            names = list(dict.fromkeys([*self._known, *self._calls, *self._errors]))
            return {
                name: ProviderUsage(calls=self._calls.get(name, 0), errors=self._errors.get(name, 0))
                for name in names
            }

    def reset(self, when: Optional[date] = None) -> None:
        with self._lock:
            self._zero()
            self._last_reset = when or self._today()

    # -- Internals ----------------------------------------------------------
    def _increment(self, counters: Dict[str, int], provider: str) -> None:
        if not provider:
            raise ValueError("provider must be provided")
        with self._lock:
            self._reset_if_new_day()
            counters[provider] = counters.get(provider, 0) + 1

    def _reset_if_new_day(self) -> None:
        today = self._today()
        if today != self._last_reset:
            self._zero()
            self._last_reset = today

    def _zero(self) -> None:
        self._calls = {name: 0 for name in self._known}
        self._errors = {name: 0 for name in self._known}


__all__ = ["ProviderUsage", "UsageTracker"]
