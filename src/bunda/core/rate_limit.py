"""
Simple in-process request pacing.

The geocoding provider is rate limited upstream, so outgoing calls are spaced out:
- the gateway paces every provider call when `geocoding.max_requests_per_minute`
  is configured,
- the coordinate backfill pauses a fixed delay between properties.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class RequestPacer:
    """Enforce a minimum interval between consecutive calls to `wait()` (best-effort)."""

    min_interval_seconds: float
    _last_monotonic: float | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if float(self.min_interval_seconds) < 0:
            raise ValueError("min_interval_seconds must be >= 0")

    @classmethod
    def per_minute(cls, max_per_minute: float) -> "RequestPacer":
        rpm = float(max_per_minute)
        if rpm <= 0:
            raise ValueError("max_per_minute must be > 0")
        return cls(min_interval_seconds=60.0 / rpm)

    def wait(self) -> float:
        """Sleep until the interval since the previous call has elapsed.

        Returns the number of seconds slept (0 for the first call).
        """
        spacing = float(self.min_interval_seconds)
        now = time.monotonic()
        if self._last_monotonic is None or spacing <= 0:
            self._last_monotonic = now
            return 0.0

        remaining = spacing - (now - self._last_monotonic)
        slept = 0.0
        if remaining > 0:
            time.sleep(remaining)
            slept = remaining
            now = time.monotonic()
        self._last_monotonic = now
        return slept
