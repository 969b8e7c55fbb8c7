# src/services/rate_limiter.py

"""Per-retailer admission control against rolling time windows."""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from src.config.settings import Settings

logger = logging.getLogger("aggregator.rate_limiter")


@dataclass
class RateWindow:
    """One fixed window: at most ``limit`` admissions per ``duration``."""

    label: str
    limit: int
    duration: float
    count: int = 0
    window_start: float = 0.0

    def roll(self, now: float) -> None:
        """Start a fresh window once the current one has elapsed."""
        if now - self.window_start >= self.duration:
            self.window_start = now
            self.count = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class RateLimiter:
    """Tracks every configured window for each retailer.

    Windows are AND-ed: a call is admitted only if *all* of a retailer's
    windows have room, so the tightest one governs.  A denial never
    touches any counter.  This is pure admission control; callers
    decide what to do on ``False``.
    """

    def __init__(
        self,
        limits: dict[str, list[tuple[str, int, float]]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, list[RateWindow]] = {}
        configured = (
            limits if limits is not None else Settings.RATE_LIMITS
        )
        for retailer, specs in configured.items():
            self.configure(retailer, specs)

    def configure(
        self,
        retailer: str,
        specs: Iterable[tuple[str, int, float]],
    ) -> None:
        """Replace a retailer's windows with fresh, empty ones."""
        now = self._clock()
        windows = [
            RateWindow(
                label=label,
                limit=limit,
                duration=duration,
                window_start=now,
            )
            for label, limit, duration in specs
        ]
        with self._lock:
            self._windows[str(retailer)] = windows

    def _windows_for(self, retailer: str) -> list[RateWindow]:
        windows = self._windows.get(retailer)
        if windows is None:
            now = self._clock()
            windows = [
                RateWindow(label, limit, duration, window_start=now)
                for label, limit, duration in Settings.DEFAULT_RATE_LIMITS
            ]
            self._windows[retailer] = windows
            logger.info(
                "No rate limits configured for '%s', using defaults",
                retailer,
            )
        return windows

    def try_acquire(self, retailer: str) -> bool:
        """Admit one call for *retailer* if every window has room.

        All windows are incremented together or not at all.
        """
        key = str(retailer)
        with self._lock:
            now = self._clock()
            windows = self._windows_for(key)
            for window in windows:
                window.roll(now)

            blocked = [w for w in windows if w.count >= w.limit]
            if blocked:
                logger.warning(
                    "Rate limit reached for '%s' (%s window %d/%d)",
                    key,
                    blocked[0].label,
                    blocked[0].count,
                    blocked[0].limit,
                )
                return False

            for window in windows:
                window.count += 1
            logger.debug(
                "Admitted call for '%s' (%s)",
                key,
                ", ".join(
                    f"{w.label}={w.count}/{w.limit}" for w in windows
                ),
            )
            return True

    def remaining(self, retailer: str) -> dict[str, int]:
        """Remaining admissions per window label (after rolling)."""
        key = str(retailer)
        with self._lock:
            now = self._clock()
            windows = self._windows_for(key)
            for window in windows:
                window.roll(now)
            return {w.label: w.remaining for w in windows}
