# src/services/circuit_breaker.py

"""Per-retailer circuit breakers (closed → open → half-open → closed)."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from src.config.settings import Settings

logger = logging.getLogger("aggregator.circuit_breaker")


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class BreakerState:
    """Mutable state of one retailer's breaker."""

    failure_threshold: int
    cooldown: float
    half_open_trial_limit: int
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    opened_at: float | None = None
    trials_admitted: int = 0
    trials_succeeded: int = 0


class CircuitBreaker:
    """Independent failure-isolation state machines keyed by retailer.

    Closed: calls pass; ``failure_threshold`` consecutive failures open
    the circuit.  Open: calls are refused until ``cooldown`` has passed,
    then the breaker goes half-open.  Half-open: up to
    ``half_open_trial_limit`` calls are let through; any failure re-opens,
    and once that many trials succeed the circuit closes.

    State is only touched through the methods below.
    """

    def __init__(
        self,
        configs: dict[str, tuple[int, float, int]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._configs = (
            configs
            if configs is not None
            else Settings.CIRCUIT_BREAKER_CONFIGS
        )
        self._breakers: dict[str, BreakerState] = {}

    # ── Private helpers ──────────────────────────────────

    def _breaker(self, retailer: str) -> BreakerState:
        breaker = self._breakers.get(retailer)
        if breaker is None:
            threshold, cooldown, trials = self._configs.get(
                retailer, Settings.DEFAULT_CIRCUIT_BREAKER
            )
            breaker = BreakerState(
                failure_threshold=threshold,
                cooldown=cooldown,
                half_open_trial_limit=trials,
            )
            self._breakers[retailer] = breaker
        return breaker

    def _open(self, retailer: str, breaker: BreakerState) -> None:
        breaker.state = CircuitState.OPEN
        breaker.opened_at = self._clock()
        breaker.trials_admitted = 0
        breaker.trials_succeeded = 0
        logger.error(
            "Circuit opened for '%s' after %d consecutive failures",
            retailer,
            breaker.consecutive_failures,
        )

    def _close(self, retailer: str, breaker: BreakerState) -> None:
        breaker.state = CircuitState.CLOSED
        breaker.consecutive_failures = 0
        breaker.opened_at = None
        breaker.trials_admitted = 0
        breaker.trials_succeeded = 0
        logger.info("Circuit closed for '%s'", retailer)

    # ── Public operations ────────────────────────────────

    def allow_request(self, retailer: str) -> bool:
        """Return True if a call to *retailer* may go upstream now.

        A True answer in half-open state consumes one trial slot.
        """
        key = str(retailer)
        with self._lock:
            breaker = self._breaker(key)

            if breaker.state is CircuitState.OPEN:
                elapsed = self._clock() - (breaker.opened_at or 0.0)
                if elapsed < breaker.cooldown:
                    return False
                breaker.state = CircuitState.HALF_OPEN
                breaker.trials_admitted = 0
                breaker.trials_succeeded = 0
                logger.info(
                    "Circuit half-open for '%s' after %.0fs",
                    key,
                    elapsed,
                )

            if breaker.state is CircuitState.HALF_OPEN:
                if (
                    breaker.trials_admitted
                    >= breaker.half_open_trial_limit
                ):
                    return False
                breaker.trials_admitted += 1
            return True

    def record_success(self, retailer: str) -> None:
        key = str(retailer)
        with self._lock:
            breaker = self._breaker(key)
            if breaker.state is CircuitState.HALF_OPEN:
                breaker.trials_succeeded += 1
                if (
                    breaker.trials_succeeded
                    >= breaker.half_open_trial_limit
                ):
                    self._close(key, breaker)
            elif breaker.state is CircuitState.CLOSED:
                breaker.consecutive_failures = 0

    def record_failure(self, retailer: str) -> None:
        key = str(retailer)
        with self._lock:
            breaker = self._breaker(key)
            breaker.consecutive_failures += 1
            if breaker.state is CircuitState.HALF_OPEN:
                self._open(key, breaker)
            elif breaker.state is CircuitState.CLOSED:
                logger.warning(
                    "Failure %d/%d for '%s'",
                    breaker.consecutive_failures,
                    breaker.failure_threshold,
                    key,
                )
                if (
                    breaker.consecutive_failures
                    >= breaker.failure_threshold
                ):
                    self._open(key, breaker)

    def release(self, retailer: str) -> None:
        """Hand back a half-open trial slot whose call was cancelled."""
        key = str(retailer)
        with self._lock:
            breaker = self._breaker(key)
            if (
                breaker.state is CircuitState.HALF_OPEN
                and breaker.trials_admitted > breaker.trials_succeeded
            ):
                breaker.trials_admitted -= 1

    def state(self, retailer: str) -> CircuitState:
        """Current state, applying the open → half-open cooldown check."""
        key = str(retailer)
        with self._lock:
            breaker = self._breaker(key)
            if (
                breaker.state is CircuitState.OPEN
                and self._clock() - (breaker.opened_at or 0.0)
                >= breaker.cooldown
            ):
                return CircuitState.HALF_OPEN
            return breaker.state

    def snapshot(self, retailer: str) -> BreakerState:
        """Copy of the breaker's bookkeeping for status reports."""
        key = str(retailer)
        with self._lock:
            breaker = self._breaker(key)
            return BreakerState(**vars(breaker))

    def reset(self, retailer: str) -> None:
        """Force a retailer's breaker back to closed."""
        key = str(retailer)
        with self._lock:
            self._close(key, self._breaker(key))
