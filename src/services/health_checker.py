# src/services/health_checker.py

"""Per-retailer status report built from local resilience state."""

import logging
from dataclasses import dataclass, field

from src.adapters.base_adapter import OperatingMode, RetailerAdapter
from src.services.circuit_breaker import CircuitState
from src.services.search_coordinator import SearchCoordinator

logger = logging.getLogger("aggregator.health")


@dataclass
class HealthResult:
    """Result of a single retailer health check."""

    retailer_id: str
    status: str  # "ok", "degraded", "down"
    mode: str
    circuit: str
    remaining_quota: dict[str, int] = field(
        default_factory=lambda: dict[str, int]()
    )
    message: str = ""


class HealthChecker:
    """Reports each retailer's readiness without calling upstream.

    Probing would spend quota, so status is derived from the
    adapter's operating mode, its breaker and its rate windows.
    """

    def __init__(self, coordinator: SearchCoordinator) -> None:
        self.coordinator = coordinator

    def probe(self, adapter: RetailerAdapter) -> HealthResult:
        rid = adapter.retailer_id.value
        circuit = self.coordinator.circuit_breaker.state(rid)
        remaining = self.coordinator.rate_limiter.remaining(rid)
        exhausted = [label for label, left in remaining.items() if left == 0]

        if circuit is CircuitState.OPEN:
            snap = self.coordinator.circuit_breaker.snapshot(rid)
            status = "down"
            message = (
                f"circuit open after {snap.consecutive_failures} failures"
            )
        elif not adapter.api_key and not adapter.supports_demo_mode:
            status = "down"
            message = f"{adapter.credential_setting} is not set"
        elif adapter.mode is OperatingMode.DEGRADED:
            status = "degraded"
            message = "serving demo data"
        elif exhausted:
            status = "degraded"
            message = f"quota exhausted ({', '.join(exhausted)})"
        elif circuit is CircuitState.HALF_OPEN:
            status = "degraded"
            message = "circuit half-open, probing"
        else:
            status = "ok"
            message = ""

        return HealthResult(
            retailer_id=rid,
            status=status,
            mode=adapter.mode.value,
            circuit=circuit.value,
            remaining_quota=remaining,
            message=message,
        )

    def check_all(self) -> list[HealthResult]:
        """Report on every registered retailer, in registry order."""
        results = [
            self.probe(adapter)
            for adapter in self.coordinator.adapters.values()
        ]
        for r in results:
            logger.info(
                "Health check %s: %s (%s, circuit %s) %s",
                r.retailer_id,
                r.status,
                r.mode,
                r.circuit,
                r.message,
            )
        return results
