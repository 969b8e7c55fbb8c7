# src/services/price_tracker.py

"""Background re-polling of tracked products and price-drop alerts."""

import asyncio
import logging
from datetime import datetime

from src.config.settings import Settings
from src.models.errors import InvalidSearchRequest
from src.models.price_alert import DropNotification, PriceAlert, PriceUpdateEvent
from src.models.product import ProductSummary
from src.services.notifier import LoggingNotificationSink, NotificationSink
from src.services.search_coordinator import SearchCoordinator
from src.storage.json_store import JsonStore

logger = logging.getLogger("aggregator.price_tracker")


def is_qualifying_drop(alert: PriceAlert, event: PriceUpdateEvent) -> bool:
    """Decide whether *event* warrants a drop notification for *alert*.

    Only decreases qualify.  A decrease qualifies when it reaches the
    alert's price or percentage threshold; alerts without either fall
    back to ``Settings.DEFAULT_DROP_PERCENT``.
    """
    if not event.is_decrease:
        return False
    drop_pct = abs(event.percentage_change)
    if (
        alert.threshold_price is not None
        and event.new_price <= alert.threshold_price
    ):
        return True
    if (
        alert.threshold_percentage is not None
        and drop_pct >= alert.threshold_percentage
    ):
        return True
    return (
        not alert.has_custom_threshold
        and drop_pct >= Settings.DEFAULT_DROP_PERCENT
    )


def build_notification(
    alert: PriceAlert, event: PriceUpdateEvent
) -> DropNotification:
    drop_pct = int(abs(event.percentage_change))
    return DropNotification(
        title=f"Price Drop Alert: {alert.name}",
        body=(
            f"Price dropped by {drop_pct}% from "
            f"${event.old_price:,.2f} to ${event.new_price:,.2f}"
        ),
        source_id=alert.source_id,
        retailer=alert.retailer,
    )


class PriceTracker:
    """Polls every tracked product on an interval, sequentially.

    Lookups go through the coordinator so they share quota and
    breaker state with interactive searches.  Alerts and the
    append-only update log are persisted through :class:`JsonStore`.
    """

    ALERTS_NAMESPACE = "price_alerts"
    UPDATES_NAMESPACE = "price_updates"

    def __init__(
        self,
        coordinator: SearchCoordinator,
        store: JsonStore | None = None,
        notifier: NotificationSink | None = None,
        interval: float | None = None,
        update_store: JsonStore | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.store = store or JsonStore(self.ALERTS_NAMESPACE)
        self.update_store = update_store or JsonStore(
            self.UPDATES_NAMESPACE, data_dir=self.store.data_dir
        )
        self.notifier: NotificationSink = (
            notifier or LoggingNotificationSink()
        )
        self.interval = (
            interval if interval is not None else Settings.PRICE_CHECK_INTERVAL
        )
        self._alerts: dict[str, PriceAlert] = {}
        self._task: asyncio.Task[None] | None = None
        self._load()

    # ── Persistence ──────────────────────────────────────

    def _load(self) -> None:
        for row in self.store.load():
            try:
                alert = PriceAlert.from_dict(row)
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning("Skipping malformed alert row: %s", exc)
                continue
            self._alerts[alert.id] = alert
        if self._alerts:
            logger.info("Loaded %d tracked product(s)", len(self._alerts))

    def _persist(self) -> None:
        self.store.save([a.to_dict() for a in self._alerts.values()])

    # ── Alert management ─────────────────────────────────

    @property
    def alerts(self) -> list[PriceAlert]:
        return list(self._alerts.values())

    def track(
        self,
        product: ProductSummary,
        threshold_price: float | None = None,
        threshold_percentage: float | None = None,
    ) -> PriceAlert:
        """Start tracking *product*; re-tracking returns the same alert."""
        if product.price is None:
            raise InvalidSearchRequest(
                f"cannot track {product.source_id}: no current price"
            )
        for alert in self._alerts.values():
            if (
                alert.source_id == product.source_id
                and alert.retailer is product.retailer
            ):
                return alert

        alert = PriceAlert(
            source_id=product.source_id,
            retailer=product.retailer,
            name=product.name,
            current_price=product.price,
            initial_price=product.price,
            threshold_price=threshold_price,
            threshold_percentage=threshold_percentage,
            image_url=product.image_urls[0] if product.image_urls else None,
        )
        self._alerts[alert.id] = alert
        self._persist()
        logger.info(
            "Tracking %s:%s at $%.2f",
            alert.retailer.value,
            alert.source_id,
            alert.current_price,
        )
        return alert

    def untrack(self, alert_id: str) -> bool:
        if self._alerts.pop(alert_id, None) is None:
            return False
        self._persist()
        return True

    def set_threshold(
        self,
        alert_id: str,
        threshold_price: float | None = None,
        threshold_percentage: float | None = None,
    ) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None:
            return False
        alert.threshold_price = threshold_price
        alert.threshold_percentage = threshold_percentage
        self._persist()
        return True

    def total_savings(self) -> float:
        return sum(alert.savings for alert in self._alerts.values())

    # ── Polling ──────────────────────────────────────────

    async def check_all(self) -> list[PriceUpdateEvent]:
        """Re-poll every alert once, one at a time.

        A failed lookup is logged and skipped; it never stops the
        rest of the batch.
        """
        events: list[PriceUpdateEvent] = []
        for alert in list(self._alerts.values()):
            try:
                outcome = await self.coordinator.get_details(
                    alert.retailer, alert.source_id, use_cache=False
                )
            except Exception as exc:
                logger.error(
                    "Price check for %s:%s raised: %s",
                    alert.retailer.value,
                    alert.source_id,
                    exc,
                    exc_info=True,
                )
                continue
            if outcome.product is None:
                logger.warning(
                    "Price check for %s:%s failed: %s",
                    alert.retailer.value,
                    alert.source_id,
                    outcome.message or outcome.error,
                )
                continue

            now = datetime.now()
            alert.last_checked_at = now
            new_price = outcome.product.price
            if new_price is None or new_price == alert.current_price:
                continue

            event = PriceUpdateEvent(
                source_id=alert.source_id,
                retailer=alert.retailer,
                old_price=alert.current_price,
                new_price=new_price,
                timestamp=now,
            )
            events.append(event)
            alert.current_price = new_price
            logger.info(
                "Price change for %s:%s: $%.2f -> $%.2f (%+.1f%%)",
                alert.retailer.value,
                alert.source_id,
                event.old_price,
                event.new_price,
                event.percentage_change,
            )
            if is_qualifying_drop(alert, event):
                try:
                    self.notifier.deliver(build_notification(alert, event))
                except Exception as exc:
                    logger.error(
                        "Drop notification for %s:%s failed: %s",
                        alert.retailer.value,
                        alert.source_id,
                        exc,
                        exc_info=True,
                    )

        if self._alerts:
            self._persist()
        self.update_store.append([e.to_dict() for e in events])
        return events

    async def run(self) -> None:
        """Check, sleep, repeat until cancelled."""
        logger.info(
            "Price tracker started (%d item(s), every %.0fs)",
            len(self._alerts),
            self.interval,
        )
        while True:
            try:
                await self.check_all()
            except Exception as exc:
                logger.error(
                    "Price check iteration failed: %s", exc, exc_info=True
                )
            await asyncio.sleep(self.interval)

    def start(self) -> "asyncio.Task[None]":
        """Launch :meth:`run` as a background task (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="price-tracker")
        return self._task

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Price tracker stopped")
