# src/services/notifier.py

"""Delivery sinks for price-drop notifications."""

import logging
from typing import Protocol

from rich.console import Console
from rich.panel import Panel

from src.models.price_alert import DropNotification

logger = logging.getLogger("aggregator.notifier")


class NotificationSink(Protocol):
    def deliver(self, notification: DropNotification) -> None: ...


class LoggingNotificationSink:
    """Default sink: writes each notification to the log."""

    def __init__(self) -> None:
        self.delivered: list[DropNotification] = []

    def deliver(self, notification: DropNotification) -> None:
        self.delivered.append(notification)
        logger.info(
            "%s: %s [%s:%s]",
            notification.title,
            notification.body,
            notification.retailer.value,
            notification.source_id,
        )


class ConsoleNotificationSink:
    """Prints notifications as rich panels (used by the CLI)."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def deliver(self, notification: DropNotification) -> None:
        self.console.print(
            Panel(
                notification.body,
                title=f"[bold green]{notification.title}[/bold green]",
                subtitle=(
                    f"{notification.retailer.label} · {notification.source_id}"
                ),
                expand=False,
            )
        )
        logger.info("Delivered '%s' to console", notification.title)
