# src/models/price_alert.py

"""Price tracking models: alerts, update events and drop notifications."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.models.product import RetailerId


@dataclass
class PriceAlert:
    """A product the user asked to track for price drops."""

    source_id: str
    retailer: RetailerId
    name: str
    current_price: float
    initial_price: float
    threshold_price: float | None = None
    threshold_percentage: float | None = None
    last_checked_at: datetime = field(default_factory=datetime.now)
    image_url: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def price_difference(self) -> float:
        """Initial minus current price (positive means cheaper now)."""
        return self.initial_price - self.current_price

    @property
    def savings(self) -> float:
        """Money saved since tracking started (never negative)."""
        return max(0.0, self.price_difference)

    @property
    def has_custom_threshold(self) -> bool:
        """True when the user set a price or percentage threshold."""
        return (
            self.threshold_price is not None
            or self.threshold_percentage is not None
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the JSON persistence sink."""
        return {
            "id": self.id,
            "source_id": self.source_id,
            "retailer": self.retailer.value,
            "name": self.name,
            "current_price": self.current_price,
            "initial_price": self.initial_price,
            "threshold_price": self.threshold_price,
            "threshold_percentage": self.threshold_percentage,
            "last_checked_at": self.last_checked_at.isoformat(),
            "image_url": self.image_url,
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "PriceAlert":
        """Rebuild an alert from its persisted form."""
        return cls(
            id=str(row["id"]),
            source_id=str(row["source_id"]),
            retailer=RetailerId(row["retailer"]),
            name=str(row.get("name", "")),
            current_price=float(row["current_price"]),
            initial_price=float(row["initial_price"]),
            threshold_price=row.get("threshold_price"),
            threshold_percentage=row.get("threshold_percentage"),
            last_checked_at=datetime.fromisoformat(
                row["last_checked_at"]
            ),
            image_url=row.get("image_url"),
        )


@dataclass(frozen=True)
class PriceUpdateEvent:
    """An observed price change.  Append-only, never mutated."""

    source_id: str
    retailer: RetailerId
    old_price: float
    new_price: float
    timestamp: datetime

    @property
    def percentage_change(self) -> float:
        """Signed change relative to the old price."""
        if self.old_price == 0:
            return 0.0
        return (self.new_price - self.old_price) / self.old_price * 100

    @property
    def is_decrease(self) -> bool:
        return self.new_price < self.old_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "retailer": self.retailer.value,
            "old_price": self.old_price,
            "new_price": self.new_price,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class DropNotification:
    """Payload handed to the notification sink on a qualifying drop."""

    title: str
    body: str
    source_id: str
    retailer: RetailerId
