# Overview: Low-stock notifications published after a sale commits.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from blinker import Namespace
from flask import current_app

_signals = Namespace()

# Receivers get ``sender`` (the Flask app) and ``event`` (a LowStockEvent).
low_stock = _signals.signal("low-stock")


@dataclass(frozen=True)
class LowStockEvent:
    product_id: int
    product_name: str
    current_stock: Decimal
    threshold: Decimal

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "current_stock": str(self.current_stock),
            "threshold": str(self.threshold),
        }


def emit_low_stock(events: list[LowStockEvent]) -> None:
    """Send each event to the ``low_stock`` receivers, in order."""
    if not events:
        return
    app = current_app._get_current_object()
    for event in events:
        low_stock.send(app, event=event)


def log_low_stock(sender, event: LowStockEvent, **extra) -> None:
    if not sender.config.get("LOW_STOCK_LOGGING", True):
        return
    sender.logger.warning(
        "Low stock: %s (product %s) at %s, threshold %s",
        event.product_name,
        event.product_id,
        event.current_stock,
        event.threshold,
    )
