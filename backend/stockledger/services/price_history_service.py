# Overview: Service-layer operations for price history; append-only audit of price changes.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import PriceHistoryEntry
from ..time_utils import utcnow

CHANGE_SELLING_PRICE = "selling_price"
CHANGE_COST_PRICE = "cost_price"
CHANGE_BOTH = "both"

CHANGE_TYPES = (CHANGE_SELLING_PRICE, CHANGE_COST_PRICE, CHANGE_BOTH)


def change_type_for(
    old_selling_cents: int,
    new_selling_cents: int,
    old_cost_cents: int,
    new_cost_cents: int,
) -> str | None:
    """Classify a price mutation; None when nothing changed."""
    selling_changed = old_selling_cents != new_selling_cents
    cost_changed = old_cost_cents != new_cost_cents
    if selling_changed and cost_changed:
        return CHANGE_BOTH
    if selling_changed:
        return CHANGE_SELLING_PRICE
    if cost_changed:
        return CHANGE_COST_PRICE
    return None


def record(
    *,
    product_id: int,
    selling_price_cents: int,
    cost_price_cents: int,
    change_type: str,
    reason: str | None = None,
) -> PriceHistoryEntry:
    """
    Append a price history entry.

    Called by ledger_service inside its own transaction: the entry is
    flushed, never committed here. No business validation beyond required
    fields; storage errors propagate to the caller's transaction.
    """
    if product_id is None or selling_price_cents is None or cost_price_cents is None:
        raise ValidationError("product_id, selling_price_cents and cost_price_cents are required")
    if change_type not in CHANGE_TYPES:
        raise ValidationError(
            f"change_type must be one of: {', '.join(CHANGE_TYPES)}",
            details={"change_type": change_type},
        )

    entry = PriceHistoryEntry(
        product_id=product_id,
        selling_price_cents=selling_price_cents,
        cost_price_cents=cost_price_cents,
        change_type=change_type,
        reason=reason,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_price_history(product_id: int, limit: int = 200) -> list[PriceHistoryEntry]:
    return (
        PriceHistoryEntry.query.filter_by(product_id=product_id)
        .order_by(PriceHistoryEntry.created_at.desc(), PriceHistoryEntry.id.desc())
        .limit(limit)
        .all()
    )
