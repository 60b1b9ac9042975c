"""
Return Processing Service

WHY: A return reverses all or part of a committed sale without editing it.
Stock comes back through the product ledger (type=return), the refund is
recorded as a ReturnRecord, and the sale only gains the is_returned flag
once every unit has come back.

DESIGN PRINCIPLES:
- Cumulative bound: for each sale item, the sum of returned quantities
  across all ReturnRecords never exceeds the quantity sold.
- Refund per line = unit_price * returned quantity. The sale-level
  discount is NOT reapportioned onto partial returns.
- Cost price is not touched: returns restock at the current WAC.
- Soft-deleted products can still be restocked by a return.
- cancel_sale() is process_return() over every remaining quantity.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable

from flask import current_app
from sqlalchemy import func

from ..errors import (
    ExcessiveReturnError,
    NoItemsSelectedError,
    NotFoundError,
    SaleAlreadyReturnedError,
    ValidationError,
)
from ..extensions import db
from ..models import ReturnLine, ReturnRecord, Sale, SaleItem
from ..time_utils import utcnow
from ..validation import round_cents, to_id, to_quantity
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import _apply_stock_adjustment_inner, get_product

CANCEL_REASON = "Sale canceled"


# =============================================================================
# QUERIES
# =============================================================================

def get_returned_quantities(sale_id: int) -> dict[int, Decimal]:
    """Quantity already returned per sale_item_id."""
    rows = (
        db.session.query(ReturnLine.sale_item_id, func.sum(ReturnLine.quantity))
        .join(ReturnRecord, ReturnRecord.id == ReturnLine.return_id)
        .filter(ReturnRecord.sale_id == sale_id)
        .group_by(ReturnLine.sale_item_id)
        .all()
    )
    return {item_id: to_quantity(total or 0) for item_id, total in rows}


def get_returns_for_sale(sale_id: int) -> list[ReturnRecord]:
    return (
        ReturnRecord.query.filter_by(sale_id=sale_id)
        .order_by(ReturnRecord.created_at.desc(), ReturnRecord.id.desc())
        .all()
    )


def _load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    sale = query.first()
    if sale is None:
        raise NotFoundError("Sale", sale_id)
    return sale


def _parse_line_returns(line_returns) -> dict[int, Decimal]:
    requested: dict[int, Decimal] = {}
    for index, raw in enumerate(line_returns or []):
        if not isinstance(raw, dict) or raw.get("sale_item_id") is None:
            raise ValidationError("sale_item_id required", details={"line": index})
        item_id = to_id(raw["sale_item_id"], "sale_item_id")
        quantity = to_quantity(raw.get("return_quantity", 0), "return_quantity")
        if quantity < 0:
            raise ValidationError(
                "return_quantity cannot be negative",
                details={"line": index, "sale_item_id": item_id},
            )
        requested[item_id] = requested.get(item_id, Decimal(0)) + quantity
    return requested


# =============================================================================
# RETURN PROCESSING
# =============================================================================

def _process_return(
    sale_id: int,
    build_requests: Callable[[Sale, dict[int, Decimal]], dict[int, Decimal]],
    reason: str | None,
    *,
    cancellation: bool = False,
) -> ReturnRecord:
    # Sale items are immutable, so their products can be read before locking
    sale = _load_sale(sale_id)
    product_ids = [item.product_id for item in sale.items]

    def _op() -> ReturnRecord:
        sale = _load_sale(sale_id, lock=True)
        if sale.is_returned:
            raise SaleAlreadyReturnedError(sale.id)

        items: dict[int, SaleItem] = {item.id: item for item in sale.items}
        returned = get_returned_quantities(sale.id)
        requested = build_requests(sale, returned)

        selected: list[tuple[SaleItem, Decimal]] = []
        for item_id, quantity in requested.items():
            item = items.get(item_id)
            if item is None:
                raise NotFoundError("SaleItem", item_id)
            remaining = to_quantity(item.quantity) - returned.get(item_id, Decimal(0))
            if quantity > remaining:
                raise ExcessiveReturnError(item_id, requested=quantity, remaining=remaining)
            if quantity > 0:
                selected.append((item, quantity))

        if not selected:
            raise NoItemsSelectedError()

        now = utcnow()
        record = ReturnRecord(
            sale_id=sale.id,
            refund_cents=0,
            reason=reason,
            is_cancellation=cancellation,
            created_at=now,
        )
        db.session.add(record)
        db.session.flush()

        refund_total = 0
        for item, quantity in selected:
            product = get_product(item.product_id, lock=True)
            _apply_stock_adjustment_inner(
                product,
                quantity_delta=quantity,
                adjustment_type="return",
                reason=reason or "Customer return",
                reference=sale.receipt_number,
            )
            line_refund = round_cents(Decimal(item.unit_price_cents) * quantity)
            refund_total += line_refund
            db.session.add(ReturnLine(
                return_id=record.id,
                sale_item_id=item.id,
                product_id=item.product_id,
                quantity=quantity,
                unit_price_cents=item.unit_price_cents,
                refund_cents=line_refund,
            ))
            returned[item.id] = returned.get(item.id, Decimal(0)) + quantity

        record.refund_cents = refund_total

        if all(returned.get(item.id, Decimal(0)) >= to_quantity(item.quantity) for item in items.values()):
            sale.is_returned = True
            sale.updated_at = now
            if cancellation:
                marker = f"CANCELED: {now.isoformat()}"
                sale.notes = f"{sale.notes} | {marker}" if sale.notes else marker

        db.session.flush()
        return record

    record = run_in_transaction(_op, product_ids=product_ids)
    current_app.logger.info(
        "Return %s on sale %s: refund %s cents%s",
        record.id,
        sale_id,
        record.refund_cents,
        " (cancellation)" if cancellation else "",
    )
    return record


def process_return(sale_id: int, line_returns, reason: str | None = None) -> ReturnRecord:
    """
    Return some or all units of a committed sale.

    line_returns: [{"sale_item_id": int, "return_quantity": number}, ...]

    Raises:
        NotFoundError: unknown sale or sale item not on this sale
        SaleAlreadyReturnedError: sale already fully returned
        ExcessiveReturnError: quantity above what remains unreturned
        NoItemsSelectedError: no line with a positive quantity
    """
    requested = _parse_line_returns(line_returns)
    return _process_return(sale_id, lambda sale, returned: requested, reason)


def cancel_sale(sale_id: int, reason: str = CANCEL_REASON) -> ReturnRecord:
    """Return every remaining unit of every item on the sale."""
    def _remaining(sale: Sale, returned: dict[int, Decimal]) -> dict[int, Decimal]:
        return {
            item.id: to_quantity(item.quantity) - returned.get(item.id, Decimal(0))
            for item in sale.items
        }

    return _process_return(sale_id, _remaining, reason, cancellation=True)
