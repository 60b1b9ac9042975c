# Overview: Service-layer operations for the product ledger; the single authority for stock and cost.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import (
    InsufficientStockError,
    NotFoundError,
    ProductUnavailableError,
    ValidationError,
)
from ..extensions import db
from ..models import Product, StockAdjustment
from ..time_utils import utcnow
from ..validation import (
    ADJUSTMENT_TYPES,
    UNITS,
    require_choice,
    round_cents,
    to_cents,
    to_optional_cents,
    to_quantity,
)
from . import price_history_service
from .concurrency import lock_for_update, run_in_transaction

"""
Product Ledger Invariants (authoritative)

- Product.stock_quantity and Product.cost_price_cents change ONLY here.
- Every stock change appends exactly one StockAdjustment (append-only) that
  snapshots the resulting stock and cost.
- stock_quantity never goes negative; an adjustment that would make it
  negative is rejected before anything is written.
- Sign rules: add/return take a positive delta, sale/remove a negative one.
- Weighted-average cost (WAC) is recomputed only on `add` with a new cost:
    (stock * cost + delta * new_cost) / (stock + delta)
  rounded to the nearest cent, half-up. Every other type keeps the cost.
- Any committed selling/cost price change appends a PriceHistoryEntry in the
  same transaction.
"""

POSITIVE_TYPES = ("add", "return")
NEGATIVE_TYPES = ("sale", "remove")


def _stock_of(product: Product) -> Decimal:
    return to_quantity(product.stock_quantity or 0, "stock_quantity")


def weighted_average_cost_cents(
    current_stock: Decimal,
    current_cost_cents: int,
    quantity_delta: Decimal,
    new_cost_cents: int,
) -> int:
    """
    Recalculate unit cost after receiving ``quantity_delta`` units at ``new_cost_cents``.

    If the resulting stock is zero the last known cost is retained.
    """
    resulting_stock = current_stock + quantity_delta
    if resulting_stock <= 0:
        return current_cost_cents

    current_value = current_stock * current_cost_cents
    incoming_value = quantity_delta * new_cost_cents
    return round_cents((current_value + incoming_value) / resulting_stock)


def get_product(product_id: int, *, lock: bool = False) -> Product:
    """Load a product (soft-deleted included) or raise NotFoundError."""
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    product = query.first()
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def ensure_sellable(product: Product) -> None:
    if product.is_deleted:
        raise ProductUnavailableError(
            f"Product {product.name!r} has been deleted",
            details={"product_id": product.id},
        )


def validate_adjustment(
    quantity_delta,
    adjustment_type,
    new_cost_cents=None,
) -> tuple[Decimal, str, int | None]:
    """Coerce and check an adjustment request; raises ValidationError."""
    adjustment_type = require_choice(adjustment_type, ADJUSTMENT_TYPES, "adjustment_type")
    delta = to_quantity(quantity_delta, "quantity_delta")
    cost = to_optional_cents(new_cost_cents, "new_cost_cents")

    if delta == 0:
        raise ValidationError("quantity_delta cannot be zero", details={"field": "quantity_delta"})
    if adjustment_type in POSITIVE_TYPES and delta < 0:
        raise ValidationError(
            f"{adjustment_type} adjustments require a positive quantity_delta",
            details={"adjustment_type": adjustment_type},
        )
    if adjustment_type in NEGATIVE_TYPES and delta > 0:
        raise ValidationError(
            f"{adjustment_type} adjustments require a negative quantity_delta",
            details={"adjustment_type": adjustment_type},
        )
    if cost is not None and adjustment_type != "add":
        raise ValidationError(
            "new_cost_cents is only accepted for add adjustments",
            details={"adjustment_type": adjustment_type},
        )
    return delta, adjustment_type, cost


def _apply_stock_adjustment_inner(
    product: Product,
    *,
    quantity_delta: Decimal,
    adjustment_type: str,
    new_cost_cents: int | None = None,
    reason: str | None = None,
    reference: str | None = None,
) -> StockAdjustment:
    """Core adjustment logic without locking, retry, or commit.

    Called by the public apply_stock_adjustment() and by the sale and return
    services, which already hold the product locks and own the transaction.
    """
    current_stock = _stock_of(product)
    current_cost = product.cost_price_cents or 0

    resulting_stock = current_stock + quantity_delta
    if resulting_stock < 0:
        raise InsufficientStockError(
            product.id,
            requested=-quantity_delta,
            available=current_stock,
            product_name=product.name,
        )

    if adjustment_type == "add" and new_cost_cents is not None:
        resulting_cost = weighted_average_cost_cents(
            current_stock, current_cost, quantity_delta, new_cost_cents
        )
    else:
        resulting_cost = current_cost

    now = utcnow()
    product.stock_quantity = resulting_stock
    product.cost_price_cents = resulting_cost
    product.updated_at = now

    adjustment = StockAdjustment(
        product_id=product.id,
        adjustment_type=adjustment_type,
        quantity_delta=quantity_delta,
        reason=reason,
        reference=reference,
        resulting_stock=resulting_stock,
        resulting_cost_price_cents=resulting_cost,
        created_at=now,
    )
    db.session.add(adjustment)
    db.session.flush()

    change_type = price_history_service.change_type_for(
        product.selling_price_cents,
        product.selling_price_cents,
        current_cost,
        resulting_cost,
    )
    if change_type:
        price_history_service.record(
            product_id=product.id,
            selling_price_cents=product.selling_price_cents,
            cost_price_cents=resulting_cost,
            change_type=change_type,
            reason=reason or "Stock replenishment",
        )

    return adjustment


def apply_stock_adjustment(
    product_id: int,
    quantity_delta,
    adjustment_type: str,
    new_cost_cents=None,
    reason: str | None = None,
    reference: str | None = None,
) -> StockAdjustment:
    """
    Apply a manual stock adjustment (replenishment, shrink, correction).

    WHY separate from sales: a sale touches many products in one
    transaction and calls _apply_stock_adjustment_inner() directly. This
    entry point is one product, one transaction.
    """
    delta, adjustment_type, cost = validate_adjustment(quantity_delta, adjustment_type, new_cost_cents)

    def _op() -> StockAdjustment:
        product = get_product(product_id, lock=True)
        ensure_sellable(product)
        return _apply_stock_adjustment_inner(
            product,
            quantity_delta=delta,
            adjustment_type=adjustment_type,
            new_cost_cents=cost,
            reason=reason,
            reference=reference,
        )

    adjustment = run_in_transaction(_op, product_ids=[product_id])
    current_app.logger.info(
        "Stock %s of %s on product %s -> stock %s, cost %s",
        adjustment_type,
        delta,
        product_id,
        adjustment.resulting_stock,
        adjustment.resulting_cost_price_cents,
    )
    return adjustment


def create_product(
    name: str,
    selling_price_cents,
    cost_price_cents=0,
    *,
    stock_quantity=0,
    min_stock_threshold=5,
    unit: str = "piece",
    barcode: str | None = None,
    category_id: int | None = None,
) -> Product:
    """
    Create a product; opening stock is booked as an `add` adjustment.

    Catalog tooling normally owns product creation. This entry point is used
    by the CLI bootstrap and keeps the ledger complete from the first unit.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    unit = require_choice(unit, UNITS, "unit")
    selling = to_cents(selling_price_cents, "selling_price_cents")
    cost = to_cents(cost_price_cents, "cost_price_cents")
    opening = to_quantity(stock_quantity, "stock_quantity")
    threshold = to_quantity(min_stock_threshold, "min_stock_threshold")
    if opening < 0 or threshold < 0:
        raise ValidationError("stock_quantity and min_stock_threshold cannot be negative")

    def _op() -> Product:
        if db.session.query(Product.id).filter_by(name=name).first() is not None:
            raise ValidationError(f"Product {name!r} already exists", details={"field": "name"})
        if barcode and db.session.query(Product.id).filter_by(barcode=barcode).first() is not None:
            raise ValidationError(f"Barcode {barcode!r} already in use", details={"field": "barcode"})

        now = utcnow()
        product = Product(
            name=name,
            barcode=barcode or None,
            category_id=category_id,
            unit=unit,
            selling_price_cents=selling,
            cost_price_cents=cost,
            stock_quantity=0,
            min_stock_threshold=threshold,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        db.session.add(product)
        db.session.flush()

        if opening > 0:
            _apply_stock_adjustment_inner(
                product,
                quantity_delta=opening,
                adjustment_type="add",
                new_cost_cents=cost,
                reason="Opening stock",
            )
        return product

    product = run_in_transaction(_op)
    current_app.logger.info("Created product %s (%s) with stock %s", product.id, name, opening)
    return product


def update_selling_price(product_id: int, selling_price_cents, reason: str | None = None) -> Product:
    """Change the selling price and record it in price history when it differs."""
    new_price = to_cents(selling_price_cents, "selling_price_cents")

    def _op() -> Product:
        product = get_product(product_id, lock=True)
        ensure_sellable(product)
        old_price = product.selling_price_cents
        change_type = price_history_service.change_type_for(
            old_price, new_price, product.cost_price_cents, product.cost_price_cents
        )
        if change_type is None:
            return product

        product.selling_price_cents = new_price
        product.updated_at = utcnow()
        db.session.flush()
        price_history_service.record(
            product_id=product.id,
            selling_price_cents=new_price,
            cost_price_cents=product.cost_price_cents,
            change_type=change_type,
            reason=reason or "Price update",
        )
        return product

    return run_in_transaction(_op, product_ids=[product_id])


def soft_delete_product(product_id: int) -> Product:
    """Hide a product from sale; history keeps referencing it."""
    def _op() -> Product:
        product = get_product(product_id, lock=True)
        if not product.is_deleted:
            product.is_deleted = True
            product.deleted_at = utcnow()
        return product

    return run_in_transaction(_op, product_ids=[product_id])


def restore_product(product_id: int) -> Product:
    def _op() -> Product:
        product = get_product(product_id, lock=True)
        if product.is_deleted:
            product.is_deleted = False
            product.deleted_at = None
        return product

    return run_in_transaction(_op, product_ids=[product_id])


def list_stock_adjustments(product_id: int, limit: int = 200) -> list[StockAdjustment]:
    get_product(product_id)
    return (
        StockAdjustment.query.filter_by(product_id=product_id)
        .order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )
