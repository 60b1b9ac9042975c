"""
Sales Service - cart to committed sale

WHY: A sale is the one place where money and stock move together. Pricing,
discount, tax and payment are all settled BEFORE the first write, then the
stock decrements, the sale header and its items land in a single
transaction.

DISCOUNT POLICIES (applied to the subtotal):
- fixed:      min(value, subtotal)                 value in cents
- percentage: subtotal * min(value, 100) / 100     value in percent
- total:      max(0, subtotal - value)             value = desired total, cents

PAYMENT METHODS:
- cash:  amount_paid >= total, change = amount_paid - total
- card:  amount_paid == total, no change
- split: cash + card >= total, change = max(0, cash - (total - card));
         the card portion never exceeds the total
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    InsufficientPaymentError,
    InsufficientStockError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..events import LowStockEvent, emit_low_stock
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..time_utils import utcnow, to_utc_z
from ..validation import (
    DISCOUNT_TYPES,
    PAYMENT_METHODS,
    require_choice,
    round_cents,
    to_cents,
    to_decimal,
    to_id,
    to_quantity,
)
from .concurrency import run_in_transaction
from .ledger_service import _apply_stock_adjustment_inner, ensure_sellable, get_product

RECEIPT_ATTEMPTS = 3


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: Decimal
    unit_price_cents: int | None = None
    discount_cents: int = 0


@dataclass(frozen=True)
class Discount:
    type: str
    value: Decimal


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int


@dataclass(frozen=True)
class PaymentResult:
    amount_paid_cents: int
    change_cents: int
    cash_amount_cents: int
    card_amount_cents: int


# =============================================================================
# INPUT PARSING
# =============================================================================

def parse_cart_lines(cart_lines) -> list[CartLine]:
    if not cart_lines:
        raise ValidationError("Cannot finalize a sale with no lines")

    parsed = []
    for index, raw in enumerate(cart_lines):
        if isinstance(raw, CartLine):
            line = raw
        elif isinstance(raw, dict):
            if raw.get("product_id") is None:
                raise ValidationError("product_id required", details={"line": index})
            unit_price = raw.get("unit_price_cents")
            line = CartLine(
                product_id=to_id(raw["product_id"], "product_id"),
                quantity=to_quantity(raw.get("quantity"), "quantity"),
                unit_price_cents=to_cents(unit_price, "unit_price_cents") if unit_price is not None else None,
                discount_cents=to_cents(raw.get("discount_cents", 0) or 0, "discount_cents"),
            )
        else:
            raise ValidationError("cart line must be an object", details={"line": index})

        if line.quantity <= 0:
            raise ValidationError(
                "quantity must be greater than zero",
                details={"line": index, "product_id": line.product_id},
            )
        parsed.append(line)
    return parsed


def parse_discount(discount) -> Discount | None:
    if discount is None:
        return None
    if isinstance(discount, Discount):
        return discount
    if not isinstance(discount, dict):
        raise ValidationError("discount must be an object with type and value")

    discount_type = require_choice(discount.get("type"), DISCOUNT_TYPES, "discount.type")
    if discount_type == "percentage":
        value = to_decimal(discount.get("value"), "discount.value")
        if value < 0:
            raise ValidationError("discount.value cannot be negative", details={"field": "discount.value"})
    else:
        value = Decimal(to_cents(discount.get("value"), "discount.value"))
    return Discount(type=discount_type, value=value)


# =============================================================================
# PRICING
# =============================================================================

def compute_discount_cents(subtotal_cents: int, discount: Discount | None) -> int:
    """Apply a discount policy; the result is always within [0, subtotal]."""
    if discount is None:
        return 0

    if discount.type == "fixed":
        return min(int(discount.value), subtotal_cents)

    if discount.type == "percentage":
        percent = min(discount.value, Decimal(100))
        return round_cents(Decimal(subtotal_cents) * percent / 100)

    # "total": the customer pays the requested total; never an upcharge
    desired_total = int(discount.value)
    return max(0, subtotal_cents - desired_total)


def compute_tax_cents(taxable_cents: int, tax_rate=None, enable_tax: bool = False) -> int:
    if not enable_tax or tax_rate is None:
        return 0
    rate = to_decimal(tax_rate, "tax_rate")
    if rate < 0:
        raise ValidationError("tax_rate cannot be negative", details={"field": "tax_rate"})
    return round_cents(Decimal(taxable_cents) * rate / 100)


def compute_totals(
    subtotal_cents: int,
    discount: Discount | None = None,
    *,
    tax_rate=None,
    enable_tax: bool = False,
) -> SaleTotals:
    discount_cents = compute_discount_cents(subtotal_cents, discount)
    tax_cents = compute_tax_cents(subtotal_cents - discount_cents, tax_rate, enable_tax)
    return SaleTotals(
        subtotal_cents=subtotal_cents,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
        total_cents=subtotal_cents - discount_cents + tax_cents,
    )


def settle_payment(total_cents: int, payment_method: str, payment: dict | None = None) -> PaymentResult:
    """Validate tendered amounts for ``payment_method`` and compute change."""
    payment = payment or {}
    payment_method = require_choice(payment_method, PAYMENT_METHODS, "payment_method")

    if payment_method == "cash":
        paid = to_cents(payment.get("amount_paid_cents", 0) or 0, "amount_paid_cents")
        if paid < total_cents:
            raise InsufficientPaymentError(total_cents, paid)
        return PaymentResult(
            amount_paid_cents=paid,
            change_cents=paid - total_cents,
            cash_amount_cents=paid,
            card_amount_cents=0,
        )

    if payment_method == "card":
        paid = to_cents(payment.get("amount_paid_cents", total_cents), "amount_paid_cents")
        if paid < total_cents:
            raise InsufficientPaymentError(total_cents, paid)
        if paid > total_cents:
            raise ValidationError(
                "Card payments must equal the sale total",
                details={"total_cents": total_cents, "amount_paid_cents": paid},
            )
        return PaymentResult(
            amount_paid_cents=total_cents,
            change_cents=0,
            cash_amount_cents=0,
            card_amount_cents=total_cents,
        )

    cash = to_cents(payment.get("cash_amount_cents", 0) or 0, "cash_amount_cents")
    card = to_cents(payment.get("card_amount_cents", 0) or 0, "card_amount_cents")
    if card > total_cents:
        raise ValidationError(
            "Card portion cannot exceed the sale total",
            details={"total_cents": total_cents, "card_amount_cents": card},
        )
    if cash + card < total_cents:
        raise InsufficientPaymentError(total_cents, cash + card)
    return PaymentResult(
        amount_paid_cents=cash + card,
        change_cents=max(0, cash - (total_cents - card)),
        cash_amount_cents=cash,
        card_amount_cents=card,
    )


# =============================================================================
# RECEIPT NUMBERS
# =============================================================================

def next_receipt_number(now: datetime, prefix: str = "S") -> str:
    """
    Allocate ``<prefix><YYYYMMDD>-<HHMMSS>``; on collision append -2, -3, ...

    Must run inside the sale's write transaction so the lookup and the
    insert are not interleaved with another writer.
    """
    base = f"{prefix}{now:%Y%m%d}-{now:%H%M%S}"
    taken = {
        number
        for (number,) in db.session.query(Sale.receipt_number).filter(
            (Sale.receipt_number == base) | Sale.receipt_number.like(f"{base}-%")
        )
    }
    if base not in taken:
        return base

    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def _is_receipt_collision(exc: PersistenceError) -> bool:
    cause = exc.__cause__
    return isinstance(cause, IntegrityError) and "receipt_number" in str(cause)


# =============================================================================
# FINALIZE
# =============================================================================

def _validate_on_hand(lines: list[CartLine], products: dict[int, Product]) -> None:
    requested: dict[int, Decimal] = {}
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, Decimal(0)) + line.quantity

    for product_id, quantity in requested.items():
        product = products[product_id]
        available = to_quantity(product.stock_quantity or 0)
        if quantity > available:
            raise InsufficientStockError(
                product_id,
                requested=quantity,
                available=available,
                product_name=product.name,
            )


def finalize_sale(
    cart_lines,
    discount=None,
    payment_method: str = "cash",
    payment: dict | None = None,
    *,
    tax_rate=None,
    enable_tax: bool = False,
    notes: str | None = None,
    receipt_prefix: str | None = None,
) -> Sale:
    """
    Convert a cart into a committed Sale with its SaleItems.

    Commit sequence (single transaction):
    1. decrement stock for every line (StockAdjustment type=sale)
    2. insert the Sale header with computed totals
    3. insert SaleItems with the cost price captured before the decrement

    Any failure rolls back all three. Low-stock events are published only
    after the commit succeeds.
    """
    lines = parse_cart_lines(cart_lines)
    parsed_discount = parse_discount(discount)
    payment_method = require_choice(payment_method, PAYMENT_METHODS, "payment_method")
    if receipt_prefix is None:
        receipt_prefix = current_app.config.get("RECEIPT_PREFIX", "S")

    product_ids = [line.product_id for line in lines]
    low_stock_events: list[LowStockEvent] = []

    def _op() -> Sale:
        low_stock_events.clear()

        products: dict[int, Product] = {}
        for product_id in sorted(set(product_ids)):
            product = get_product(product_id, lock=True)
            ensure_sellable(product)
            products[product_id] = product

        _validate_on_hand(lines, products)

        priced = []
        for index, line in enumerate(lines):
            product = products[line.product_id]
            unit_price = line.unit_price_cents
            if unit_price is None:
                unit_price = product.selling_price_cents
            gross = round_cents(Decimal(unit_price) * line.quantity)
            if line.discount_cents > gross:
                raise ValidationError(
                    "Line discount cannot exceed the line total",
                    details={"line": index, "product_id": line.product_id},
                )
            priced.append((line, product, unit_price, gross - line.discount_cents))

        subtotal = sum(total for _, _, _, total in priced)
        totals = compute_totals(subtotal, parsed_discount, tax_rate=tax_rate, enable_tax=enable_tax)
        settled = settle_payment(totals.total_cents, payment_method, payment)

        # WAC does not move on a sale, but capture it before touching stock
        historical_costs = {pid: product.cost_price_cents for pid, product in products.items()}

        now = utcnow()
        receipt_number = next_receipt_number(now, receipt_prefix)

        for line, product, _, _ in priced:
            _apply_stock_adjustment_inner(
                product,
                quantity_delta=-line.quantity,
                adjustment_type="sale",
                reason="Sale",
                reference=receipt_number,
            )

        sale = Sale(
            receipt_number=receipt_number,
            subtotal_cents=totals.subtotal_cents,
            discount_type=parsed_discount.type if parsed_discount else None,
            discount_value=parsed_discount.value if parsed_discount else None,
            discount_cents=totals.discount_cents,
            tax_rate=to_decimal(tax_rate, "tax_rate") if enable_tax and tax_rate is not None else Decimal(0),
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            payment_method=payment_method,
            amount_paid_cents=settled.amount_paid_cents,
            change_cents=settled.change_cents,
            cash_amount_cents=settled.cash_amount_cents,
            card_amount_cents=settled.card_amount_cents,
            is_returned=False,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for line, product, unit_price, line_total in priced:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price_cents=unit_price,
                discount_cents=line.discount_cents,
                total_price_cents=line_total,
                historical_cost_cents=historical_costs[product.id],
                created_at=now,
            ))
        db.session.flush()

        for product in products.values():
            if product.is_low_stock:
                low_stock_events.append(LowStockEvent(
                    product_id=product.id,
                    product_name=product.name,
                    current_stock=to_quantity(product.stock_quantity),
                    threshold=to_quantity(product.min_stock_threshold),
                ))
        return sale

    for attempt in range(RECEIPT_ATTEMPTS):
        try:
            sale = run_in_transaction(_op, product_ids=product_ids)
            break
        except PersistenceError as exc:
            # another process took the same receipt number between lookup and commit
            if not _is_receipt_collision(exc) or attempt >= RECEIPT_ATTEMPTS - 1:
                raise

    current_app.logger.info(
        "Sale %s committed: %s line(s), total %s cents (%s)",
        sale.receipt_number,
        len(lines),
        sale.total_cents,
        sale.payment_method,
    )
    emit_low_stock(low_stock_events)
    return sale


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale", sale_id)
    return sale


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    payment_method: str | None = None,
    limit: int = 100,
) -> list[Sale]:
    """Sales in [start, end] (both inclusive), newest first."""
    q = Sale.query
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    if payment_method:
        q = q.filter(Sale.payment_method == require_choice(payment_method, PAYMENT_METHODS, "payment_method"))
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def build_receipt(sale: Sale) -> dict:
    """Receipt view-model; formatting and printing happen in the UI."""
    receipt = {
        "receipt_number": sale.receipt_number,
        "created_at": to_utc_z(sale.created_at),
        "lines": [
            {
                "product_name": item.product_name,
                "quantity": str(item.quantity),
                "unit_price_cents": item.unit_price_cents,
                "discount_cents": item.discount_cents,
                "total_price_cents": item.total_price_cents,
            }
            for item in sale.items
        ],
        "subtotal_cents": sale.subtotal_cents,
        "discount_cents": sale.discount_cents,
        "tax_cents": sale.tax_cents,
        "total_cents": sale.total_cents,
        "payment_method": sale.payment_method,
        "amount_paid_cents": sale.amount_paid_cents,
        "change_cents": sale.change_cents,
        "is_returned": sale.is_returned,
    }
    if sale.payment_method == "split":
        receipt["cash_amount_cents"] = sale.cash_amount_cents
        receipt["card_amount_cents"] = sale.card_amount_cents
    return receipt
