# Overview: Service-layer read models for stock levels, inventory value and margins.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, ReturnLine, ReturnRecord, Sale, SaleItem
from ..time_utils import to_utc_z, utc_day_bounds, utcnow
from ..validation import require_choice, round_cents, to_quantity

"""
Reporting Semantics (authoritative)

- Deleted (soft) products are excluded from stock and value reports.
- Low stock means stock_quantity <= min_stock_threshold.
- Inventory value uses the current weighted-average cost.
- Profit uses SaleItem.historical_cost_cents, never the current cost.
- Fully returned sales are excluded from profit; partially returned sales
  count net of their refunds and of the cost of the returned units.
- Period bounds are inclusive: start <= created_at <= end.
- Sales-ledger aggregates (today's total, revenue per payment method, top
  sellers) skip fully returned sales and are gross of partial returns.
"""

TOP_PRODUCT_SORTS = ("quantity", "revenue", "profit")


def get_low_stock_products() -> list[Product]:
    return (
        Product.query.filter(
            Product.is_deleted.is_(False),
            Product.stock_quantity <= Product.min_stock_threshold,
        )
        .order_by(Product.name.asc())
        .all()
    )


def get_inventory_value() -> dict:
    products = Product.query.filter(Product.is_deleted.is_(False)).all()

    total_value = 0
    total_units = Decimal(0)
    for product in products:
        stock = to_quantity(product.stock_quantity or 0)
        total_units += stock
        total_value += round_cents(stock * product.cost_price_cents)

    return {
        "product_count": len(products),
        "total_units": str(total_units),
        "inventory_value_cents": total_value,
        "low_stock_count": sum(1 for p in products if p.is_low_stock),
    }


def get_profit_metrics(start: datetime | None = None, end: datetime | None = None) -> dict:
    sales_q = db.session.query(Sale.id, Sale.total_cents).filter(Sale.is_returned.is_(False))
    if start is not None:
        sales_q = sales_q.filter(Sale.created_at >= start)
    if end is not None:
        sales_q = sales_q.filter(Sale.created_at <= end)
    sales = sales_q.all()

    metrics = {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "sale_count": len(sales),
        "revenue_cents": 0,
        "cost_cents": 0,
        "profit_cents": 0,
        "profit_margin": 0.0,
    }
    if not sales:
        return metrics

    sale_ids = [sale_id for sale_id, _ in sales]
    gross_revenue = sum(total for _, total in sales)

    refunds = (
        db.session.query(db.func.coalesce(db.func.sum(ReturnRecord.refund_cents), 0))
        .filter(ReturnRecord.sale_id.in_(sale_ids))
        .scalar()
    )

    returned_by_item = dict(
        db.session.query(ReturnLine.sale_item_id, db.func.sum(ReturnLine.quantity))
        .join(ReturnRecord, ReturnRecord.id == ReturnLine.return_id)
        .filter(ReturnRecord.sale_id.in_(sale_ids))
        .group_by(ReturnLine.sale_item_id)
        .all()
    )

    cost = 0
    for item in SaleItem.query.filter(SaleItem.sale_id.in_(sale_ids)).all():
        kept = to_quantity(item.quantity) - to_quantity(returned_by_item.get(item.id) or 0)
        cost += round_cents(kept * item.historical_cost_cents)

    revenue = gross_revenue - int(refunds or 0)
    profit = revenue - cost
    margin = Decimal(0)
    if revenue > 0:
        margin = (Decimal(profit) * 100 / Decimal(revenue)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

    metrics.update({
        "revenue_cents": revenue,
        "cost_cents": cost,
        "profit_cents": profit,
        "profit_margin": float(margin),
    })
    return metrics


def _kept_sales_query(start: datetime | None, end: datetime | None):
    q = Sale.query.filter(Sale.is_returned.is_(False))
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    return q


def get_today_sales_total(now: datetime | None = None) -> dict:
    """Total of today's (UTC) sales that were not fully returned."""
    day_start, day_end = utc_day_bounds(now or utcnow())

    total, count = (
        _kept_sales_query(day_start, day_end)
        .with_entities(db.func.coalesce(db.func.sum(Sale.total_cents), 0), db.func.count(Sale.id))
        .one()
    )
    return {
        "date": day_start.date().isoformat(),
        "sale_count": int(count),
        "total_cents": int(total),
    }


def get_revenue_by_payment_method(start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    """Revenue per payment method, highest first. Fully returned sales are excluded."""
    q = _kept_sales_query(start, end).with_entities(
        Sale.payment_method,
        db.func.sum(Sale.total_cents),
        db.func.sum(Sale.card_amount_cents),
        db.func.count(Sale.id),
    )
    rows = [
        {
            "method": method,
            "revenue_cents": int(revenue or 0),
            "card_amount_cents": int(card or 0),
            "sale_count": int(count),
        }
        for method, revenue, card, count in q.group_by(Sale.payment_method).all()
    ]
    return sorted(rows, key=lambda row: (-row["revenue_cents"], row["method"]))


def get_top_selling_products(
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    limit: int = 5,
    sort_by: str = "quantity",
) -> list[dict]:
    """
    Best sellers over a period, ranked by quantity, revenue or profit.

    Figures are gross of partial returns; fully returned sales are excluded.
    Cost uses the historical cost captured on each sale item.
    """
    sort_by = require_choice(sort_by, TOP_PRODUCT_SORTS, "sort_by")
    if limit <= 0:
        raise ValidationError("limit must be positive", details={"field": "limit"})

    sale_ids = [sale_id for (sale_id,) in _kept_sales_query(start, end).with_entities(Sale.id)]
    if not sale_ids:
        return []

    totals: dict[int, dict] = {}
    for item in SaleItem.query.filter(SaleItem.sale_id.in_(sale_ids)).all():
        row = totals.setdefault(item.product_id, {
            "product_id": item.product_id,
            "name": item.product_name,
            "quantity": Decimal(0),
            "revenue_cents": 0,
            "cost_cents": 0,
        })
        quantity = to_quantity(item.quantity)
        row["quantity"] += quantity
        row["revenue_cents"] += item.total_price_cents
        row["cost_cents"] += round_cents(quantity * item.historical_cost_cents)

    for row in totals.values():
        row["profit_cents"] = row["revenue_cents"] - row["cost_cents"]
        margin = Decimal(0)
        if row["revenue_cents"] > 0:
            margin = (Decimal(row["profit_cents"]) * 100 / Decimal(row["revenue_cents"])).quantize(
                Decimal("0.1"), rounding=ROUND_HALF_UP
            )
        row["profit_margin"] = float(margin)

    sort_key = {
        "quantity": "quantity",
        "revenue": "revenue_cents",
        "profit": "profit_cents",
    }[sort_by]
    ranked = sorted(totals.values(), key=lambda row: (-row[sort_key], row["product_id"]))[:limit]
    for row in ranked:
        row["quantity"] = str(row["quantity"])
    return ranked
