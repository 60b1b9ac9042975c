from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Committed sale header.

    Written once by sales_service.finalize_sale together with its items.
    Afterwards only ``is_returned`` and ``notes`` change (return bookkeeping).

    INVARIANT: total_cents == subtotal_cents - discount_cents + tax_cents
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "total_cents = subtotal_cents - discount_cents + tax_cents",
            name="ck_sales_total_identity",
        ),
        db.Index("ix_sales_created", "created_at"),
        db.Index("ix_sales_payment_created", "payment_method", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable receipt number (e.g., "S20250412-153012")
    receipt_number = db.Column(db.String(50), nullable=False, unique=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)

    # Discount as requested (fixed / percentage / total) and as applied
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(12, 2), nullable=True)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    tax_rate = db.Column(db.Numeric(6, 3), nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # cash, card, split
    payment_method = db.Column(db.String(16), nullable=False, default="cash", index=True)
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    card_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    is_returned = db.Column(db.Boolean, nullable=False, default=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": str(self.discount_value) if self.discount_value is not None else None,
            "discount_cents": self.discount_cents,
            "tax_rate": str(self.tax_rate),
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "cash_amount_cents": self.cash_amount_cents,
            "card_amount_cents": self.card_amount_cents,
            "is_returned": self.is_returned,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a committed sale.

    product_name, unit_price_cents and historical_cost_cents are snapshots
    taken at sale time; margin reporting relies on historical_cost_cents
    even after the product's cost later changes.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.Index("ix_sale_items_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    product_name = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)
    historical_cost_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_price_cents": self.total_price_cents,
            "historical_cost_cents": self.historical_cost_cents,
            "created_at": to_utc_z(self.created_at),
        }
