from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ReturnRecord(db.Model):
    """
    Reversal of all or part of a committed sale.

    Created only by return_service. Summing ReturnLine.quantity per
    sale_item_id gives the quantity already returned for that line.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.Index("ix_returns_sale_created", "sale_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    refund_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)
    # True when this record was produced by cancel_sale
    is_cancellation = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    lines = db.relationship("ReturnLine", backref="return_record", lazy=True, order_by="ReturnLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "refund_cents": self.refund_cents,
            "reason": self.reason,
            "is_cancellation": self.is_cancellation,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class ReturnLine(db.Model):
    __tablename__ = "return_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)

    sale_item = db.relationship("SaleItem", backref=db.backref("return_lines", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "refund_cents": self.refund_cents,
        }
