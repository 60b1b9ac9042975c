from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product stock and cost state.

    Catalog fields (name, barcode, category, unit) are maintained elsewhere.
    stock_quantity and cost_price_cents are mutated ONLY through
    ledger_service so that every change leaves a StockAdjustment behind.

    Money is stored in cents; quantities keep three decimals so weight and
    volume units can be sold fractionally.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_products_selling_price"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_price"),
        db.Index("ix_products_is_deleted", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False, unique=True)
    barcode = db.Column(db.String(50), nullable=True, unique=True)
    category_id = db.Column(db.Integer, nullable=True, index=True)
    unit = db.Column(db.String(16), nullable=False, default="piece")

    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    min_stock_threshold = db.Column(db.Numeric(14, 3), nullable=False, default=5)

    # Soft delete: referenced by historical sales, never hard-deleted
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.min_stock_threshold

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "unit": self.unit,
            "selling_price_cents": self.selling_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock_quantity": str(self.stock_quantity),
            "min_stock_threshold": str(self.min_stock_threshold),
            "is_low_stock": self.is_low_stock,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """
    Append-only ledger entry, one per stock-affecting operation.

    resulting_stock / resulting_cost_price_cents snapshot the product state
    right after the entry was applied.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adj_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    # add, remove, sale, return
    adjustment_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Numeric(14, 3), nullable=False)

    reason = db.Column(db.Text, nullable=True)
    # Receipt number of the sale, or a free-form manual reference
    reference = db.Column(db.String(100), nullable=True, index=True)

    resulting_stock = db.Column(db.Numeric(14, 3), nullable=False)
    resulting_cost_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "adjustment_type": self.adjustment_type,
            "quantity_delta": str(self.quantity_delta),
            "reason": self.reason,
            "reference": self.reference,
            "resulting_stock": str(self.resulting_stock),
            "resulting_cost_price_cents": self.resulting_cost_price_cents,
            "created_at": to_utc_z(self.created_at),
        }


class PriceHistoryEntry(db.Model):
    """
    Append-only audit of selling/cost price changes.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "product_price_history"
    __table_args__ = (
        db.Index("ix_price_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    selling_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)

    # selling_price, cost_price, both
    change_type = db.Column(db.String(20), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("price_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "selling_price_cents": self.selling_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "change_type": self.change_type,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
