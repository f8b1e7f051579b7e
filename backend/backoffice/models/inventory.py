from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data plus its running inventory valuation.

    STOCK: ``stock`` is a cached projection of SUM(InventoryLog.qty_change).
    It is only written by the inventory ledger, in the same transaction as the
    log row that moves it, and can be rebuilt from the log at any time.

    COSTING: ``avg_cost_cents`` is the weighted average unit cost of inbound
    cost events still contained in stock. It is only written by the costing
    algorithm (receive / reverse receipt). ``cost_cents`` is the fallback cost
    used when no average has been established yet.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("item_code", name="uq_products_item_code"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    # Fractional cents per unit; weighted averages are not integral
    avg_cost_cents = db.Column(db.Float, nullable=False, default=0.0)

    allow_negative = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} item_code={self.item_code!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "name": self.name,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "avg_cost_cents": self.avg_cost_cents,
            "allow_negative": self.allow_negative,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryLog(db.Model):
    """
    Append-only log of stock movements.

    IMMUTABLE: rows are never updated or deleted. A wrong movement is undone
    by appending a reversing movement.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_invlog_product_created", "product_id", "created_at"),
        db.Index("ix_invlog_ref", "ref_type", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty_change = db.Column(db.Integer, nullable=False)

    # purchase, purchase_reversal, delivery, return, correction
    ref_type = db.Column(db.String(32), nullable=False)
    ref_id = db.Column(db.String(64), nullable=True)

    # Only set for inbound cost events (and their reversals)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    stock_after = db.Column(db.Integer, nullable=False)
    memo = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("inventory_logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "qty_change": self.qty_change,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "unit_cost_cents": self.unit_cost_cents,
            "stock_after": self.stock_after,
            "memo": self.memo,
            "created_at": to_utc_z(self.created_at),
        }
