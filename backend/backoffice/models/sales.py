from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Sale(db.Model):
    """
    Sale document.

    LIFECYCLE: draft -> confirmed -> (cancelled)
    FULFILLMENT: none / partial / completed, derived from item delivered
    quantities and independent of payment.

    ``total_cents`` is the discounted sum of item subtotals. ``is_paid`` is
    recomputed from the sale's AR lines after every payment, never set by hand.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_no", name="uq_sales_sale_no"),
        db.Index("ix_sales_customer_date", "customer_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_no = db.Column(db.String(64), nullable=False)
    sale_date = db.Column(db.Date, nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    source = db.Column(db.String(16), nullable=False, default="pos")  # pos, live, manual

    payment_method = db.Column(db.String(64), nullable=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    payment_unresolved = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    fulfillment_status = db.Column(db.String(16), nullable=False, default="none")
    is_paid = db.Column(db.Boolean, nullable=False, default=False)

    discount_type = db.Column(db.String(16), nullable=False, default="none")  # none, percent, amount
    discount_value = db.Column(db.Integer, nullable=False, default=0)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)

    point_program_id = db.Column(db.Integer, db.ForeignKey("point_programs.id"), nullable=True)

    note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def __repr__(self) -> str:
        return f"<Sale id={self.id} sale_no={self.sale_no!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_no": self.sale_no,
            "sale_date": to_iso_date(self.sale_date),
            "customer_id": self.customer_id,
            "source": self.source,
            "payment_method": self.payment_method,
            "account_id": self.account_id,
            "payment_unresolved": self.payment_unresolved,
            "status": self.status,
            "fulfillment_status": self.fulfillment_status,
            "is_paid": self.is_paid,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "point_program_id": self.point_program_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    One sale line. Name, unit price and unit cost are snapshots taken when
    the sale was created; later product edits do not change them.
    """
    __tablename__ = "sale_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    snapshot_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Float, nullable=False, default=0.0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    is_delivered = db.Column(db.Boolean, nullable=False, default=False)
    delivered_quantity = db.Column(db.Integer, nullable=False, default=0)

    prize_id = db.Column(db.Integer, db.ForeignKey("prizes.id"), nullable=True)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "snapshot_name": self.snapshot_name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "subtotal_cents": self.subtotal_cents,
            "is_delivered": self.is_delivered,
            "delivered_quantity": self.delivered_quantity,
            "prize_id": self.prize_id,
        }


class Delivery(db.Model):
    """
    Outbound delivery for a sale.

    LIFECYCLE: draft (no stock effect) -> confirmed (stock deducted).
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.UniqueConstraint("delivery_no", name="uq_deliveries_no"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_no = db.Column(db.String(64), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="draft")
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("deliveries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_no": self.delivery_no,
            "sale_id": self.sale_id,
            "status": self.status,
            "delivered_at": to_utc_z(self.delivered_at),
            "items": [item.to_dict() for item in self.items],
        }


class DeliveryItem(db.Model):
    __tablename__ = "delivery_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    delivery = db.relationship("Delivery", backref=db.backref("items", lazy=True, order_by="DeliveryItem.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }


class SaleCorrection(db.Model):
    """Append-only record of post-sale corrections (e.g. item converted to store credit)."""
    __tablename__ = "sale_corrections"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, nullable=True)
    correction_type = db.Column(db.String(32), nullable=False)
    original_total_cents = db.Column(db.Integer, nullable=False)
    corrected_total_cents = db.Column(db.Integer, nullable=False)
    adjustment_cents = db.Column(db.Integer, nullable=False)
    store_credit_granted_cents = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "correction_type": self.correction_type,
            "original_total_cents": self.original_total_cents,
            "corrected_total_cents": self.corrected_total_cents,
            "adjustment_cents": self.adjustment_cents,
            "store_credit_granted_cents": self.store_credit_granted_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class PrizePool(db.Model):
    """Lottery-style prize pool (each draw hands out one prize from the pool)."""
    __tablename__ = "prize_pools"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "prizes": [p.to_dict() for p in self.prizes],
        }


class Prize(db.Model):
    """
    One prize tier in a pool. ``remaining`` is special inventory that is
    reserved when a sale hands out the prize and restored if that sale is
    compensated or deleted.
    """
    __tablename__ = "prizes"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey("prize_pools.id"), nullable=False, index=True)
    prize_tier = db.Column(db.String(32), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    remaining = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    pool = db.relationship("PrizePool", backref=db.backref("prizes", lazy=True, order_by="Prize.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pool_id": self.pool_id,
            "prize_tier": self.prize_tier,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "remaining": self.remaining,
        }
