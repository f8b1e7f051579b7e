from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Purchase(db.Model):
    """
    Inbound purchase document.

    LIFECYCLE: pending -> approved | cancelled

    A pending purchase has no stock effect. Approval is the point where
    inventory movements, recosting and AP lines are created.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("purchase_no", name="uq_purchases_no"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_no = db.Column(db.String(64), nullable=False)
    purchase_date = db.Column(db.Date, nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.Text, nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("purchases", lazy=True))

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} purchase_no={self.purchase_no!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "purchase_no": self.purchase_no,
            "purchase_date": to_iso_date(self.purchase_date),
            "vendor_id": self.vendor_id,
            "status": self.status,
            "is_paid": self.is_paid,
            "total_cents": self.total_cents,
            "note": self.note,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    """
    One purchase line. ``received_quantity`` is what actually reached stock;
    reversing a purchase only reverses that much.
    """
    __tablename__ = "purchase_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    is_received = db.Column(db.Boolean, nullable=False, default=False)

    purchase = db.relationship("Purchase", backref=db.backref("items", lazy=True, order_by="PurchaseItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "cost_cents": self.cost_cents,
            "subtotal_cents": self.subtotal_cents,
            "received_quantity": self.received_quantity,
            "is_received": self.is_received,
        }
