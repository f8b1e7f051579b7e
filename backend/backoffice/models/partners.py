from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data.

    ``store_credit_cents`` is the customer's spendable credit balance. It may
    be negative (credit extended up to ``credit_limit_cents``). Every change
    is paired with a CustomerBalanceLog row.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("customer_code", name="uq_customers_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_code = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    store_credit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_code": self.customer_code,
            "customer_name": self.customer_name,
            "phone": self.phone,
            "store_credit_cents": self.store_credit_cents,
            "credit_limit_cents": self.credit_limit_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Vendor(db.Model):
    __tablename__ = "vendors"
    __table_args__ = (
        db.UniqueConstraint("vendor_code", name="uq_vendors_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_code = db.Column(db.String(64), nullable=False)
    vendor_name = db.Column(db.String(255), nullable=False)
    payment_terms = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_code": self.vendor_code,
            "vendor_name": self.vendor_name,
            "payment_terms": self.payment_terms,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CustomerBalanceLog(db.Model):
    """
    Append-only store-credit ledger.

    TYPES: recharge, deduct, sale, refund, adjustment
    """
    __tablename__ = "customer_balance_logs"
    __table_args__ = (
        db.Index("ix_balance_logs_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    entry_type = db.Column(db.String(16), nullable=False)
    ref_type = db.Column(db.String(32), nullable=True)
    ref_id = db.Column(db.String(64), nullable=True)
    ref_no = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("balance_logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "type": self.entry_type,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "ref_no": self.ref_no,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
