from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


PARTNER_STATUS_UNPAID = "unpaid"
PARTNER_STATUS_PARTIAL = "partial"
PARTNER_STATUS_PAID = "paid"


class PartnerAccount(db.Model):
    """
    One receivable (AR, customer) or payable (AP, vendor) line.

    A row normally belongs to one sale item or purchase item, so each line
    of a document can be paid off on its own.

    INVARIANTS:
    - balance = amount - received_paid, and balance >= 0
    - status == paid    <=> balance <= 0
    - status == partial <=> 0 < balance < amount
    """
    __tablename__ = "partner_accounts"
    __table_args__ = (
        db.Index("ix_partner_accounts_partner", "partner_type", "partner_id", "status"),
        db.Index("ix_partner_accounts_ref", "ref_type", "ref_id"),
        db.CheckConstraint("received_paid_cents <= amount_cents", name="ck_partner_accounts_not_overpaid"),
        db.CheckConstraint("received_paid_cents >= 0", name="ck_partner_accounts_paid_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    partner_type = db.Column(db.String(16), nullable=False)  # customer, vendor
    partner_id = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.String(2), nullable=False)  # AR, AP

    ref_type = db.Column(db.String(16), nullable=False)  # sale, purchase
    ref_id = db.Column(db.Integer, nullable=False)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True, index=True)
    purchase_item_id = db.Column(db.Integer, db.ForeignKey("purchase_items.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    received_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=PARTNER_STATUS_UNPAID, index=True)
    due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def balance_cents(self):
        return self.amount_cents - self.received_paid_cents

    def refresh_status(self) -> str:
        """Derive status from balance; the only place status is written."""
        balance = self.amount_cents - (self.received_paid_cents or 0)
        if balance <= 0:
            self.status = PARTNER_STATUS_PAID
        elif balance < self.amount_cents:
            self.status = PARTNER_STATUS_PARTIAL
        else:
            self.status = PARTNER_STATUS_UNPAID
        return self.status

    def __repr__(self) -> str:
        return (
            f"<PartnerAccount id={self.id} {self.direction} {self.ref_type}:{self.ref_id} "
            f"balance={self.balance_cents} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "partner_type": self.partner_type,
            "partner_id": self.partner_id,
            "direction": self.direction,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "sale_item_id": self.sale_item_id,
            "purchase_item_id": self.purchase_item_id,
            "amount_cents": self.amount_cents,
            "received_paid_cents": self.received_paid_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "due_date": to_iso_date(self.due_date),
            "created_at": to_utc_z(self.created_at),
        }


class Settlement(db.Model):
    """
    One payment event: a customer receipt or a vendor payment.

    INVARIANT: sum(allocations.amount_cents) == amount_cents
    """
    __tablename__ = "settlements"
    __table_args__ = (
        db.UniqueConstraint("settlement_no", name="uq_settlements_no"),
        db.Index("ix_settlements_partner", "partner_type", "partner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    settlement_no = db.Column(db.String(64), nullable=False)
    partner_type = db.Column(db.String(16), nullable=False)
    partner_id = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.String(16), nullable=False)  # receipt, payment
    trans_date = db.Column(db.Date, nullable=False)

    method = db.Column(db.String(64), nullable=False, default="cash")
    amount_cents = db.Column(db.Integer, nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="posted")  # posted, voided
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settlement_no": self.settlement_no,
            "partner_type": self.partner_type,
            "partner_id": self.partner_id,
            "direction": self.direction,
            "trans_date": to_iso_date(self.trans_date),
            "method": self.method,
            "amount_cents": self.amount_cents,
            "account_id": self.account_id,
            "status": self.status,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "voided_at": to_utc_z(self.voided_at),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class SettlementAllocation(db.Model):
    """Portion of a settlement applied to one partner account line."""
    __tablename__ = "settlement_allocations"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=False, index=True)
    partner_account_id = db.Column(db.Integer, db.ForeignKey("partner_accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    settlement = db.relationship(
        "Settlement", backref=db.backref("allocations", lazy=True, order_by="SettlementAllocation.id")
    )
    partner_account = db.relationship("PartnerAccount", backref=db.backref("allocations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settlement_id": self.settlement_id,
            "partner_account_id": self.partner_account_id,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
        }
