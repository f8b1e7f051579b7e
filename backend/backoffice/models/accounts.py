from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Account(db.Model):
    """
    Named cash-like balance store (cash drawer, bank account, petty cash).

    ``balance_cents`` only changes through the cash account ledger, and every
    change is paired with an AccountTransaction recording before/after.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("account_name", name="uq_accounts_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_name = db.Column(db.String(128), nullable=False)
    account_type = db.Column(db.String(16), nullable=False, default="cash")  # cash, bank, petty_cash
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    allow_negative = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Account id={self.id} name={self.account_name!r} balance={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "balance_cents": self.balance_cents,
            "allow_negative": self.allow_negative,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AccountTransaction(db.Model):
    """
    Audit trail of cash account balance changes.

    IMMUTABLE: written in the same transaction as the balance it records.
    """
    __tablename__ = "account_transactions"
    __table_args__ = (
        db.Index("ix_account_txns_account_created", "account_id", "created_at"),
        db.Index("ix_account_txns_ref", "ref_type", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    # sale, sale_reversal, customer_receipt, purchase_payment, settlement_void,
    # transfer_in, transfer_out, adjustment
    transaction_type = db.Column(db.String(32), nullable=False)
    direction = db.Column(db.String(8), nullable=False)  # increase, decrease
    amount_cents = db.Column(db.Integer, nullable=False)

    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    ref_type = db.Column(db.String(32), nullable=True)
    ref_id = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "transaction_type": self.transaction_type,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
