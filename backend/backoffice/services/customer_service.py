# Overview: Service-layer operations for customers; store-credit balance and its ledger.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, CustomerBalanceLog
from .concurrency import finish, lock_for_update, run_unit


ENTRY_RECHARGE = "recharge"
ENTRY_DEDUCT = "deduct"
ENTRY_SALE = "sale"
ENTRY_REFUND = "refund"
ENTRY_ADJUSTMENT = "adjustment"

VALID_ENTRY_TYPES = {ENTRY_RECHARGE, ENTRY_DEDUCT, ENTRY_SALE, ENTRY_REFUND, ENTRY_ADJUSTMENT}


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def adjust_store_credit(
    customer_id: int,
    amount_cents: int,
    entry_type: str,
    ref_type: str | None = None,
    ref_id=None,
    ref_no: str | None = None,
    note: str | None = None,
    commit: bool = True,
) -> CustomerBalanceLog:
    """
    Apply a signed store-credit change and append the balance log row.

    Store credit may go negative (credit extended to the customer), so there
    is no floor check here.
    """
    if entry_type not in VALID_ENTRY_TYPES:
        raise ValidationError(f"Invalid balance entry type: {entry_type}")
    if not isinstance(amount_cents, int) or amount_cents == 0:
        raise ValidationError("amount_cents must be a non-zero integer")

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        before = customer.store_credit_cents
        customer.store_credit_cents = before + amount_cents
        log = CustomerBalanceLog(
            customer_id=customer.id,
            amount_cents=amount_cents,
            balance_before_cents=before,
            balance_after_cents=customer.store_credit_cents,
            entry_type=entry_type,
            ref_type=ref_type,
            ref_id=str(ref_id) if ref_id is not None else None,
            ref_no=ref_no,
            note=note,
        )
        db.session.add(log)
        finish(commit)
        return log

    return run_unit(_op, commit=commit)


def list_balance_logs(customer_id: int, limit: int = 100) -> list[CustomerBalanceLog]:
    get_customer(customer_id)
    return (
        CustomerBalanceLog.query.filter_by(customer_id=customer_id)
        .order_by(CustomerBalanceLog.id.desc())
        .limit(limit)
        .all()
    )
