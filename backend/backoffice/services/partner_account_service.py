# Overview: Service-layer operations for partner accounts (AR/AP); encapsulates business logic and database work.

"""
Partner Account Ledger (receivables and payables)

WHY: Unpaid sale items are money customers owe us (AR); unreceived purchase
payments are money we owe vendors (AP). Tracking them per document line lets
a customer pay off one item at a time.

DESIGN PRINCIPLES:
- One PartnerAccount row per sale item / purchase item carrying an open amount
- balance = amount - received_paid, never negative (Overpayment otherwise)
- status is derived from balance by PartnerAccount.refresh_status() after
  every change and never set by hand
- Parent document is_paid is recomputed from its lines on every payment
- Lines that already have money applied cannot be deleted; the settlement
  has to be voided first
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import AccountNotFoundError, OverpaymentError, ValidationError
from ..extensions import db
from ..models import PartnerAccount, Purchase, Sale, Settlement, SettlementAllocation
from ..models.receivables import PARTNER_STATUS_PAID
from ..time_utils import business_today
from .concurrency import finish, lock_for_update, run_unit, run_with_retry


PARTNER_CUSTOMER = "customer"
PARTNER_VENDOR = "vendor"

DIRECTION_AR = "AR"
DIRECTION_AP = "AP"

REF_SALE = "sale"
REF_PURCHASE = "purchase"

DIRECTION_FOR_PARTNER = {
    PARTNER_CUSTOMER: DIRECTION_AR,
    PARTNER_VENDOR: DIRECTION_AP,
}


def due_date_for(direction: str, from_date: date | None = None) -> date:
    """Due-date policy: document date plus SALE_AR_DUE_DAYS / PURCHASE_AP_DUE_DAYS."""
    if direction == DIRECTION_AR:
        days = current_app.config.get("SALE_AR_DUE_DAYS", 7)
    elif direction == DIRECTION_AP:
        days = current_app.config.get("PURCHASE_AP_DUE_DAYS", 30)
    else:
        raise ValidationError(f"Invalid direction: {direction}")
    return (from_date or business_today()) + timedelta(days=days)


def open_account(
    partner_type: str,
    partner_id: int,
    direction: str,
    ref_type: str,
    ref_id: int,
    amount_cents: int,
    due_date: date | None = None,
    *,
    sale_item_id: int | None = None,
    purchase_item_id: int | None = None,
    commit: bool = True,
) -> PartnerAccount:
    """Open one receivable/payable line with its full amount outstanding."""
    if DIRECTION_FOR_PARTNER.get(partner_type) != direction:
        raise ValidationError(
            f"Direction {direction} does not match partner type {partner_type}",
            details={"partner_type": partner_type, "direction": direction},
        )
    if not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")
    if partner_id is None:
        raise ValidationError("partner_id is required")

    def _op():
        account = PartnerAccount(
            partner_type=partner_type,
            partner_id=partner_id,
            direction=direction,
            ref_type=ref_type,
            ref_id=ref_id,
            sale_item_id=sale_item_id,
            purchase_item_id=purchase_item_id,
            amount_cents=amount_cents,
            received_paid_cents=0,
            due_date=due_date or due_date_for(direction),
        )
        account.refresh_status()
        db.session.add(account)
        finish(commit)
        return account

    return run_unit(_op, commit=commit)


def lock_accounts(account_ids) -> list[PartnerAccount]:
    """Lock partner accounts in id order; raises AccountNotFoundError for any missing id."""
    ids = sorted(set(account_ids))
    rows = (
        lock_for_update(db.session.query(PartnerAccount).filter(PartnerAccount.id.in_(ids)))
        .order_by(PartnerAccount.id)
        .all()
    )
    found = {row.id for row in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise AccountNotFoundError(
            f"Partner account {missing[0]} not found", details={"missing_account_ids": missing}
        )
    return rows


def apply_to_locked(account: PartnerAccount, amount_cents: int) -> tuple[int, int]:
    """Apply money to a locked line; returns (balance_before, balance_after)."""
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")
    before = account.amount_cents - account.received_paid_cents
    if amount_cents > before:
        raise OverpaymentError(
            f"Payment {amount_cents} exceeds balance {before} of account {account.id}",
            details={"account_id": account.id, "balance_cents": before, "requested_cents": amount_cents},
        )
    account.received_paid_cents += amount_cents
    account.refresh_status()
    return before, before - amount_cents


def apply_payment(account_id: int, amount_cents: int, *, commit: bool = True) -> PartnerAccount:
    """
    Apply a payment to one line.

    Raises:
        AccountNotFoundError: no such line
        OverpaymentError: amount greater than the open balance
    """
    def _op():
        (account,) = lock_accounts([account_id])
        apply_to_locked(account, amount_cents)
        db.session.flush()
        refresh_document_paid(account.ref_type, account.ref_id)
        finish(commit)
        return account

    return run_unit(_op, commit=commit)


def reverse_payment(account_id: int, amount_cents: int, *, commit: bool = True) -> PartnerAccount:
    """Take back money previously applied to a line (settlement void)."""
    def _op():
        (account,) = lock_accounts([account_id])
        reverse_on_locked(account, amount_cents)
        db.session.flush()
        refresh_document_paid(account.ref_type, account.ref_id)
        finish(commit)
        return account

    return run_unit(_op, commit=commit)


def reverse_on_locked(account: PartnerAccount, amount_cents: int) -> None:
    if amount_cents <= 0:
        raise ValidationError("Reversal amount must be positive")
    if amount_cents > account.received_paid_cents:
        raise ValidationError(
            f"Cannot reverse {amount_cents}; only {account.received_paid_cents} applied to account {account.id}",
        )
    account.received_paid_cents -= amount_cents
    account.refresh_status()


def _document_for(ref_type: str, ref_id: int):
    if ref_type == REF_SALE:
        return db.session.get(Sale, ref_id)
    if ref_type == REF_PURCHASE:
        return db.session.get(Purchase, ref_id)
    return None


def refresh_document_paid(ref_type: str, ref_id: int) -> bool:
    """
    Recompute the parent document's is_paid flag from its lines.

    A document with no lines keeps its flag (it was settled, or not, at
    creation time). Returns the resulting flag.
    """
    document = _document_for(ref_type, ref_id)
    if document is None:
        return False

    lines = PartnerAccount.query.filter_by(ref_type=ref_type, ref_id=ref_id).all()
    if not lines:
        return bool(document.is_paid)

    document.is_paid = all(line.status == PARTNER_STATUS_PAID for line in lines)
    if ref_type == REF_SALE:
        outstanding = sum(line.amount_cents - line.received_paid_cents for line in lines)
        document.paid_cents = document.total_cents - outstanding
    return document.is_paid


def accounts_for(ref_type: str, ref_id: int | None = None, sale_item_id: int | None = None, purchase_item_id: int | None = None):
    query = PartnerAccount.query.filter_by(ref_type=ref_type)
    if ref_id is not None:
        query = query.filter_by(ref_id=ref_id)
    if sale_item_id is not None:
        query = query.filter_by(sale_item_id=sale_item_id)
    if purchase_item_id is not None:
        query = query.filter_by(purchase_item_id=purchase_item_id)
    return query.order_by(PartnerAccount.id)


def _check_unsettled(lines) -> None:
    settled = [line.id for line in lines if line.received_paid_cents > 0]
    if settled:
        raise ValidationError(
            "Partner account lines have payments applied; void the settlements first",
            details={"account_ids": settled},
        )


def _delete_lines(lines) -> None:
    ids = [line.id for line in lines]
    if not ids:
        return
    live = (
        db.session.query(SettlementAllocation.id)
        .join(Settlement, Settlement.id == SettlementAllocation.settlement_id)
        .filter(SettlementAllocation.partner_account_id.in_(ids), Settlement.status != "voided")
        .first()
    )
    if live is not None:
        raise ValidationError("Partner account lines are referenced by posted settlements")
    SettlementAllocation.query.filter(
        SettlementAllocation.partner_account_id.in_(ids)
    ).delete(synchronize_session=False)
    for line in lines:
        db.session.delete(line)


def delete_accounts_for(
    ref_type: str,
    ref_id: int | None = None,
    sale_item_id: int | None = None,
    purchase_item_id: int | None = None,
    *,
    commit: bool = True,
) -> int:
    """
    Delete the AR/AP lines of a document (or of one item).

    Refuses while any line has money applied. Allocation rows left behind by
    voided settlements are removed with the line. Returns the count deleted.
    """
    if ref_id is None and sale_item_id is None and purchase_item_id is None:
        raise ValidationError("ref_id, sale_item_id or purchase_item_id is required")

    def _op():
        lines = lock_for_update(accounts_for(ref_type, ref_id, sale_item_id, purchase_item_id)).all()
        _check_unsettled(lines)
        _delete_lines(lines)
        finish(commit)
        return len(lines)

    return run_unit(_op, commit=commit)


def reduce_accounts_for(
    ref_type: str,
    ref_id: int,
    amount_cents: int,
    *,
    sale_item_id: int | None = None,
    commit: bool = True,
) -> int:
    """
    Shrink the open AR/AP lines of a document (or one item) by amount_cents.

    Newest lines are cut first; a line cut down to zero is deleted. Refuses
    while any line has money applied, like delete_accounts_for. Returns the
    amount actually taken off, which is less than requested when the lines
    hold less.
    """
    if amount_cents <= 0:
        raise ValidationError("Reduction amount must be positive")

    def _op():
        lines = lock_for_update(accounts_for(ref_type, ref_id, sale_item_id)).all()
        _check_unsettled(lines)

        remaining = amount_cents
        emptied = []
        for line in reversed(lines):
            if remaining <= 0:
                break
            cut = min(remaining, line.amount_cents)
            remaining -= cut
            if cut == line.amount_cents:
                emptied.append(line)
            else:
                line.amount_cents -= cut
                line.refresh_status()
        _delete_lines(emptied)
        finish(commit)
        return amount_cents - remaining

    return run_unit(_op, commit=commit)


def list_open_accounts(partner_type: str, partner_id: int, direction: str) -> list[PartnerAccount]:
    return (
        PartnerAccount.query.filter(
            PartnerAccount.partner_type == partner_type,
            PartnerAccount.partner_id == partner_id,
            PartnerAccount.direction == direction,
            PartnerAccount.status != PARTNER_STATUS_PAID,
        )
        .order_by(PartnerAccount.due_date, PartnerAccount.id)
        .all()
    )


def rebuild_partner_accounts() -> dict:
    """
    Recompute received/paid, status and document is_paid from posted allocations.

    Idempotent. Returns counts of lines corrected and documents refreshed.
    """
    def _op():
        applied = dict(
            db.session.query(SettlementAllocation.partner_account_id, func.sum(SettlementAllocation.amount_cents))
            .join(Settlement, Settlement.id == SettlementAllocation.settlement_id)
            .filter(Settlement.status == "posted")
            .group_by(SettlementAllocation.partner_account_id)
            .all()
        )

        fixed = 0
        documents = set()
        for line in lock_for_update(db.session.query(PartnerAccount)).order_by(PartnerAccount.id).all():
            expected = min(int(applied.get(line.id) or 0), line.amount_cents)
            old_status = line.status
            changed = line.received_paid_cents != expected
            line.received_paid_cents = expected
            if line.refresh_status() != old_status:
                changed = True
            if changed:
                fixed += 1
            documents.add((line.ref_type, line.ref_id))

        db.session.flush()
        for ref_type, ref_id in sorted(documents):
            refresh_document_paid(ref_type, ref_id)
        db.session.commit()

        current_app.logger.info("Rebuilt partner accounts: %s lines corrected, %s documents", fixed, len(documents))
        return {"accounts_fixed": fixed, "documents_refreshed": len(documents)}

    return run_with_retry(_op)
