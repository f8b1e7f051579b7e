# Overview: Service-layer operations for cash accounts; encapsulates business logic and database work.

"""
Cash Account Ledger

WHY: Money received from customers and paid to vendors lands in named
accounts (cash drawer, bank, petty cash). Every balance change must be
explainable afterwards, so each one is paired with an AccountTransaction
recording the balance before and after.

DESIGN PRINCIPLES:
- Account.balance_cents is only written here, under a row lock
- Balance write and AccountTransaction append happen in one transaction
- A decrease may not take the balance below zero unless allow_negative is set
- An unresolved account (no id, no matching payment-method label) is not an
  error: the mutation is skipped and a warning is returned so the parent
  operation can continue with an unresolved-payment marker
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..errors import AccountNotFoundError, InsufficientFundsError, ValidationError
from ..extensions import db
from ..models import Account, AccountTransaction
from .concurrency import finish, lock_for_update, run_unit, run_with_retry


DIRECTION_INCREASE = "increase"
DIRECTION_DECREASE = "decrease"

TX_SALE = "sale"
TX_SALE_REVERSAL = "sale_reversal"
TX_CUSTOMER_RECEIPT = "customer_receipt"
TX_PURCHASE_PAYMENT = "purchase_payment"
TX_SETTLEMENT_VOID = "settlement_void"
TX_TRANSFER_IN = "transfer_in"
TX_TRANSFER_OUT = "transfer_out"
TX_ADJUSTMENT = "adjustment"

# Payment-method labels that map onto a default account name
METHOD_ACCOUNT_NAMES = {
    "cash": "Cash",
    "card": "Bank",
    "credit_card": "Bank",
    "transfer": "Bank",
    "bank_transfer": "Bank",
    "petty_cash": "Petty Cash",
}

DEFAULT_ACCOUNTS = [
    {"account_name": "Cash", "account_type": "cash", "sort_order": 1},
    {"account_name": "Bank", "account_type": "bank", "sort_order": 2},
    {"account_name": "Petty Cash", "account_type": "petty_cash", "sort_order": 3},
]


@dataclass
class BalanceUpdate:
    transaction: AccountTransaction | None
    account_id: int | None
    warning: str | None = None

    @property
    def applied(self) -> bool:
        return self.transaction is not None


# =============================================================================
# RESOLUTION
# =============================================================================

def resolve_account(account_id: int | None = None, payment_method: str | None = None) -> Account | None:
    """
    Find the account a payment should touch.

    An explicit id wins and must exist. Otherwise the payment-method label is
    matched case-insensitively against active account names, first directly
    and then through METHOD_ACCOUNT_NAMES. Returns None when nothing matches.
    """
    if account_id is not None:
        account = db.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
        return account

    if not payment_method:
        return None

    label = payment_method.strip().lower()
    candidates = [label]
    mapped = METHOD_ACCOUNT_NAMES.get(label)
    if mapped:
        candidates.append(mapped.lower())

    for name in candidates:
        account = (
            Account.query.filter(func.lower(Account.account_name) == name, Account.is_active.is_(True))
            .order_by(Account.sort_order, Account.id)
            .first()
        )
        if account is not None:
            return account
    return None


# =============================================================================
# BALANCE MUTATION
# =============================================================================

def _apply(
    account: Account,
    amount_cents: int,
    direction: str,
    transaction_type: str,
    ref_type: str | None,
    ref_id,
    note: str | None,
) -> AccountTransaction:
    """Write balance and audit row together. Caller holds the row lock."""
    before = account.balance_cents
    if direction == DIRECTION_INCREASE:
        after = before + amount_cents
    else:
        after = before - amount_cents
        if after < 0 and not account.allow_negative:
            raise InsufficientFundsError(
                f"Insufficient balance in account {account.account_name}",
                details={"account_id": account.id, "balance_cents": before, "requested_cents": amount_cents},
            )

    txn = AccountTransaction(
        account_id=account.id,
        transaction_type=transaction_type,
        direction=direction,
        amount_cents=amount_cents,
        balance_before_cents=before,
        balance_after_cents=after,
        ref_type=ref_type,
        ref_id=str(ref_id) if ref_id is not None else None,
        note=note,
    )
    account.balance_cents = after
    db.session.add(txn)
    db.session.flush()
    return txn


def _lock_account(account_id: int) -> Account:
    account = lock_for_update(db.session.query(Account).filter_by(id=account_id)).first()
    if account is None:
        raise AccountNotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
    return account


def adjust_balance(
    account_id: int | None,
    amount_cents: int,
    direction: str,
    transaction_type: str,
    ref_type: str | None = None,
    ref_id=None,
    note: str | None = None,
    payment_method: str | None = None,
    commit: bool = True,
) -> BalanceUpdate:
    """
    Increase or decrease an account balance and record the audit row.

    Raises:
        ValidationError: amount not positive or direction unknown
        AccountNotFoundError: explicit account_id does not exist
        InsufficientFundsError: decrease would go negative without allow_negative
    """
    if direction not in (DIRECTION_INCREASE, DIRECTION_DECREASE):
        raise ValidationError(f"Invalid direction: {direction}")
    if not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")

    def _op():
        account = resolve_account(account_id, payment_method)
        if account is None:
            warning = f"No account matches payment method {payment_method!r}; balance not updated"
            current_app.logger.warning(
                "Unresolved cash account method=%r ref=%s:%s amount=%s",
                payment_method, ref_type, ref_id, amount_cents,
            )
            return BalanceUpdate(transaction=None, account_id=None, warning=warning)

        account = _lock_account(account.id)
        txn = _apply(account, amount_cents, direction, transaction_type, ref_type, ref_id, note)
        finish(commit)
        return BalanceUpdate(transaction=txn, account_id=account.id)

    return run_unit(_op, commit=commit)


def transfer_funds(from_account_id: int, to_account_id: int, amount_cents: int, note: str | None = None) -> tuple[AccountTransaction, AccountTransaction]:
    """Move money between two accounts; both legs commit together or not at all."""
    if from_account_id == to_account_id:
        raise ValidationError("Cannot transfer to the same account")
    if not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")

    def _op():
        # Lock in id order so two opposite transfers cannot deadlock
        first, second = sorted([from_account_id, to_account_id])
        locked = {first: _lock_account(first), second: _lock_account(second)}

        out_txn = _apply(
            locked[from_account_id], amount_cents, DIRECTION_DECREASE, TX_TRANSFER_OUT,
            "account", to_account_id, note,
        )
        in_txn = _apply(
            locked[to_account_id], amount_cents, DIRECTION_INCREASE, TX_TRANSFER_IN,
            "account", from_account_id, note,
        )
        db.session.commit()
        return out_txn, in_txn

    return run_with_retry(_op)


def manual_adjustment(account_id: int, signed_amount_cents: int, note: str | None = None) -> AccountTransaction:
    """Signed manual correction: positive increases, negative decreases."""
    if not isinstance(signed_amount_cents, int) or signed_amount_cents == 0:
        raise ValidationError("amount_cents must be a non-zero integer")

    direction = DIRECTION_INCREASE if signed_amount_cents > 0 else DIRECTION_DECREASE
    result = adjust_balance(
        account_id,
        abs(signed_amount_cents),
        direction,
        TX_ADJUSTMENT,
        ref_type="manual",
        note=note or "Manual adjustment",
    )
    return result.transaction


def list_transactions(account_id: int, limit: int = 200) -> list[AccountTransaction]:
    if db.session.get(Account, account_id) is None:
        raise AccountNotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
    return (
        AccountTransaction.query.filter_by(account_id=account_id)
        .order_by(AccountTransaction.id.desc())
        .limit(limit)
        .all()
    )


def transactions_for_ref(ref_type: str, ref_id) -> list[AccountTransaction]:
    return (
        AccountTransaction.query.filter_by(ref_type=ref_type, ref_id=str(ref_id))
        .order_by(AccountTransaction.id)
        .all()
    )


def seed_default_accounts() -> int:
    """Create the default cash/bank/petty-cash accounts that do not exist yet."""
    created = 0
    for spec in DEFAULT_ACCOUNTS:
        exists = Account.query.filter_by(account_name=spec["account_name"]).first()
        if exists is None:
            db.session.add(Account(**spec))
            created += 1
    db.session.commit()
    return created
