# Overview: Service-layer operations for settlements; applies receipts and payments across AR/AP lines.

"""
Settlement Allocator

WHY: A customer often pays several open items with one transfer, and we pay
vendors the same way. A Settlement records the payment event once; its
allocations say which AR/AP lines it paid down and by how much.

DESIGN PRINCIPLES:
- Validate-then-commit: every check runs before the first mutation, and the
  whole settlement (lines, allocations, cash movement) is one transaction
- receipt <-> customer <-> AR, payment <-> vendor <-> AP
- sum(allocations) == settlement amount, each allocation <= the line's
  balance at allocation time
- Rounding is deterministic: the last line absorbs the remainder
- Parent document rollup is non-critical and reported as a warning on failure
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app

from ..errors import ConsistencyError, NotFoundError, OverpaymentError, ValidationError
from ..extensions import db
from ..models import Settlement, SettlementAllocation
from ..time_utils import business_today, utcnow
from ..validation import coerce_int
from . import account_service, partner_account_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number


DIRECTION_RECEIPT = "receipt"
DIRECTION_PAYMENT = "payment"

STATUS_POSTED = "posted"
STATUS_VOIDED = "voided"

STRATEGY_PROPORTIONAL = "proportional"
STRATEGY_OLDEST_FIRST = "oldest_first"

# direction -> (partner_type, partner account direction, cash direction, transaction type, number prefix)
_POLARITY = {
    DIRECTION_RECEIPT: (
        partner_account_service.PARTNER_CUSTOMER,
        partner_account_service.DIRECTION_AR,
        account_service.DIRECTION_INCREASE,
        account_service.TX_CUSTOMER_RECEIPT,
        "RC",
    ),
    DIRECTION_PAYMENT: (
        partner_account_service.PARTNER_VENDOR,
        partner_account_service.DIRECTION_AP,
        account_service.DIRECTION_DECREASE,
        account_service.TX_PURCHASE_PAYMENT,
        "PY",
    ),
}


@dataclass
class SettlementResult:
    settlement: Settlement
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# ALLOCATION (pure)
# =============================================================================

def _check_allocatable(amount_cents: int, balances: list[int]) -> None:
    if not balances:
        raise ValidationError("No open lines to allocate against")
    if amount_cents <= 0:
        raise ValidationError("Settlement amount must be positive")
    total = sum(balances)
    if amount_cents > total:
        raise OverpaymentError(
            f"Settlement {amount_cents} exceeds open balance {total}",
            details={"amount_cents": amount_cents, "open_balance_cents": total},
        )


def allocate_proportionally(amount_cents: int, balances: list[int]) -> list[int]:
    """
    Split amount across lines in proportion to their balances.

    Every line but the last gets floor(amount * balance / total); the last
    absorbs the remainder. If that pushes the last line over its balance the
    overflow is handed back to earlier lines in order.

    >>> allocate_proportionally(150, [100, 100, 100])
    [50, 50, 50]
    """
    _check_allocatable(amount_cents, balances)
    total = sum(balances)

    shares = [amount_cents * b // total for b in balances[:-1]]
    shares.append(amount_cents - sum(shares))

    overflow = shares[-1] - balances[-1]
    if overflow > 0:
        shares[-1] = balances[-1]
        for i in range(len(shares) - 1):
            spare = balances[i] - shares[i]
            take = min(spare, overflow)
            shares[i] += take
            overflow -= take
            if overflow == 0:
                break
    return shares


def allocate_oldest_first(amount_cents: int, balances: list[int]) -> list[int]:
    """Pay lines in order, min(remaining, balance) each; the last takes what is left."""
    _check_allocatable(amount_cents, balances)
    shares = []
    remaining = amount_cents
    for balance in balances[:-1]:
        take = min(remaining, balance)
        shares.append(take)
        remaining -= take
    shares.append(remaining)
    return shares


_STRATEGIES = {
    STRATEGY_PROPORTIONAL: allocate_proportionally,
    STRATEGY_OLDEST_FIRST: allocate_oldest_first,
}


# =============================================================================
# SETTLEMENTS
# =============================================================================

def _normalize_allocations(allocations) -> list[tuple[int, int]]:
    pairs = []
    seen = set()
    for raw in allocations:
        if not isinstance(raw, dict) or raw.get("account_id") is None or raw.get("amount_cents") is None:
            raise ValidationError("Each allocation needs integer account_id and amount_cents")
        account_id = coerce_int(raw["account_id"], "account_id")
        amount = coerce_int(raw["amount_cents"], "amount_cents")
        if amount <= 0:
            raise ValidationError("Allocation amounts must be positive", details={"account_id": account_id})
        if account_id in seen:
            raise ValidationError("Duplicate allocation target", details={"account_id": account_id})
        seen.add(account_id)
        pairs.append((account_id, amount))
    return pairs


def record_settlement(
    partner_type: str,
    partner_id: int,
    direction: str,
    amount_cents: int,
    method: str = "cash",
    allocations: list[dict] | None = None,
    account_ids: list[int] | None = None,
    strategy: str = STRATEGY_PROPORTIONAL,
    account_id: int | None = None,
    note: str | None = None,
) -> SettlementResult:
    """
    Record a customer receipt or vendor payment and allocate it.

    Targets, in order of precedence:
    - allocations: explicit [{account_id, amount_cents}], must sum to amount
    - account_ids: lines to split amount across using ``strategy``
    - neither: every open line of the partner, oldest due date first

    Raises:
        ValidationError: polarity mismatch, bad amounts, sum mismatch
        AccountNotFoundError: an allocation target does not exist
        OverpaymentError: an allocation exceeds its line's balance
        InsufficientFundsError: a payment would overdraw the cash account
    """
    if direction not in _POLARITY:
        raise ValidationError(f"Invalid direction: {direction}")
    expected_partner, line_direction, cash_direction, tx_type, prefix = _POLARITY[direction]
    if partner_type != expected_partner:
        raise ValidationError(
            f"A {direction} must be made by a {expected_partner}",
            details={"partner_type": partner_type, "direction": direction},
        )
    if partner_id is None:
        raise ValidationError("partner_id is required")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")
    if strategy not in _STRATEGIES:
        raise ValidationError(f"Invalid allocation strategy: {strategy}")

    explicit = None
    if allocations:
        explicit = _normalize_allocations(allocations)
        allocated = sum(amount for _, amount in explicit)
        if allocated != amount_cents:
            raise ValidationError(
                "Allocations must sum to the settlement amount",
                details={"amount_cents": amount_cents, "allocated_cents": allocated},
            )

    def _op():
        # ---- validate (no mutation yet) ----
        if explicit is not None:
            target_ids = [aid for aid, _ in explicit]
        elif account_ids:
            target_ids = [coerce_int(aid, "account_ids") for aid in account_ids]
        else:
            target_ids = [
                line.id for line in partner_account_service.list_open_accounts(partner_type, partner_id, line_direction)
            ]
        if not target_ids:
            raise ValidationError("No open partner account lines to settle")

        lines = {line.id: line for line in partner_account_service.lock_accounts(target_ids)}
        for line in lines.values():
            if line.partner_type != partner_type or line.partner_id != partner_id:
                raise ValidationError(
                    f"Partner account {line.id} belongs to another partner", details={"account_id": line.id}
                )
            if line.direction != line_direction:
                raise ValidationError(
                    f"A {direction} can only settle {line_direction} lines", details={"account_id": line.id}
                )

        if explicit is not None:
            plan = explicit
            for aid, amount in plan:
                balance = lines[aid].balance_cents
                if amount > balance:
                    raise OverpaymentError(
                        f"Allocation {amount} exceeds balance {balance} of account {aid}",
                        details={"account_id": aid, "balance_cents": balance, "requested_cents": amount},
                    )
        else:
            ordered = sorted(lines.values(), key=lambda l: (l.due_date or date.max, l.id))
            shares = _STRATEGIES[strategy](amount_cents, [l.balance_cents for l in ordered])
            plan = [(l.id, share) for l, share in zip(ordered, shares) if share > 0]

        cash_account = account_service.resolve_account(account_id, method)

        # ---- mutate ----
        settlement = Settlement(
            settlement_no=next_document_number(document_type=f"settlement_{direction}", prefix=prefix),
            partner_type=partner_type,
            partner_id=partner_id,
            direction=direction,
            trans_date=business_today(),
            method=method or "cash",
            amount_cents=amount_cents,
            status=STATUS_POSTED,
            note=note,
        )
        db.session.add(settlement)
        db.session.flush()

        rows = []
        for aid, amount in plan:
            before, after = partner_account_service.apply_to_locked(lines[aid], amount)
            rows.append(SettlementAllocation(
                settlement_id=settlement.id,
                partner_account_id=aid,
                amount_cents=amount,
                balance_before_cents=before,
                balance_after_cents=after,
            ))
        db.session.add_all(rows)
        db.session.flush()

        allocated = sum(a.amount_cents for a in rows)
        moved = sum(a.balance_before_cents - a.balance_after_cents for a in rows)
        if allocated != amount_cents or moved != amount_cents:
            raise ConsistencyError(
                "Settlement allocations do not conserve the settlement amount",
                details={"amount_cents": amount_cents, "allocated_cents": allocated, "moved_cents": moved},
            )

        warnings = []
        cash = account_service.adjust_balance(
            cash_account.id if cash_account else None,
            amount_cents,
            cash_direction,
            tx_type,
            ref_type="settlement",
            ref_id=settlement.id,
            note=settlement.settlement_no,
            payment_method=method,
            commit=False,
        )
        settlement.account_id = cash.account_id
        if cash.warning:
            warnings.append(cash.warning)

        warnings.extend(_refresh_parents(lines[aid] for aid, _ in plan))

        db.session.commit()
        current_app.logger.info(
            "Settlement %s %s partner=%s:%s amount=%s lines=%s",
            settlement.settlement_no, direction, partner_type, partner_id, amount_cents, len(plan),
        )
        return SettlementResult(settlement=settlement, warnings=warnings)

    return run_with_retry(_op)


def _refresh_parents(lines) -> list[str]:
    """Recompute is_paid for each parent document; failures become warnings."""
    warnings = []
    for ref_type, ref_id in sorted({(line.ref_type, line.ref_id) for line in lines}):
        try:
            partner_account_service.refresh_document_paid(ref_type, ref_id)
        except Exception as exc:
            current_app.logger.warning("Could not refresh paid flag for %s %s: %s", ref_type, ref_id, exc)
            warnings.append(f"Could not refresh paid flag for {ref_type} {ref_id}")
    return warnings


def void_settlement(settlement_id: int, note: str | None = None) -> SettlementResult:
    """Reverse a posted settlement's allocations and cash movement. Allocation rows stay for audit."""
    def _op():
        settlement = lock_for_update(db.session.query(Settlement).filter_by(id=settlement_id)).first()
        if settlement is None:
            raise NotFoundError(f"Settlement {settlement_id} not found")
        if settlement.status == STATUS_VOIDED:
            raise ValidationError(f"Settlement {settlement.settlement_no} is already voided")

        _, _, cash_direction, _, _ = _POLARITY[settlement.direction]
        lines = {
            line.id: line
            for line in partner_account_service.lock_accounts(a.partner_account_id for a in settlement.allocations)
        }
        for allocation in settlement.allocations:
            partner_account_service.reverse_on_locked(lines[allocation.partner_account_id], allocation.amount_cents)
        db.session.flush()

        warnings = []
        if settlement.account_id is not None:
            opposite = (
                account_service.DIRECTION_DECREASE
                if cash_direction == account_service.DIRECTION_INCREASE
                else account_service.DIRECTION_INCREASE
            )
            account_service.adjust_balance(
                settlement.account_id,
                settlement.amount_cents,
                opposite,
                account_service.TX_SETTLEMENT_VOID,
                ref_type="settlement",
                ref_id=settlement.id,
                note=note or f"Void {settlement.settlement_no}",
                commit=False,
            )
        else:
            warnings.append("Settlement had no cash account; no balance reversed")

        settlement.status = STATUS_VOIDED
        settlement.voided_at = utcnow()
        warnings.extend(_refresh_parents(lines.values()))

        db.session.commit()
        current_app.logger.info("Voided settlement %s", settlement.settlement_no)
        return SettlementResult(settlement=settlement, warnings=warnings)

    return run_with_retry(_op)


def get_settlement(settlement_id: int) -> Settlement:
    settlement = db.session.get(Settlement, settlement_id)
    if settlement is None:
        raise NotFoundError(f"Settlement {settlement_id} not found")
    return settlement
