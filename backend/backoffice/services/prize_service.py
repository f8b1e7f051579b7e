# Overview: Service-layer operations for prize pools; reserve and restore prize remaining counts.

from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Prize
from .concurrency import finish, lock_for_update, run_unit


def get_prize(prize_id: int) -> Prize:
    prize = db.session.get(Prize, prize_id)
    if prize is None:
        raise NotFoundError(f"Prize {prize_id} not found", details={"prize_id": prize_id})
    return prize


def _lock_prize(prize_id: int) -> Prize:
    prize = lock_for_update(db.session.query(Prize).filter_by(id=prize_id)).first()
    if prize is None:
        raise NotFoundError(f"Prize {prize_id} not found", details={"prize_id": prize_id})
    return prize


def ensure_prizes_available(requirements: dict[int, int]) -> None:
    """Read-only check of {prize_id: quantity} against remaining counts."""
    for prize_id, quantity in requirements.items():
        prize = get_prize(prize_id)
        if prize.remaining < quantity:
            raise InsufficientStockError(
                f"Prize {prize.prize_tier} has {prize.remaining} remaining, {quantity} requested",
                details={"prize_id": prize_id, "remaining": prize.remaining, "requested_quantity": quantity},
            )


def reserve_prize(prize_id: int, quantity: int = 1, *, commit: bool = True) -> Prize:
    if quantity <= 0:
        raise ValidationError("quantity must be positive")

    def _op():
        prize = _lock_prize(prize_id)
        if prize.remaining < quantity:
            raise InsufficientStockError(
                f"Prize {prize.prize_tier} has {prize.remaining} remaining, {quantity} requested",
                details={"prize_id": prize_id, "remaining": prize.remaining, "requested_quantity": quantity},
            )
        prize.remaining -= quantity
        finish(commit)
        return prize

    return run_unit(_op, commit=commit)


def restore_prize(prize_id: int, quantity: int = 1, *, commit: bool = True) -> Prize:
    if quantity <= 0:
        raise ValidationError("quantity must be positive")

    def _op():
        prize = _lock_prize(prize_id)
        if prize.remaining + quantity > prize.quantity:
            raise ValidationError(
                f"Restoring {quantity} would exceed prize {prize_id} pool size {prize.quantity}",
                details={"prize_id": prize_id, "remaining": prize.remaining, "quantity": prize.quantity},
            )
        prize.remaining += quantity
        finish(commit)
        return prize

    return run_unit(_op, commit=commit)
