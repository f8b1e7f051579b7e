# Overview: Service-layer operations for loyalty points; accrual, redemption and adjustments.

"""
Points Ledger

WHY: Customers earn points on sale revenue and trade them for store credit.
The business also needs the outstanding liability, so every balance carries
an estimated cost (points outstanding x cost per point, as accrued).

DESIGN PRINCIPLES:
- accrue: floor(sale_total / spend_per_point); nothing is logged for 0 points
- redeem fails with InsufficientPointsError before touching anything
- estimated_cost never goes below zero
- Every change appends a PointLog row; redemption also writes a store-credit
  balance log through customer_service, in the same transaction
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import case, func, or_

from ..errors import InsufficientPointsError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CustomerBalanceLog, CustomerPoints, PointLog, PointProgram, PointRedemptionTier
from . import customer_service
from .concurrency import finish, lock_for_update, run_unit, run_with_retry


CHANGE_EARN = "earn"
CHANGE_REDEEM = "redeem"
CHANGE_ADJUST = "adjust"
CHANGE_REVERSE = "reverse"


@dataclass
class RedemptionResult:
    customer_points: CustomerPoints
    points_used: int
    reward_value_cents: int
    point_log: PointLog
    balance_log: CustomerBalanceLog | None


def get_program(program_id: int) -> PointProgram:
    program = db.session.get(PointProgram, program_id)
    if program is None:
        raise NotFoundError(f"Point program {program_id} not found", details={"program_id": program_id})
    return program


def _lock_points(customer_id: int, program_id: int) -> CustomerPoints | None:
    return lock_for_update(
        db.session.query(CustomerPoints).filter_by(customer_id=customer_id, program_id=program_id)
    ).first()


def _lock_or_create_points(customer_id: int, program_id: int) -> CustomerPoints:
    points = _lock_points(customer_id, program_id)
    if points is None:
        customer_service.get_customer(customer_id)
        points = CustomerPoints(
            customer_id=customer_id,
            program_id=program_id,
            points=0,
            total_earned=0,
            total_redeemed=0,
            estimated_cost_cents=0,
        )
        db.session.add(points)
        db.session.flush()
    return points


def points_for_total(program: PointProgram, sale_total_cents: int) -> int:
    if program.spend_per_point_cents <= 0:
        raise ValidationError("Point program spend_per_point_cents must be positive")
    if sale_total_cents <= 0:
        return 0
    return sale_total_cents // program.spend_per_point_cents


def accrue(
    customer_id: int,
    program_id: int,
    sale_total_cents: int,
    sale_id: int | None = None,
    *,
    commit: bool = True,
) -> int:
    """Accrue points for a sale total; returns points earned."""
    def _op():
        program = get_program(program_id)
        earned = points_for_total(program, sale_total_cents)
        if earned <= 0:
            return 0

        balance = _lock_or_create_points(customer_id, program_id)
        cost = earned * program.cost_per_point_cents
        balance.points += earned
        balance.total_earned += earned
        balance.estimated_cost_cents += cost

        db.session.add(PointLog(
            customer_id=customer_id,
            program_id=program_id,
            sale_id=sale_id,
            change_type=CHANGE_EARN,
            points_change=earned,
            cost_amount_cents=cost,
            sale_amount_cents=sale_total_cents,
        ))
        finish(commit)
        return earned

    return run_unit(_op, commit=commit)


def redeem(customer_id: int, program_id: int, tier_id: int, note: str | None = None) -> RedemptionResult:
    """
    Trade points for store credit according to a redemption tier.

    Raises:
        NotFoundError: program or tier missing (or tier belongs elsewhere)
        InsufficientPointsError: balance below the tier's points_required
    """
    def _op():
        program = get_program(program_id)
        tier = db.session.get(PointRedemptionTier, tier_id)
        if tier is None or tier.program_id != program_id or not tier.is_active:
            raise NotFoundError(f"Redemption tier {tier_id} not found", details={"tier_id": tier_id})

        balance = _lock_points(customer_id, program_id)
        available = balance.points if balance else 0
        if balance is None or available < tier.points_required:
            raise InsufficientPointsError(
                f"Insufficient points. Available: {available}, Required: {tier.points_required}",
                details={"available": available, "required": tier.points_required},
            )

        cost = tier.points_required * program.cost_per_point_cents
        balance.points -= tier.points_required
        balance.total_redeemed += tier.points_required
        balance.estimated_cost_cents = max(0, balance.estimated_cost_cents - cost)

        log = PointLog(
            customer_id=customer_id,
            program_id=program_id,
            tier_id=tier.id,
            change_type=CHANGE_REDEEM,
            points_change=-tier.points_required,
            cost_amount_cents=cost,
            reward_value_cents=tier.reward_value_cents,
            note=note,
        )
        db.session.add(log)
        db.session.flush()

        balance_log = None
        if tier.reward_value_cents > 0:
            balance_log = customer_service.adjust_store_credit(
                customer_id,
                tier.reward_value_cents,
                customer_service.ENTRY_RECHARGE,
                ref_type="point_redemption",
                ref_id=log.id,
                note=note or f"Redeemed {tier.points_required} points",
                commit=False,
            )

        db.session.commit()
        return RedemptionResult(
            customer_points=balance,
            points_used=tier.points_required,
            reward_value_cents=tier.reward_value_cents,
            point_log=log,
            balance_log=balance_log,
        )

    return run_with_retry(_op)


def adjust_points(customer_id: int, program_id: int, points_change: int, note: str | None = None) -> CustomerPoints:
    """Manual signed adjustment; the balance may not go below zero."""
    if not isinstance(points_change, int) or points_change == 0:
        raise ValidationError("points_change must be a non-zero integer")

    def _op():
        program = get_program(program_id)
        balance = _lock_or_create_points(customer_id, program_id)
        if balance.points + points_change < 0:
            raise InsufficientPointsError(
                f"Insufficient points. Available: {balance.points}, Requested: {-points_change}",
                details={"available": balance.points, "requested": -points_change},
            )

        cost = points_change * program.cost_per_point_cents
        balance.points += points_change
        balance.estimated_cost_cents = max(0, balance.estimated_cost_cents + cost)
        db.session.add(PointLog(
            customer_id=customer_id,
            program_id=program_id,
            change_type=CHANGE_ADJUST,
            points_change=points_change,
            cost_amount_cents=abs(cost),
            note=note,
        ))
        db.session.commit()
        return balance

    return run_with_retry(_op)


def _only_this_sale(balance: CustomerPoints, sale_id: int) -> bool:
    if balance.points or balance.total_earned or balance.total_redeemed or balance.estimated_cost_cents:
        return False
    other = PointLog.query.filter(
        PointLog.customer_id == balance.customer_id,
        PointLog.program_id == balance.program_id,
        or_(PointLog.sale_id.is_(None), PointLog.sale_id != sale_id),
    ).first()
    return other is None


def reverse_accrual(sale_id: int, *, commit: bool = True) -> int:
    """
    Take back the points a sale earned. Safe to call twice: only the net
    amount not yet reversed is taken back. Returns points reversed.

    A balance row that this sale alone brought into existence is removed
    once it is back to zero, so an undone sale leaves no empty balance.
    """
    def _op():
        rows = (
            db.session.query(
                PointLog.customer_id,
                PointLog.program_id,
                func.sum(PointLog.points_change),
                func.sum(
                    case(
                        (PointLog.change_type == CHANGE_EARN, PointLog.cost_amount_cents),
                        else_=-PointLog.cost_amount_cents,
                    )
                ),
            )
            .filter(PointLog.sale_id == sale_id, PointLog.change_type.in_([CHANGE_EARN, CHANGE_REVERSE]))
            .group_by(PointLog.customer_id, PointLog.program_id)
            .all()
        )

        reversed_total = 0
        for customer_id, program_id, net_points, net_cost in rows:
            net_points = int(net_points or 0)
            if net_points <= 0:
                continue
            balance = _lock_points(customer_id, program_id)
            available = balance.points if balance else 0
            if available < net_points:
                raise InsufficientPointsError(
                    f"Customer {customer_id} has already spent points earned by sale {sale_id}",
                    details={"available": available, "required": net_points, "sale_id": sale_id},
                )
            net_cost = int(net_cost or 0)
            balance.points -= net_points
            balance.total_earned = max(0, balance.total_earned - net_points)
            balance.estimated_cost_cents = max(0, balance.estimated_cost_cents - net_cost)
            db.session.add(PointLog(
                customer_id=customer_id,
                program_id=program_id,
                sale_id=sale_id,
                change_type=CHANGE_REVERSE,
                points_change=-net_points,
                cost_amount_cents=net_cost,
                note=f"Reversal of sale {sale_id}",
            ))
            if _only_this_sale(balance, sale_id):
                db.session.delete(balance)
            reversed_total += net_points

        finish(commit)
        return reversed_total

    return run_unit(_op, commit=commit)


def get_customer_points(customer_id: int, program_id: int) -> CustomerPoints | None:
    return CustomerPoints.query.filter_by(customer_id=customer_id, program_id=program_id).first()
