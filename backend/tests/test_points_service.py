# Overview: Pytest coverage for loyalty points and store credit.

"""
Points Ledger Tests

- accrual floors sale_total / spend_per_point
- redemption refuses before touching anything when points are short
- redemption credits store credit in the same transaction
"""

import pytest

from backoffice.errors import InsufficientPointsError, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models import Customer, CustomerBalanceLog, PointLog, PointRedemptionTier
from backoffice.services import customer_service, points_service


def _tier(program):
    return PointRedemptionTier.query.filter_by(program_id=program.id).first()


class TestAccrual:
    def test_accrue_floors_points_and_tracks_cost(self, db_session, make_customer, make_program):
        customer = make_customer()
        program = make_program(spend_per_point_cents=100, cost_per_point_cents=2)

        earned = points_service.accrue(customer.id, program.id, 12_345, sale_id=1)

        assert earned == 123
        balance = points_service.get_customer_points(customer.id, program.id)
        assert balance.points == 123
        assert balance.total_earned == 123
        assert balance.estimated_cost_cents == 246
        log = PointLog.query.one()
        assert log.change_type == points_service.CHANGE_EARN
        assert log.sale_amount_cents == 12_345

    def test_small_sale_earns_nothing_and_logs_nothing(self, db_session, make_customer, make_program):
        customer = make_customer()
        program = make_program(spend_per_point_cents=100)

        assert points_service.accrue(customer.id, program.id, 99) == 0
        assert PointLog.query.count() == 0
        assert points_service.get_customer_points(customer.id, program.id) is None

    def test_reverse_accrual_is_idempotent(self, db_session, make_customer, make_program):
        customer = make_customer()
        program = make_program()
        points_service.accrue(customer.id, program.id, 5000, sale_id=9)

        assert points_service.reverse_accrual(9) == 50
        assert points_service.reverse_accrual(9) == 0

        assert points_service.get_customer_points(customer.id, program.id) is None
        assert PointLog.query.count() == 2

    def test_reversal_keeps_a_balance_with_other_history(self, db_session, make_customer, make_program):
        customer = make_customer()
        program = make_program(spend_per_point_cents=100, cost_per_point_cents=1)
        points_service.accrue(customer.id, program.id, 5000, sale_id=9)
        points_service.accrue(customer.id, program.id, 3000, sale_id=10)

        assert points_service.reverse_accrual(9) == 50

        balance = points_service.get_customer_points(customer.id, program.id)
        assert (balance.points, balance.total_earned, balance.estimated_cost_cents) == (30, 30, 30)

    def test_unknown_program(self, db_session, make_customer):
        with pytest.raises(NotFoundError):
            points_service.accrue(make_customer().id, 77, 1000)


class TestRedemption:
    def test_short_balance_raises_without_mutation(self, db_session, make_customer, make_program):
        customer = make_customer()
        program = make_program(tiers=((100, 500),))
        points_service.adjust_points(customer.id, program.id, 80)
        logs_before = PointLog.query.count()

        with pytest.raises(InsufficientPointsError) as exc:
            points_service.redeem(customer.id, program.id, _tier(program).id)

        assert exc.value.details == {"available": 80, "required": 100}
        assert points_service.get_customer_points(customer.id, program.id).points == 80
        assert PointLog.query.count() == logs_before
        assert CustomerBalanceLog.query.count() == 0
        assert db.session.get(Customer, customer.id).store_credit_cents == 0

    def test_customer_without_balance_row(self, db_session, make_customer, make_program):
        customer = make_customer()
        program = make_program()
        with pytest.raises(InsufficientPointsError):
            points_service.redeem(customer.id, program.id, _tier(program).id)

    def test_redeem_moves_points_into_store_credit(self, db_session, make_customer, make_program):
        customer = make_customer(store_credit_cents=100)
        program = make_program(spend_per_point_cents=100, cost_per_point_cents=1, tiers=((100, 500),))
        points_service.accrue(customer.id, program.id, 15_000)

        result = points_service.redeem(customer.id, program.id, _tier(program).id, note="Tier A")

        assert result.points_used == 100
        assert result.reward_value_cents == 500
        assert result.customer_points.points == 50
        assert result.customer_points.total_redeemed == 100
        assert result.customer_points.estimated_cost_cents == 50
        assert result.balance_log.entry_type == customer_service.ENTRY_RECHARGE
        assert result.balance_log.ref_id == str(result.point_log.id)
        assert db.session.get(Customer, customer.id).store_credit_cents == 600

    def test_tier_of_another_program(self, db_session, make_customer, make_program):
        customer = make_customer()
        first = make_program()
        second = make_program()
        with pytest.raises(NotFoundError):
            points_service.redeem(customer.id, first.id, _tier(second).id)


class TestAdjustments:
    def test_adjust_cannot_go_negative(self, db_session, make_customer, make_program):
        customer = make_customer()
        program = make_program()
        points_service.adjust_points(customer.id, program.id, 10)

        with pytest.raises(InsufficientPointsError):
            points_service.adjust_points(customer.id, program.id, -11)
        assert points_service.adjust_points(customer.id, program.id, -10).points == 0

    def test_zero_adjustment_rejected(self, db_session, make_customer, make_program):
        with pytest.raises(ValidationError):
            points_service.adjust_points(make_customer().id, make_program().id, 0)


class TestStoreCredit:
    def test_store_credit_log_records_before_and_after(self, db_session, make_customer):
        customer = make_customer(store_credit_cents=300)

        log = customer_service.adjust_store_credit(customer.id, -500, customer_service.ENTRY_SALE, note="Paid by credit")

        assert (log.balance_before_cents, log.balance_after_cents) == (300, -200)
        assert [entry.id for entry in customer_service.list_balance_logs(customer.id)] == [log.id]

    def test_invalid_entry_type(self, db_session, make_customer):
        with pytest.raises(ValidationError):
            customer_service.adjust_store_credit(make_customer().id, 100, "gift")
