# Overview: Pytest coverage for settlement allocation and posting.

"""
Settlement Tests

Covers the pure allocators, validate-then-commit posting of receipts and
payments, and voiding.
"""

from datetime import date

import pytest

from backoffice.errors import AccountNotFoundError, OverpaymentError, ValidationError
from backoffice.extensions import db
from backoffice.models import Account, AccountTransaction, PartnerAccount, Settlement, SettlementAllocation
from backoffice.services import partner_account_service as pas
from backoffice.services import settlement_service
from backoffice.services.settlement_service import allocate_oldest_first, allocate_proportionally


def _open_ar(customer, amount, due_date=None, ref_id=1):
    return pas.open_account(
        pas.PARTNER_CUSTOMER, customer.id, pas.DIRECTION_AR, pas.REF_SALE, ref_id, amount, due_date=due_date,
    )


def _open_ap(vendor, amount, ref_id=1):
    return pas.open_account(pas.PARTNER_VENDOR, vendor.id, pas.DIRECTION_AP, pas.REF_PURCHASE, ref_id, amount)


class TestAllocators:
    def test_even_split(self):
        assert allocate_proportionally(150, [100, 100, 100]) == [50, 50, 50]

    def test_last_line_absorbs_remainder(self):
        assert allocate_proportionally(100, [100, 100, 100]) == [33, 33, 34]

    def test_full_payment_pays_every_line(self):
        balances = [7, 13, 1]
        assert allocate_proportionally(21, balances) == balances

    def test_overflow_is_handed_back_to_earlier_lines(self):
        balances = [1, 9, 1]
        shares = allocate_proportionally(10, balances)
        assert shares == [1, 8, 1]
        assert all(s <= b for s, b in zip(shares, balances))

    def test_oldest_first(self):
        assert allocate_oldest_first(150, [100, 100, 100]) == [100, 50, 0]

    def test_over_total_rejected(self):
        with pytest.raises(OverpaymentError):
            allocate_proportionally(301, [100, 100, 100])
        with pytest.raises(OverpaymentError):
            allocate_oldest_first(301, [100, 100, 100])

    def test_empty_or_non_positive_rejected(self):
        with pytest.raises(ValidationError):
            allocate_proportionally(10, [])
        with pytest.raises(ValidationError):
            allocate_oldest_first(0, [10])


class TestReceipts:
    def test_receipt_spread_across_open_lines(self, db_session, make_customer, make_account):
        customer = make_customer()
        cash = make_account(name="Cash")
        lines = [_open_ar(customer, 100) for _ in range(3)]

        result = settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 150, method="cash",
            account_ids=[line.id for line in lines],
        )

        settlement = result.settlement
        assert settlement.settlement_no.startswith("RC")
        assert [a.amount_cents for a in settlement.allocations] == [50, 50, 50]
        assert {line.status for line in PartnerAccount.query.all()} == {"partial"}
        assert db.session.get(Account, cash.id).balance_cents == 150
        assert settlement.account_id == cash.id
        assert result.warnings == []

    def test_default_targets_pay_oldest_due_first(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash")
        later = _open_ar(customer, 100, due_date=date(2026, 5, 1))
        earlier = _open_ar(customer, 100, due_date=date(2026, 4, 1))

        result = settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 120,
            strategy=settlement_service.STRATEGY_OLDEST_FIRST,
        )

        paid = {a.partner_account_id: a.amount_cents for a in result.settlement.allocations}
        assert paid == {earlier.id: 100, later.id: 20}

    def test_explicit_allocations(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash")
        a = _open_ar(customer, 100)
        b = _open_ar(customer, 100)

        result = settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 130,
            allocations=[{"account_id": a.id, "amount_cents": 100}, {"account_id": b.id, "amount_cents": 30}],
        )

        assert [(x.balance_before_cents, x.balance_after_cents) for x in result.settlement.allocations] == [
            (100, 0), (100, 70),
        ]
        assert db.session.get(PartnerAccount, a.id).status == "paid"

    def test_unresolved_cash_account_is_a_warning(self, db_session, make_customer):
        customer = make_customer()
        line = _open_ar(customer, 100)

        result = settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 100, method="voucher",
        )

        assert result.settlement.account_id is None
        assert result.warnings
        assert db.session.get(PartnerAccount, line.id).status == "paid"


class TestValidationLeavesNothingBehind:
    def _snapshot(self):
        return (
            Settlement.query.count(),
            SettlementAllocation.query.count(),
            AccountTransaction.query.count(),
            [(p.id, p.received_paid_cents, p.status) for p in PartnerAccount.query.order_by(PartnerAccount.id)],
            [(a.id, a.balance_cents) for a in Account.query.order_by(Account.id)],
        )

    def test_receipt_over_open_balance(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash", balance_cents=1000)
        for _ in range(3):
            _open_ar(customer, 100)
        before = self._snapshot()

        with pytest.raises(OverpaymentError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 400,
            )

        assert self._snapshot() == before

    def test_allocations_must_sum_to_amount(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash")
        line = _open_ar(customer, 100)
        before = self._snapshot()

        with pytest.raises(ValidationError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 50,
                allocations=[{"account_id": line.id, "amount_cents": 40}],
            )

        assert self._snapshot() == before

    def test_explicit_allocation_over_line_balance(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash")
        a = _open_ar(customer, 100)
        b = _open_ar(customer, 100)
        before = self._snapshot()

        with pytest.raises(OverpaymentError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 150,
                allocations=[{"account_id": a.id, "amount_cents": 30}, {"account_id": b.id, "amount_cents": 120}],
            )

        assert self._snapshot() == before

    def test_decimal_amounts_are_refused(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash")
        line = _open_ar(customer, 300)
        before = self._snapshot()

        with pytest.raises(ValidationError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 150.9,
            )
        with pytest.raises(ValidationError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 150,
                allocations=[{"account_id": line.id, "amount_cents": 150.4}],
            )
        with pytest.raises(ValidationError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 150,
                allocations=[{"account_id": line.id, "amount_cents": "150.0"}],
            )

        assert self._snapshot() == before

    def test_wrong_polarity(self, db_session, make_customer, make_vendor):
        customer = make_customer()
        vendor = make_vendor()
        line = _open_ar(customer, 100)

        with pytest.raises(ValidationError):
            settlement_service.record_settlement(
                pas.PARTNER_VENDOR, vendor.id, settlement_service.DIRECTION_RECEIPT, 100,
            )
        with pytest.raises(ValidationError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_PAYMENT, 100,
                account_ids=[line.id],
            )

    def test_line_of_another_customer(self, db_session, make_customer, make_account):
        alice = make_customer("Alice")
        bob = make_customer("Bob")
        make_account(name="Cash")
        bobs_line = _open_ar(bob, 100)

        with pytest.raises(ValidationError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, alice.id, settlement_service.DIRECTION_RECEIPT, 100,
                account_ids=[bobs_line.id],
            )

    def test_missing_target(self, db_session, make_customer):
        customer = make_customer()
        with pytest.raises(AccountNotFoundError):
            settlement_service.record_settlement(
                pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 100,
                account_ids=[999],
            )


class TestVendorPayments:
    def test_payment_decreases_cash(self, db_session, make_vendor, make_account):
        vendor = make_vendor()
        bank = make_account(name="Bank", account_type="bank", balance_cents=5000)
        line = _open_ap(vendor, 2000)

        result = settlement_service.record_settlement(
            pas.PARTNER_VENDOR, vendor.id, settlement_service.DIRECTION_PAYMENT, 2000, method="bank_transfer",
        )

        assert result.settlement.settlement_no.startswith("PY")
        assert db.session.get(Account, bank.id).balance_cents == 3000
        assert db.session.get(PartnerAccount, line.id).status == "paid"

    def test_payment_that_would_overdraw_is_rolled_back(self, db_session, make_vendor, make_account):
        from backoffice.errors import InsufficientFundsError

        vendor = make_vendor()
        cash = make_account(name="Cash", balance_cents=100)
        line = _open_ap(vendor, 2000)

        with pytest.raises(InsufficientFundsError):
            settlement_service.record_settlement(
                pas.PARTNER_VENDOR, vendor.id, settlement_service.DIRECTION_PAYMENT, 500,
            )

        assert db.session.get(PartnerAccount, line.id).received_paid_cents == 0
        assert db.session.get(Account, cash.id).balance_cents == 100
        assert Settlement.query.count() == 0


class TestVoid:
    def test_void_restores_lines_and_cash(self, db_session, make_customer, make_account):
        customer = make_customer()
        cash = make_account(name="Cash")
        lines = [_open_ar(customer, 100) for _ in range(2)]
        posted = settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 200,
        ).settlement

        result = settlement_service.void_settlement(posted.id)

        assert result.settlement.status == settlement_service.STATUS_VOIDED
        assert result.settlement.voided_at is not None
        for line in lines:
            refreshed = db.session.get(PartnerAccount, line.id)
            assert refreshed.received_paid_cents == 0
            assert refreshed.status == "unpaid"
        assert db.session.get(Account, cash.id).balance_cents == 0
        assert SettlementAllocation.query.count() == 2

    def test_void_twice_rejected(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash")
        _open_ar(customer, 100)
        posted = settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 100,
        ).settlement
        settlement_service.void_settlement(posted.id)

        with pytest.raises(ValidationError):
            settlement_service.void_settlement(posted.id)

    def test_voided_lines_can_be_deleted(self, db_session, make_customer, make_account):
        customer = make_customer()
        make_account(name="Cash")
        _open_ar(customer, 100, ref_id=8)
        posted = settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, customer.id, settlement_service.DIRECTION_RECEIPT, 100,
        ).settlement

        with pytest.raises(ValidationError):
            pas.delete_accounts_for(pas.REF_SALE, ref_id=8)

        settlement_service.void_settlement(posted.id)
        assert pas.delete_accounts_for(pas.REF_SALE, ref_id=8) == 1
        assert SettlementAllocation.query.count() == 0
