# Overview: Pytest coverage for receivable/payable lines.

"""
Partner Account Tests

- balance = amount - received_paid, never negative
- status derived from balance
- lines with money applied cannot be deleted
"""

from datetime import date, timedelta

import pytest

from backoffice.errors import AccountNotFoundError, OverpaymentError, ValidationError
from backoffice.extensions import db
from backoffice.models import PartnerAccount
from backoffice.services import partner_account_service as pas
from backoffice.time_utils import business_today


def _open_ar(customer, amount, ref_id=1, **kwargs):
    return pas.open_account(pas.PARTNER_CUSTOMER, customer.id, pas.DIRECTION_AR, pas.REF_SALE, ref_id, amount, **kwargs)


class TestOpenAccount:
    def test_new_line_is_unpaid_with_default_due_date(self, app, db_session, make_customer):
        line = _open_ar(make_customer(), 1500)

        assert line.status == "unpaid"
        assert line.balance_cents == 1500
        assert line.due_date == business_today() + timedelta(days=app.config["SALE_AR_DUE_DAYS"])

    def test_vendor_due_date_policy(self, app, db_session, make_vendor):
        vendor = make_vendor()
        line = pas.open_account(pas.PARTNER_VENDOR, vendor.id, pas.DIRECTION_AP, pas.REF_PURCHASE, 3, 900)
        assert line.due_date == business_today() + timedelta(days=app.config["PURCHASE_AP_DUE_DAYS"])

    def test_mismatched_polarity_rejected(self, db_session, make_customer):
        customer = make_customer()
        with pytest.raises(ValidationError):
            pas.open_account(pas.PARTNER_CUSTOMER, customer.id, pas.DIRECTION_AP, pas.REF_SALE, 1, 100)

    def test_non_positive_amount_rejected(self, db_session, make_customer):
        with pytest.raises(ValidationError):
            _open_ar(make_customer(), 0)


class TestPayments:
    def test_status_follows_balance(self, db_session, make_customer):
        line = _open_ar(make_customer(), 1000, due_date=date(2026, 1, 1))

        pas.apply_payment(line.id, 400)
        assert line.status == "partial"
        assert line.balance_cents == 600

        pas.apply_payment(line.id, 600)
        assert line.status == "paid"
        assert line.balance_cents == 0

        pas.reverse_payment(line.id, 250)
        assert line.status == "partial"
        assert line.received_paid_cents == 750

    def test_overpayment_rejected(self, db_session, make_customer):
        line = _open_ar(make_customer(), 1000)
        with pytest.raises(OverpaymentError) as exc:
            pas.apply_payment(line.id, 1001)
        assert exc.value.details["balance_cents"] == 1000
        assert db.session.get(PartnerAccount, line.id).received_paid_cents == 0

    def test_cannot_reverse_more_than_applied(self, db_session, make_customer):
        line = _open_ar(make_customer(), 1000)
        pas.apply_payment(line.id, 100)
        with pytest.raises(ValidationError):
            pas.reverse_payment(line.id, 101)

    def test_missing_line(self, db_session):
        with pytest.raises(AccountNotFoundError):
            pas.apply_payment(12345, 10)


class TestDeletion:
    def test_unpaid_lines_are_deleted(self, db_session, make_customer):
        customer = make_customer()
        _open_ar(customer, 100, ref_id=5)
        _open_ar(customer, 200, ref_id=5)
        other = _open_ar(customer, 300, ref_id=6)

        assert pas.delete_accounts_for(pas.REF_SALE, ref_id=5) == 2
        assert [line.id for line in PartnerAccount.query.all()] == [other.id]

    def test_lines_with_money_applied_are_kept(self, db_session, make_customer):
        line = _open_ar(make_customer(), 100, ref_id=5)
        pas.apply_payment(line.id, 10)

        with pytest.raises(ValidationError):
            pas.delete_accounts_for(pas.REF_SALE, ref_id=5)
        assert PartnerAccount.query.count() == 1

    def test_a_selector_is_required(self, db_session):
        with pytest.raises(ValidationError):
            pas.delete_accounts_for(pas.REF_SALE)


class TestReduction:
    def test_newest_line_is_cut_first(self, db_session, make_customer):
        customer = make_customer()
        first = _open_ar(customer, 100, ref_id=5)
        _open_ar(customer, 200, ref_id=5)

        assert pas.reduce_accounts_for(pas.REF_SALE, 5, 250) == 250

        (line,) = PartnerAccount.query.all()
        assert (line.id, line.amount_cents, line.status) == (first.id, 50, "unpaid")

    def test_returns_only_what_the_lines_held(self, db_session, make_customer):
        _open_ar(make_customer(), 100, ref_id=5)

        assert pas.reduce_accounts_for(pas.REF_SALE, 5, 400) == 100
        assert PartnerAccount.query.count() == 0

    def test_lines_with_money_applied_are_untouched(self, db_session, make_customer):
        line = _open_ar(make_customer(), 100, ref_id=5)
        pas.apply_payment(line.id, 10)

        with pytest.raises(ValidationError):
            pas.reduce_accounts_for(pas.REF_SALE, 5, 50)
        assert db.session.get(PartnerAccount, line.id).amount_cents == 100


class TestRebuild:
    def test_rebuild_without_allocations_clears_stray_payments(self, db_session, make_customer):
        line = _open_ar(make_customer(), 800)
        pas.apply_payment(line.id, 300)

        result = pas.rebuild_partner_accounts()

        assert result["accounts_fixed"] == 1
        assert line.received_paid_cents == 0
        assert line.status == "unpaid"
        assert pas.rebuild_partner_accounts()["accounts_fixed"] == 0

    def test_open_lines_listed_by_due_date(self, db_session, make_customer):
        customer = make_customer()
        late = _open_ar(customer, 100, due_date=date(2026, 3, 1))
        early = _open_ar(customer, 100, due_date=date(2026, 2, 1))
        paid = _open_ar(customer, 100, due_date=date(2026, 1, 1))
        pas.apply_payment(paid.id, 100)

        open_ids = [line.id for line in pas.list_open_accounts(pas.PARTNER_CUSTOMER, customer.id, pas.DIRECTION_AR)]
        assert open_ids == [early.id, late.id]
