# Overview: Pytest coverage for sale creation, deletion, delivery and store-credit conversion.

"""
Sale Orchestrator Tests

- create_sale applies stock, prizes, cash, AR and points together
- a failing step compensates every completed step
- delete_sale reverses everything the sale caused, in one transaction
- conversion to store credit refunds stock and credits the customer
"""

from unittest.mock import patch

import pytest

from backoffice.errors import (
    AccountNotFoundError,
    InsufficientStockError,
    NotFoundError,
    StepTimeoutError,
    ValidationError,
)
from backoffice.extensions import db
from backoffice.models import (
    Account,
    Customer,
    Delivery,
    DeliveryItem,
    DocumentSequence,
    InventoryLog,
    PartnerAccount,
    Prize,
    Product,
    Sale,
    SaleCorrection,
    SaleItem,
)
from backoffice.services import points_service, sale_service, settlement_service
from backoffice.services import partner_account_service as pas


@pytest.fixture
def shop(make_product, make_customer, make_account, make_program):
    """A product with stock 10 @ 5.00, a customer, a cash drawer and a points program."""
    return {
        "product": make_product(name="Mug", price_cents=1000, cost_cents=500, stock=10),
        "customer": make_customer(),
        "cash": make_account(name="Cash"),
        "program": make_program(spend_per_point_cents=100),
    }


def _draft(shop, **overrides):
    draft = {
        "customer_id": shop["customer"].id,
        "payment_method": "cash",
        "payments": [{"amount_cents": 500}],
        "point_program_id": shop["program"].id,
        "items": [{"product_id": shop["product"].id, "quantity": 2}],
    }
    draft.update(overrides)
    return draft


def _ledger_state(shop):
    product = db.session.get(Product, shop["product"].id)
    return {
        "stock": product.stock,
        "avg_cost": product.avg_cost_cents,
        "cash": db.session.get(Account, shop["cash"].id).balance_cents,
        "sales": Sale.query.count(),
        "items": SaleItem.query.count(),
        "deliveries": Delivery.query.count(),
        "delivery_items": DeliveryItem.query.count(),
        "receivables": PartnerAccount.query.count(),
        "prizes": [(p.id, p.remaining) for p in Prize.query.order_by(Prize.id)],
    }


class TestCreateSale:
    def test_sale_touches_every_ledger(self, db_session, shop):
        result = sale_service.create_sale(_draft(shop))
        sale = result.sale

        assert sale.sale_no.startswith("S")
        assert sale.status == sale_service.SALE_STATUS_CONFIRMED
        assert (sale.total_cents, sale.paid_cents, sale.is_paid) == (2000, 500, False)
        assert sale.fulfillment_status == sale_service.FULFILLMENT_COMPLETED
        assert result.warnings == []

        item = sale.items[0]
        assert item.snapshot_name == "Mug"
        assert item.cost_cents == pytest.approx(500.0)
        assert item.delivered_quantity == 2

        assert db.session.get(Product, shop["product"].id).stock == 8
        assert db.session.get(Account, shop["cash"].id).balance_cents == 500

        (line,) = PartnerAccount.query.all()
        assert (line.amount_cents, line.sale_item_id, line.status) == (1500, item.id, "unpaid")

        points = points_service.get_customer_points(shop["customer"].id, shop["program"].id)
        assert points.points == 20

    def test_discount_and_receivable_split_by_subtotal(self, db_session, shop, make_product):
        other = make_product(name="Plate", price_cents=3000, stock=5)
        result = sale_service.create_sale(_draft(
            shop,
            payments=[],
            point_program_id=None,
            discount_type="amount",
            discount_value=1000,
            items=[
                {"product_id": shop["product"].id, "quantity": 1},
                {"product_id": other.id, "quantity": 1},
            ],
        ))

        assert result.sale.subtotal_cents == 4000
        assert result.sale.total_cents == 3000
        amounts = [line.amount_cents for line in PartnerAccount.query.order_by(PartnerAccount.id)]
        assert amounts == [750, 2250]

    def test_undelivered_items_get_a_draft_delivery(self, db_session, shop):
        result = sale_service.create_sale(_draft(
            shop, items=[{"product_id": shop["product"].id, "quantity": 3, "is_delivered": False}],
        ))

        (delivery,) = result.sale.deliveries
        assert delivery.status == sale_service.DELIVERY_DRAFT
        assert result.sale.fulfillment_status == sale_service.FULFILLMENT_NONE
        assert db.session.get(Product, shop["product"].id).stock == 10

    def test_insufficient_stock_writes_nothing(self, db_session, shop):
        before = _ledger_state(shop)

        with pytest.raises(InsufficientStockError) as exc:
            sale_service.create_sale(_draft(shop, items=[{"product_id": shop["product"].id, "quantity": 11}]))

        assert exc.value.details["items"][0]["on_hand"] == 10
        assert _ledger_state(shop) == before

    def test_bad_draft_rejected_before_any_write(self, db_session, shop):
        with pytest.raises(ValidationError):
            sale_service.create_sale(_draft(shop, items=[]))
        with pytest.raises(NotFoundError):
            sale_service.create_sale(_draft(shop, customer_id=999))
        with pytest.raises(ValidationError):
            sale_service.create_sale(_draft(shop, payments=[{"amount_cents": 5000}]))
        assert Sale.query.count() == 0

    def test_unknown_cash_account_rejected_before_any_write(self, db_session, shop):
        sale_service.create_sale(_draft(shop))
        movements = InventoryLog.query.count()
        sequences = [(s.document_type, s.next_number) for s in DocumentSequence.query.order_by(DocumentSequence.id)]
        before = _ledger_state(shop)

        with pytest.raises(AccountNotFoundError):
            sale_service.create_sale(_draft(shop, payments=[{"account_id": 9999, "amount_cents": 100}]))
        with pytest.raises(AccountNotFoundError):
            sale_service.create_sale(_draft(shop, payments=[], is_paid=True, account_id=9999))

        assert InventoryLog.query.count() == movements
        assert [(s.document_type, s.next_number) for s in DocumentSequence.query.order_by(DocumentSequence.id)] == sequences
        assert _ledger_state(shop) == before

    def test_decimal_money_is_refused(self, db_session, shop):
        before = _ledger_state(shop)

        with pytest.raises(ValidationError):
            sale_service.create_sale(_draft(shop, payments=[{"amount_cents": 150.9}]))
        with pytest.raises(ValidationError):
            sale_service.create_sale(_draft(
                shop, items=[{"product_id": shop["product"].id, "quantity": 2, "price_cents": "999.5"}],
            ))

        assert _ledger_state(shop) == before

    def test_warnings_for_missing_customer_and_unknown_method(self, db_session, shop):
        result = sale_service.create_sale(_draft(
            shop, customer_id=None, payments=[{"amount_cents": 500, "method": "voucher"}],
        ))

        assert len(result.warnings) == 3
        assert result.sale.payment_unresolved is True
        assert PartnerAccount.query.count() == 0
        assert db.session.get(Account, shop["cash"].id).balance_cents == 0

    def test_prize_is_reserved(self, db_session, shop, make_prize):
        prize = make_prize(shop["product"], remaining=3)
        sale_service.create_sale(_draft(
            shop, items=[{"product_id": shop["product"].id, "quantity": 1, "prize_id": prize.id}],
        ))
        assert db.session.get(Prize, prize.id).remaining == 2


class TestCreateSaleCompensation:
    def test_failure_in_last_step_restores_every_ledger(self, db_session, shop, make_prize):
        prize = make_prize(shop["product"], remaining=3)
        draft = _draft(shop, items=[
            {"product_id": shop["product"].id, "quantity": 2},
            {"product_id": shop["product"].id, "quantity": 1, "prize_id": prize.id},
        ])
        before = _ledger_state(shop)

        with patch("backoffice.services.points_service.accrue", side_effect=RuntimeError("points down")):
            with pytest.raises(RuntimeError):
                sale_service.create_sale(draft)

        assert _ledger_state(shop) == before
        assert points_service.get_customer_points(shop["customer"].id, shop["program"].id) is None

    def test_timed_out_accrual_leaves_no_points_balance(self, db_session, shop):
        real_accrue = points_service.accrue
        clock = {"now": 0.0}

        def slow_accrue(*args, **kwargs):
            earned = real_accrue(*args, **kwargs)
            clock["now"] += 100.0
            return earned

        before = _ledger_state(shop)

        with patch("backoffice.services.points_service.accrue", side_effect=slow_accrue), \
                patch("backoffice.services.saga.time.monotonic", side_effect=lambda: clock["now"]):
            with pytest.raises(StepTimeoutError):
                sale_service.create_sale(_draft(shop))

        assert _ledger_state(shop) == before
        assert points_service.get_customer_points(shop["customer"].id, shop["program"].id) is None

    def test_failure_while_opening_receivables(self, db_session, shop):
        before = _ledger_state(shop)

        with patch(
            "backoffice.services.partner_account_service.open_account", side_effect=RuntimeError("ar down"),
        ):
            with pytest.raises(RuntimeError):
                sale_service.create_sale(_draft(shop))

        assert _ledger_state(shop) == before


class TestDeleteSale:
    def test_delete_reverses_everything(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop)).sale

        sale_service.delete_sale(sale.id)

        assert db.session.get(Product, shop["product"].id).stock == 10
        assert db.session.get(Account, shop["cash"].id).balance_cents == 0
        assert PartnerAccount.query.count() == 0
        assert Sale.query.count() == 0
        assert points_service.get_customer_points(shop["customer"].id, shop["program"].id) is None

    def test_delete_refused_while_receivable_has_payments(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop)).sale
        settlement_service.record_settlement(
            pas.PARTNER_CUSTOMER, shop["customer"].id, settlement_service.DIRECTION_RECEIPT, 100,
        )

        with pytest.raises(ValidationError):
            sale_service.delete_sale(sale.id)

        assert db.session.get(Product, shop["product"].id).stock == 8
        assert db.session.get(Sale, sale.id) is not None

    def test_missing_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sale_service.delete_sale(123)


class TestConfirmDelivery:
    def test_confirm_moves_stock_and_fulfillment(self, db_session, shop):
        sale = sale_service.create_sale(_draft(
            shop, items=[{"product_id": shop["product"].id, "quantity": 3, "is_delivered": False}],
        )).sale
        delivery_id = sale.deliveries[0].id

        delivery = sale_service.confirm_delivery(delivery_id)

        assert delivery.status == sale_service.DELIVERY_CONFIRMED
        assert delivery.sale.fulfillment_status == sale_service.FULFILLMENT_COMPLETED
        assert db.session.get(Product, shop["product"].id).stock == 7

        with pytest.raises(ValidationError):
            sale_service.confirm_delivery(delivery_id)

    def test_confirm_without_stock_rolls_back(self, db_session, shop):
        sale = sale_service.create_sale(_draft(
            shop, items=[{"product_id": shop["product"].id, "quantity": 10, "is_delivered": False}],
        )).sale
        sale_service.create_sale(_draft(shop, items=[{"product_id": shop["product"].id, "quantity": 5}]))

        with pytest.raises(InsufficientStockError):
            sale_service.confirm_delivery(sale.deliveries[0].id)

        assert db.session.get(Delivery, sale.deliveries[0].id).status == sale_service.DELIVERY_DRAFT
        assert db.session.get(Product, shop["product"].id).stock == 5


class TestStoreCreditConversion:
    def test_full_conversion_refunds_stock_and_credits_customer(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop, payments=[], is_paid=True, point_program_id=None)).sale
        item_id = sale.items[0].id

        result = sale_service.convert_sale_item_to_store_credit(item_id)

        assert result.store_credit_cents == 2000
        assert result.refunded_quantity == 2
        assert result.sale_item.subtotal_cents == 0
        assert result.sale.total_cents == 0
        assert result.correction.store_credit_granted_cents == 2000
        assert db.session.get(Product, shop["product"].id).stock == 10
        assert db.session.get(Customer, shop["customer"].id).store_credit_cents == 2000

    def test_partial_amount_and_invalid_amount_fallback(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop, payments=[], is_paid=True, point_program_id=None)).sale
        item_id = sale.items[0].id

        partial = sale_service.convert_sale_item_to_store_credit(item_id, amount=500, refund_inventory=False)
        assert partial.store_credit_cents == 500
        assert partial.sale_item.subtotal_cents == 1500
        assert partial.sale_item.price_cents == 750
        assert partial.refunded_quantity == 0

        rest = sale_service.convert_sale_item_to_store_credit(item_id, amount="lots")
        assert rest.store_credit_cents == 1500

    def test_unpaid_item_receivable_is_dropped(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop, payments=[], point_program_id=None)).sale

        sale_service.convert_sale_item_to_store_credit(sale.items[0].id)

        assert PartnerAccount.query.count() == 0

    def test_partial_conversion_shrinks_receivable(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop, payments=[], point_program_id=None)).sale

        result = sale_service.convert_sale_item_to_store_credit(sale.items[0].id, amount=300, refund_inventory=False)

        (line,) = PartnerAccount.query.all()
        assert (line.amount_cents, line.received_paid_cents, line.status) == (1700, 0, "unpaid")
        assert (result.sale.total_cents, result.sale.paid_cents, result.sale.is_paid) == (1700, 0, False)

    def test_decimal_conversion_amount_is_refused(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop, payments=[], is_paid=True, point_program_id=None)).sale

        with pytest.raises(ValidationError):
            sale_service.convert_sale_item_to_store_credit(sale.items[0].id, amount=300.5)

        assert SaleCorrection.query.count() == 0
        assert db.session.get(Customer, shop["customer"].id).store_credit_cents == 0

    def test_conversion_needs_customer(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop, customer_id=None, payments=[], is_paid=True)).sale
        with pytest.raises(ValidationError):
            sale_service.convert_sale_item_to_store_credit(sale.items[0].id)
        assert SaleCorrection.query.count() == 0

    def test_delete_after_conversion_takes_credit_back(self, db_session, shop):
        sale = sale_service.create_sale(_draft(shop, payments=[], is_paid=True, point_program_id=None)).sale
        sale_service.convert_sale_item_to_store_credit(sale.items[0].id)

        sale_service.delete_sale(sale.id)

        assert db.session.get(Customer, shop["customer"].id).store_credit_cents == 0
        assert db.session.get(Product, shop["product"].id).stock == 10
        assert SaleCorrection.query.count() == 0
