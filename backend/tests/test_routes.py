# Overview: Pytest coverage for the JSON API surface.

"""
API Route Tests

Exercise the blueprints end to end through the Flask test client: status
codes, error payloads and the warnings channel.
"""

from backoffice.extensions import db
from backoffice.models import Account, Product, Settlement


class TestHealth:
    def test_health_reports_database_and_ledgers(self, client, db_session):
        response = client.get("/api/health")
        body = response.get_json()

        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["ledgers"]["violations"] == 0

    def test_health_degraded_on_violation(self, client, db_session, make_product):
        product = make_product(stock=2)
        product.stock = 7
        db_session.commit()

        body = client.get("/api/health").get_json()
        assert body["status"] == "degraded"


class TestSaleRoutes:
    def test_create_get_and_delete(self, client, db_session, make_product, make_customer, make_account):
        product = make_product(stock=5, price_cents=1200)
        customer = make_customer()
        make_account(name="Cash")

        created = client.post("/api/sales", json={
            "customer_id": customer.id,
            "is_paid": True,
            "payment_method": "cash",
            "items": [{"product_id": product.id, "quantity": 2}],
        })
        assert created.status_code == 201
        sale = created.get_json()["sale"]
        assert sale["total_cents"] == 2400
        assert sale["is_paid"] is True
        assert created.get_json()["warnings"] == []

        fetched = client.get(f"/api/sales/{sale['id']}").get_json()["sale"]
        assert len(fetched["deliveries"]) == 1

        deleted = client.delete(f"/api/sales/{sale['id']}")
        assert deleted.status_code == 200
        assert db.session.get(Product, product.id).stock == 5

    def test_insufficient_stock_is_409_with_details(self, client, db_session, make_product):
        product = make_product(stock=1)

        response = client.post("/api/sales", json={"items": [{"product_id": product.id, "quantity": 2}]})

        assert response.status_code == 409
        assert response.get_json()["details"]["items"][0]["requested_quantity"] == 2

    def test_missing_sale_is_404(self, client, db_session):
        assert client.get("/api/sales/999").status_code == 404

    def test_confirm_delivery_and_store_credit(self, client, db_session, make_product, make_customer):
        product = make_product(stock=5)
        customer = make_customer()
        sale = client.post("/api/sales", json={
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 1, "is_delivered": False}],
        }).get_json()["sale"]
        delivery_id = client.get(f"/api/sales/{sale['id']}").get_json()["sale"]["deliveries"][0]["id"]

        confirmed = client.post(f"/api/deliveries/{delivery_id}/confirm")
        assert confirmed.status_code == 200
        assert confirmed.get_json()["fulfillment_status"] == "completed"

        converted = client.post(f"/api/sale-items/{sale['items'][0]['id']}/to-store-credit", json={})
        assert converted.status_code == 200
        assert converted.get_json()["refunded_quantity"] == 1
        assert converted.get_json()["customer_balance"]["balance_after_cents"] == 1000


class TestPurchaseRoutes:
    def test_purchase_lifecycle(self, client, db_session, make_product, make_vendor):
        product = make_product(stock=10, cost_cents=500)
        vendor = make_vendor()

        created = client.post("/api/purchases", json={
            "vendor_id": vendor.id,
            "items": [{"product_id": product.id, "quantity": 5, "cost_cents": 800}],
        })
        assert created.status_code == 201
        purchase_id = created.get_json()["purchase"]["id"]

        approved = client.post(f"/api/purchases/{purchase_id}/approve")
        assert approved.status_code == 200
        assert db.session.get(Product, product.id).avg_cost_cents == 600.0

        assert client.post(f"/api/purchases/{purchase_id}/cancel").status_code == 400
        assert client.delete(f"/api/purchases/{purchase_id}").status_code == 200
        assert db.session.get(Product, product.id).avg_cost_cents == 500.0

    def test_vendor_required(self, client, db_session):
        assert client.post("/api/purchases", json={"items": []}).status_code == 400


class TestSettlementRoutes:
    def test_receipt_then_void(self, client, db_session, make_product, make_customer, make_account):
        product = make_product(stock=5, price_cents=1000)
        customer = make_customer()
        cash = make_account(name="Cash")
        client.post("/api/sales", json={
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 3}],
        })

        receipt = client.post("/api/receipts", json={"customer_id": customer.id, "amount_cents": 1500})
        assert receipt.status_code == 201
        settlement = receipt.get_json()["settlement"]
        assert sum(a["amount_cents"] for a in settlement["allocations"]) == 1500
        assert db.session.get(Account, cash.id).balance_cents == 1500

        voided = client.post(f"/api/settlements/{settlement['id']}/void", json={"note": "Bounced"})
        assert voided.status_code == 200
        assert voided.get_json()["settlement"]["status"] == "voided"
        assert db.session.get(Account, cash.id).balance_cents == 0

    def test_overpayment_is_409(self, client, db_session, make_customer):
        customer = make_customer()
        from backoffice.services import partner_account_service as pas

        pas.open_account(pas.PARTNER_CUSTOMER, customer.id, pas.DIRECTION_AR, pas.REF_SALE, 1, 100)

        response = client.post("/api/receipts", json={"customer_id": customer.id, "amount_cents": 101})
        assert response.status_code == 409

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/payments", json={"vendor_id": 1}).status_code == 400

    def test_decimal_amount_is_400_and_posts_nothing(self, client, db_session, make_customer, make_account):
        customer = make_customer()
        cash = make_account(name="Cash")
        from backoffice.services import partner_account_service as pas

        pas.open_account(pas.PARTNER_CUSTOMER, customer.id, pas.DIRECTION_AR, pas.REF_SALE, 1, 300)

        response = client.post("/api/receipts", json={"customer_id": customer.id, "amount_cents": 150.9})
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "amount_cents"
        assert Settlement.query.count() == 0
        assert db.session.get(Account, cash.id).balance_cents == 0


class TestPointsAndAccountRoutes:
    def test_redeem_short_points_is_409(self, client, db_session, make_customer, make_program):
        from backoffice.models import PointRedemptionTier

        customer = make_customer()
        program = make_program(tiers=((100, 500),))
        tier = PointRedemptionTier.query.filter_by(program_id=program.id).one()
        client.post("/api/customer-points/adjust", json={
            "customer_id": customer.id, "program_id": program.id, "points_change": 80,
        })

        response = client.post("/api/customer-points/redeem", json={
            "customer_id": customer.id, "program_id": program.id, "tier_id": tier.id,
        })

        assert response.status_code == 409
        assert response.get_json()["details"] == {"available": 80, "required": 100}

    def test_adjust_transfer_and_history(self, client, db_session, make_account):
        cash = make_account(name="Cash", balance_cents=1000)
        bank = make_account(name="Bank", account_type="bank")

        assert client.post("/api/accounts/adjust", json={"account_id": cash.id, "amount_cents": -200}).status_code == 200
        transfer = client.post("/api/accounts/transfer", json={
            "from_account_id": cash.id, "to_account_id": bank.id, "amount_cents": 300,
        })
        assert transfer.status_code == 200

        history = client.get(f"/api/accounts/{cash.id}/transactions").get_json()["transactions"]
        assert [t["balance_after_cents"] for t in history] == [500, 800]

    def test_overdraw_transfer_is_409(self, client, db_session, make_account):
        cash = make_account(name="Cash", balance_cents=10)
        bank = make_account(name="Bank", account_type="bank")
        response = client.post("/api/accounts/transfer", json={
            "from_account_id": cash.id, "to_account_id": bank.id, "amount_cents": 300,
        })
        assert response.status_code == 409

    def test_decimal_adjustment_is_400(self, client, db_session, make_account):
        cash = make_account(name="Cash", balance_cents=1000)

        response = client.post("/api/accounts/adjust", json={"account_id": cash.id, "amount_cents": -2.5})

        assert response.status_code == 400
        assert db.session.get(Account, cash.id).balance_cents == 1000


class TestInventoryRoute:
    def test_inventory_summary(self, client, db_session, make_product):
        product = make_product(stock=3, cost_cents=250)
        body = client.get(f"/api/products/{product.id}/inventory").get_json()
        assert body["summary"]["inventory_value_cents"] == 750
        assert len(body["movements"]) == 1
