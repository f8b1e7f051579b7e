"""
Pytest fixtures for back-office ledger tests.

Provides an in-memory database, per-test table cleanup, a test client and
small factories for the master data every ledger test needs.
"""

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    Account,
    Customer,
    PointProgram,
    PointRedemptionTier,
    Prize,
    PrizePool,
    Product,
    Vendor,
)
from backoffice.services import inventory_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SAGA_STEP_TIMEOUT_SECONDS': 30.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_product(db_session):
    """Create a product; opening stock goes through the inventory ledger."""
    counter = {"n": 0}

    def _make(name="Widget", price_cents=1000, cost_cents=500, stock=0, unit_cost_cents=None, allow_negative=False):
        counter["n"] += 1
        product = Product(
            item_code=f"SKU-{counter['n']:03d}",
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            allow_negative=allow_negative,
        )
        db_session.add(product)
        db_session.commit()
        if stock:
            inventory_service.receive_stock(
                product.id, stock, unit_cost_cents if unit_cost_cents is not None else cost_cents,
                ref_type=inventory_service.REF_CORRECTION, memo="Opening stock",
            )
        return product

    return _make


@pytest.fixture
def make_customer(db_session):
    counter = {"n": 0}

    def _make(name="Alice", store_credit_cents=0):
        counter["n"] += 1
        customer = Customer(
            customer_code=f"C{counter['n']:03d}",
            customer_name=name,
            store_credit_cents=store_credit_cents,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture
def make_vendor(db_session):
    counter = {"n": 0}

    def _make(name="Acme Supply"):
        counter["n"] += 1
        vendor = Vendor(vendor_code=f"V{counter['n']:03d}", vendor_name=name)
        db_session.add(vendor)
        db_session.commit()
        return vendor

    return _make


@pytest.fixture
def make_account(db_session):
    def _make(name="Cash", balance_cents=0, account_type="cash", allow_negative=False):
        account = Account(
            account_name=name,
            account_type=account_type,
            balance_cents=balance_cents,
            allow_negative=allow_negative,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture
def make_program(db_session):
    """Point program with tiers given as (points_required, reward_value_cents)."""
    def _make(spend_per_point_cents=100, cost_per_point_cents=1, tiers=((100, 500),)):
        program = PointProgram(
            name="Rewards",
            spend_per_point_cents=spend_per_point_cents,
            cost_per_point_cents=cost_per_point_cents,
        )
        db_session.add(program)
        db_session.flush()
        for points_required, reward in tiers:
            db_session.add(PointRedemptionTier(
                program_id=program.id, points_required=points_required, reward_value_cents=reward,
            ))
        db_session.commit()
        return program

    return _make


@pytest.fixture
def make_prize(db_session):
    def _make(product, remaining=3, tier="A"):
        pool = PrizePool(name="Lucky Draw", price_cents=0)
        db_session.add(pool)
        db_session.flush()
        prize = Prize(
            pool_id=pool.id, prize_tier=tier, product_id=product.id, quantity=remaining, remaining=remaining,
        )
        db_session.add(prize)
        db_session.commit()
        return prize

    return _make
