# Overview: Service-layer operations for ledger integrity; read-only invariant checks across ledgers.

from __future__ import annotations

from ..extensions import db
from ..models import Account, CustomerPoints, PartnerAccount, Product, Settlement
from ..models.receivables import PARTNER_STATUS_PAID, PARTNER_STATUS_PARTIAL, PARTNER_STATUS_UNPAID
from .inventory_service import stock_drift


def _expected_status(account: PartnerAccount) -> str:
    balance = account.amount_cents - account.received_paid_cents
    if balance <= 0:
        return PARTNER_STATUS_PAID
    if balance < account.amount_cents:
        return PARTNER_STATUS_PARTIAL
    return PARTNER_STATUS_UNPAID


def check_ledgers() -> list[dict]:
    """
    Return every invariant violation found. Empty list means consistent.

    Each entry: {"check": name, "entity": kind, "id": id, "detail": text}
    """
    problems = []

    def report(check, entity, entity_id, detail):
        problems.append({"check": check, "entity": entity, "id": entity_id, "detail": detail})

    for product_id, delta in sorted(stock_drift().items()):
        report("stock_drift", "product", product_id, f"cached stock differs from log by {delta}")

    for product in db.session.query(Product).filter(Product.stock < 0, Product.allow_negative.is_(False)):
        report("negative_stock", "product", product.id, f"stock {product.stock}")
    for product in db.session.query(Product).filter(Product.avg_cost_cents < 0):
        report("negative_avg_cost", "product", product.id, f"avg_cost {product.avg_cost_cents}")

    for account in db.session.query(PartnerAccount).order_by(PartnerAccount.id):
        balance = account.amount_cents - account.received_paid_cents
        if balance < 0 or account.received_paid_cents < 0:
            report("partner_balance_negative", "partner_account", account.id, f"balance {balance}")
        expected = _expected_status(account)
        if account.status != expected:
            report(
                "partner_status_incoherent", "partner_account", account.id,
                f"status {account.status} but balance {balance} implies {expected}",
            )

    for account in db.session.query(Account).filter(Account.balance_cents < 0, Account.allow_negative.is_(False)):
        report("account_negative", "account", account.id, f"balance {account.balance_cents}")

    for settlement in db.session.query(Settlement).filter_by(status="posted").order_by(Settlement.id):
        allocated = sum(a.amount_cents for a in settlement.allocations)
        moved = sum(a.balance_before_cents - a.balance_after_cents for a in settlement.allocations)
        if allocated != settlement.amount_cents or moved != settlement.amount_cents:
            report(
                "allocation_conservation", "settlement", settlement.id,
                f"amount {settlement.amount_cents}, allocated {allocated}, balance moved {moved}",
            )

    for points in db.session.query(CustomerPoints).filter(
        (CustomerPoints.points < 0) | (CustomerPoints.estimated_cost_cents < 0)
    ):
        report("points_negative", "customer_points", points.id, f"points {points.points}")

    return problems
