# Overview: Service-layer operations for inventory; stock movements and weighted-average costing.

# backend/backoffice/services/inventory_service.py

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, InventoryLog
from .concurrency import finish, lock_for_update, run_unit, run_with_retry
"""
Inventory Invariants (authoritative)

Inventory model:
- InventoryLog is append-only; Product.stock == SUM(InventoryLog.qty_change).
- Product.stock is written only here, in the same transaction as the log row
  that moves it, while the product row is locked.
- A wrong movement is undone by appending a reversing movement, never by
  editing or deleting log rows.

Business invariants:
- Outbound movements may not make stock negative unless the product has
  allow_negative set (InsufficientStockError otherwise).
- Inbound cost events (receive_stock) recost avg_cost_cents:
    (stock_before * old_avg + qty * unit_cost) / stock_after   when stock_after > 0
- Reversing an inbound cost event (reverse_receipt) removes its contribution:
    (stock_before_reversal * old_avg - qty * unit_cost) / stock_after_reversal
  clamped to >= 0, and 0 when the reversal empties stock.
- Outbound movements and returns of sold goods leave avg_cost_cents unchanged.
- The two recost formulas are exact inverses when replayed in reverse order.
"""


REF_PURCHASE = "purchase"
REF_PURCHASE_REVERSAL = "purchase_reversal"
REF_DELIVERY = "delivery"
REF_RETURN = "return"
REF_CORRECTION = "correction"

VALID_REF_TYPES = {
    REF_PURCHASE,
    REF_PURCHASE_REVERSAL,
    REF_DELIVERY,
    REF_RETURN,
    REF_CORRECTION,
}


# =============================================================================
# COSTING (pure)
# =============================================================================

def recost_on_inbound(
    stock_after: int,
    old_avg_cost: float,
    incoming_qty: int,
    incoming_unit_cost: float,
) -> float:
    """Weighted average after an inbound movement; unchanged if stock_after <= 0."""
    if stock_after <= 0:
        return old_avg_cost
    stock_before = stock_after - incoming_qty
    return (stock_before * old_avg_cost + incoming_qty * incoming_unit_cost) / stock_after


def recost_on_reversal(
    stock_before_reversal: int,
    old_avg_cost: float,
    reversed_qty: int,
    reversed_unit_cost: float,
) -> float:
    """Weighted average after removing an inbound cost event from stock."""
    stock_after = stock_before_reversal - reversed_qty
    if stock_after <= 0:
        return 0.0
    new_avg = (stock_before_reversal * old_avg_cost - reversed_qty * reversed_unit_cost) / stock_after
    return max(new_avg, 0.0)


def current_cost_cents(product: Product) -> float:
    """Unit cost to snapshot on a sale: average cost, or the fallback cost before any receipt."""
    if product.avg_cost_cents and product.avg_cost_cents > 0:
        return float(product.avg_cost_cents)
    return float(product.cost_cents or 0)


# =============================================================================
# MOVEMENTS
# =============================================================================

def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _apply_movement(
    product: Product,
    qty_change: int,
    ref_type: str,
    ref_id,
    memo: str | None,
    unit_cost_cents: int | None = None,
) -> InventoryLog:
    """Append the log row and move the cached stock together. Caller holds the row lock."""
    if not isinstance(qty_change, int) or isinstance(qty_change, bool) or qty_change == 0:
        raise ValidationError("qty_change must be a non-zero integer")
    if ref_type not in VALID_REF_TYPES:
        raise ValidationError(f"Invalid ref_type: {ref_type}")

    new_stock = product.stock + qty_change
    if qty_change < 0 and new_stock < 0 and not product.allow_negative:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}. Available: {product.stock}, Requested: {-qty_change}",
            details={"product_id": product.id, "on_hand": product.stock, "requested_quantity": -qty_change},
        )

    log = InventoryLog(
        product_id=product.id,
        qty_change=qty_change,
        ref_type=ref_type,
        ref_id=str(ref_id) if ref_id is not None else None,
        unit_cost_cents=unit_cost_cents,
        stock_after=new_stock,
        memo=memo,
    )
    db.session.add(log)
    product.stock = new_stock
    db.session.flush()
    return log


def record_movement(
    product_id: int,
    qty_change: int,
    ref_type: str,
    ref_id=None,
    memo: str | None = None,
    *,
    unit_cost_cents: int | None = None,
    commit: bool = True,
) -> int:
    """
    Record a signed stock movement and return the new stock.

    Does not touch avg_cost_cents; inbound cost events go through
    receive_stock() so they are recosted in the same transaction.
    """
    def _op():
        product = _get_product(product_id, lock=True)
        _apply_movement(product, qty_change, ref_type, ref_id, memo, unit_cost_cents)
        finish(commit)
        return product.stock

    return run_unit(_op, commit=commit)


def receive_stock(
    product_id: int,
    quantity: int,
    unit_cost_cents: int,
    ref_type: str = REF_PURCHASE,
    ref_id=None,
    memo: str | None = None,
    *,
    commit: bool = True,
) -> Product:
    """Inbound cost event: positive movement plus weighted-average recost."""
    if quantity <= 0:
        raise ValidationError("quantity must be positive")
    if unit_cost_cents is None or unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents must be zero or positive")

    def _op():
        product = _get_product(product_id, lock=True)
        old_avg = product.avg_cost_cents or 0.0

        _apply_movement(product, quantity, ref_type, ref_id, memo, unit_cost_cents)
        product.avg_cost_cents = recost_on_inbound(product.stock, old_avg, quantity, unit_cost_cents)

        finish(commit)
        current_app.logger.info(
            "Recost on receipt product=%s stock=%s avg_cost %.4f -> %.4f",
            product.id, product.stock, old_avg, product.avg_cost_cents,
        )
        return product

    return run_unit(_op, commit=commit)


def reverse_receipt(
    product_id: int,
    quantity: int,
    unit_cost_cents: int,
    ref_type: str = REF_PURCHASE_REVERSAL,
    ref_id=None,
    memo: str | None = None,
    *,
    commit: bool = True,
) -> Product:
    """Undo an inbound cost event: negative movement plus inverse recost."""
    if quantity <= 0:
        raise ValidationError("quantity must be positive")

    def _op():
        product = _get_product(product_id, lock=True)
        stock_before = product.stock
        old_avg = product.avg_cost_cents or 0.0

        _apply_movement(product, -quantity, ref_type, ref_id, memo, unit_cost_cents)
        product.avg_cost_cents = recost_on_reversal(stock_before, old_avg, quantity, unit_cost_cents)

        finish(commit)
        current_app.logger.info(
            "Recost on reversal product=%s stock=%s avg_cost %.4f -> %.4f",
            product.id, product.stock, old_avg, product.avg_cost_cents,
        )
        return product

    return run_unit(_op, commit=commit)


def ensure_available(requirements: dict[int, int]) -> None:
    """
    Read-only availability check for {product_id: quantity}.

    Used before a saga starts mutating; the authoritative check is repeated
    under the row lock when the movement is actually written.
    """
    insufficient = []
    for product_id, qty in requirements.items():
        product = _get_product(product_id)
        if not product.allow_negative and product.stock < qty:
            insufficient.append({
                "product_id": product_id,
                "name": product.name,
                "requested_quantity": qty,
                "on_hand": product.stock,
            })

    if insufficient:
        first = insufficient[0]
        raise InsufficientStockError(
            f"Insufficient stock for {first['name']}. "
            f"Available: {first['on_hand']}, Requested: {first['requested_quantity']}",
            details={"items": insufficient},
        )


# =============================================================================
# QUERIES & REBUILD
# =============================================================================

def get_inventory_summary(product_id: int) -> dict:
    product = _get_product(product_id)
    logged = (
        db.session.query(func.coalesce(func.sum(InventoryLog.qty_change), 0))
        .filter(InventoryLog.product_id == product_id)
        .scalar()
    )
    return {
        "product_id": product.id,
        "stock": product.stock,
        "logged_stock": int(logged or 0),
        "avg_cost_cents": product.avg_cost_cents,
        "inventory_value_cents": round(product.stock * (product.avg_cost_cents or 0.0)),
    }


def list_movements(product_id: int, limit: int = 200) -> list[InventoryLog]:
    _get_product(product_id)
    return (
        InventoryLog.query.filter_by(product_id=product_id)
        .order_by(InventoryLog.id.desc())
        .limit(limit)
        .all()
    )


def stock_drift(product_id: int | None = None) -> dict[int, int]:
    """Map of product_id -> (cached stock - logged stock) for products that disagree."""
    logged = dict(
        db.session.query(InventoryLog.product_id, func.sum(InventoryLog.qty_change))
        .group_by(InventoryLog.product_id)
        .all()
    )
    query = db.session.query(Product)
    if product_id is not None:
        query = query.filter(Product.id == product_id)

    drift = {}
    for product in query.all():
        expected = int(logged.get(product.id) or 0)
        if product.stock != expected:
            drift[product.id] = product.stock - expected
    return drift


def rebuild_stock(product_id: int | None = None) -> dict[int, int]:
    """
    Recompute cached stock from the inventory log.

    Idempotent: running it twice leaves the same state. Returns the drift
    that was corrected.
    """
    def _op():
        drift = stock_drift(product_id)
        for pid, delta in drift.items():
            product = _get_product(pid, lock=True)
            product.stock -= delta
        db.session.commit()
        return drift

    return run_with_retry(_op)
