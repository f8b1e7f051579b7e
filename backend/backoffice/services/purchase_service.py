# Overview: Service-layer operations for purchases; approval, receiving and reversal of inbound stock.

"""
Purchase Orchestrator

WHY: Inbound stock is what establishes cost. A pending purchase is only a
plan; approval is the point where stock arrives, the weighted average cost
is recomputed and payables are opened.

DESIGN PRINCIPLES:
- Pending purchases have no stock or AP effect
- approve_purchase() runs as a saga: replace items, receive stock per item,
  mark approved, open AP lines (unless already paid)
- Only received_quantity ever reached stock, so only received_quantity is
  reversed on delete (un-received lines contribute nothing)
- Deletion is one transaction and is refused while any AP line has money
  applied or stock has already been sold below the received quantity
"""

from __future__ import annotations

from collections import defaultdict

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Vendor
from ..time_utils import business_today, utcnow
from ..validation import coerce_int
from . import inventory_service, partner_account_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .saga import Saga


PURCHASE_STATUS_PENDING = "pending"
PURCHASE_STATUS_APPROVED = "approved"
PURCHASE_STATUS_CANCELLED = "cancelled"


def _normalize_items(items) -> list[dict]:
    if not items:
        raise ValidationError("A purchase needs at least one item")
    normalized = []
    for raw in items:
        if not isinstance(raw, dict) or any(raw.get(k) is None for k in ("product_id", "quantity", "cost_cents")):
            raise ValidationError("Each item needs integer product_id, quantity and cost_cents")
        product_id = coerce_int(raw["product_id"], "product_id")
        quantity = coerce_int(raw["quantity"], "quantity")
        cost = coerce_int(raw["cost_cents"], "cost_cents")
        if quantity <= 0:
            raise ValidationError("Item quantity must be positive", details={"product_id": product_id})
        if cost < 0:
            raise ValidationError("Item cost_cents cannot be negative", details={"product_id": product_id})
        if db.session.get(Product, product_id) is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        item_id = raw.get("id")
        normalized.append({
            "id": coerce_int(item_id, "id") if item_id is not None else None,
            "product_id": product_id,
            "quantity": quantity,
            "cost_cents": cost,
            "subtotal_cents": quantity * cost,
            "receive": bool(raw.get("receive", True)),
        })
    return normalized


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


# =============================================================================
# CREATION
# =============================================================================

def create_purchase(vendor_id: int, items, note: str | None = None, is_paid: bool = False) -> Purchase:
    """Create a pending purchase. No stock or AP effect until approval."""
    if db.session.get(Vendor, vendor_id) is None:
        raise NotFoundError(f"Vendor {vendor_id} not found", details={"vendor_id": vendor_id})
    specs = _normalize_items(items)

    def _op():
        purchase = Purchase(
            purchase_no=next_document_number(document_type="purchase", prefix="P"),
            purchase_date=business_today(),
            vendor_id=vendor_id,
            status=PURCHASE_STATUS_PENDING,
            is_paid=bool(is_paid),
            total_cents=sum(s["subtotal_cents"] for s in specs),
            note=note,
        )
        db.session.add(purchase)
        db.session.flush()
        for spec in specs:
            db.session.add(PurchaseItem(
                purchase_id=purchase.id,
                product_id=spec["product_id"],
                quantity=spec["quantity"],
                cost_cents=spec["cost_cents"],
                subtotal_cents=spec["subtotal_cents"],
            ))
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def cancel_purchase(purchase_id: int) -> Purchase:
    def _op():
        purchase = _lock_purchase(purchase_id)
        if purchase.status != PURCHASE_STATUS_PENDING:
            raise ValidationError(f"Only pending purchases can be cancelled (status {purchase.status})")
        purchase.status = PURCHASE_STATUS_CANCELLED
        db.session.commit()
        return purchase

    return run_with_retry(_op)


# =============================================================================
# RECEIVING
# =============================================================================

def _receive_item(purchase_item_id: int, quantity: int) -> PurchaseItem:
    """Stock in + recost + received_quantity, one transaction."""
    def _op():
        item = lock_for_update(db.session.query(PurchaseItem).filter_by(id=purchase_item_id)).first()
        if item is None:
            raise NotFoundError(f"Purchase item {purchase_item_id} not found")
        if quantity <= 0:
            raise ValidationError("quantity must be positive")
        if item.received_quantity + quantity > item.quantity:
            raise ValidationError(
                "Cannot receive more than was ordered",
                details={"ordered": item.quantity, "received": item.received_quantity, "requested": quantity},
            )
        inventory_service.receive_stock(
            item.product_id, quantity, item.cost_cents,
            inventory_service.REF_PURCHASE, item.purchase_id,
            f"Purchase {item.purchase.purchase_no}", commit=False,
        )
        item.received_quantity += quantity
        item.is_received = item.received_quantity >= item.quantity
        db.session.commit()
        return item

    return run_with_retry(_op)


def _unreceive_item(purchase_item_id: int, quantity: int) -> None:
    def _op():
        item = lock_for_update(db.session.query(PurchaseItem).filter_by(id=purchase_item_id)).first()
        if item is None:
            return
        inventory_service.reverse_receipt(
            item.product_id, quantity, item.cost_cents,
            inventory_service.REF_PURCHASE_REVERSAL, item.purchase_id,
            f"Compensation for purchase {item.purchase.purchase_no}", commit=False,
        )
        item.received_quantity -= quantity
        item.is_received = False
        db.session.commit()

    run_with_retry(_op)


def receive_purchase_item(purchase_item_id: int, quantity: int) -> PurchaseItem:
    """Receive more of an approved purchase line (e.g. a late partial shipment)."""
    item = db.session.get(PurchaseItem, purchase_item_id)
    if item is None:
        raise NotFoundError(f"Purchase item {purchase_item_id} not found")
    if item.purchase.status != PURCHASE_STATUS_APPROVED:
        raise ValidationError("Items can only be received on approved purchases")
    return _receive_item(purchase_item_id, quantity)


# =============================================================================
# APPROVAL (saga)
# =============================================================================

def _snapshot_items(purchase_id: int) -> list[dict]:
    return [
        {
            "id": i.id,
            "product_id": i.product_id,
            "quantity": i.quantity,
            "cost_cents": i.cost_cents,
            "subtotal_cents": i.subtotal_cents,
        }
        for i in PurchaseItem.query.filter_by(purchase_id=purchase_id).order_by(PurchaseItem.id).all()
    ]


def _replace_items(purchase_id: int, specs: list[dict]) -> list[tuple[int, dict]]:
    """Update lines given by id, insert new ones, delete lines not mentioned."""
    def _op():
        existing = {i.id: i for i in PurchaseItem.query.filter_by(purchase_id=purchase_id).all()}
        keep = []
        for spec in specs:
            item = existing.pop(spec["id"], None) if spec["id"] is not None else None
            if spec["id"] is not None and item is None:
                raise ValidationError(
                    f"Purchase item {spec['id']} does not belong to purchase {purchase_id}",
                )
            if item is None:
                item = PurchaseItem(purchase_id=purchase_id)
                db.session.add(item)
            item.product_id = spec["product_id"]
            item.quantity = spec["quantity"]
            item.cost_cents = spec["cost_cents"]
            item.subtotal_cents = spec["subtotal_cents"]
            keep.append((item, spec))
        for leftover in existing.values():
            db.session.delete(leftover)

        purchase = db.session.get(Purchase, purchase_id)
        purchase.total_cents = sum(s["subtotal_cents"] for s in specs)
        db.session.commit()
        return [(item.id, spec) for item, spec in keep]

    return run_with_retry(_op)


def _restore_items(purchase_id: int, snapshot: list[dict]) -> None:
    def _op():
        for item in PurchaseItem.query.filter_by(purchase_id=purchase_id).all():
            db.session.delete(item)
        db.session.flush()
        for row in snapshot:
            db.session.add(PurchaseItem(purchase_id=purchase_id, **row))
        purchase = db.session.get(Purchase, purchase_id)
        purchase.total_cents = sum(r["subtotal_cents"] for r in snapshot)
        db.session.commit()

    run_with_retry(_op)


def _set_status(purchase_id: int, status: str) -> None:
    def _op():
        purchase = db.session.get(Purchase, purchase_id)
        purchase.status = status
        purchase.approved_at = utcnow() if status == PURCHASE_STATUS_APPROVED else None
        db.session.commit()

    run_with_retry(_op)


def _open_payables(purchase_id: int, vendor_id: int, lines: list[tuple[int, dict]]) -> None:
    def _op():
        due = partner_account_service.due_date_for(partner_account_service.DIRECTION_AP)
        for item_id, spec in lines:
            if spec["subtotal_cents"] <= 0:
                continue
            partner_account_service.open_account(
                partner_account_service.PARTNER_VENDOR,
                vendor_id,
                partner_account_service.DIRECTION_AP,
                partner_account_service.REF_PURCHASE,
                purchase_id,
                spec["subtotal_cents"],
                due,
                purchase_item_id=item_id,
                commit=False,
            )
        db.session.commit()

    run_with_retry(_op)


def approve_purchase(purchase_id: int, items=None) -> Purchase:
    """
    Approve a pending purchase.

    ``items`` replaces the purchase lines: [{id?, product_id, quantity,
    cost_cents, receive=True}]. Lines with receive=False are approved but
    left for receive_purchase_item(). Without ``items`` the current lines
    are approved and fully received.
    """
    purchase = get_purchase(purchase_id)
    if purchase.status != PURCHASE_STATUS_PENDING:
        raise ValidationError(f"Only pending purchases can be approved (status {purchase.status})")
    vendor_id = purchase.vendor_id
    is_paid = purchase.is_paid

    snapshot = _snapshot_items(purchase_id)
    if items is None:
        items = [dict(row, receive=True) for row in snapshot]
    specs = _normalize_items(items)

    with Saga("approve_purchase") as saga:
        lines = saga.step(
            "replace items",
            lambda: _replace_items(purchase_id, specs),
            lambda: _restore_items(purchase_id, snapshot),
        )

        for item_id, spec in lines:
            if not spec["receive"]:
                continue
            saga.step(
                f"receive item {item_id}",
                lambda i=item_id, q=spec["quantity"]: _receive_item(i, q),
                lambda i=item_id, q=spec["quantity"]: _unreceive_item(i, q),
            )

        saga.step(
            "mark approved",
            lambda: _set_status(purchase_id, PURCHASE_STATUS_APPROVED),
            lambda: _set_status(purchase_id, PURCHASE_STATUS_PENDING),
        )

        if not is_paid:
            saga.step(
                "open payables",
                lambda: _open_payables(purchase_id, vendor_id, lines),
                lambda: partner_account_service.delete_accounts_for(
                    partner_account_service.REF_PURCHASE, purchase_id,
                ),
            )

    purchase = get_purchase(purchase_id)
    current_app.logger.info("Approved purchase %s total=%s", purchase.purchase_no, purchase.total_cents)
    return purchase


# =============================================================================
# DELETION
# =============================================================================

def delete_purchase(purchase_id: int) -> None:
    """
    Delete a purchase, reversing received stock (newest line first) and
    its AP lines. Un-received lines contribute nothing to reverse.
    """
    def _op():
        purchase = _lock_purchase(purchase_id)
        items = list(purchase.items)

        required = defaultdict(int)
        for item in items:
            if item.received_quantity > 0:
                required[item.product_id] += item.received_quantity
        inventory_service.ensure_available(dict(required))

        partner_account_service.delete_accounts_for(partner_account_service.REF_PURCHASE, purchase.id, commit=False)

        for item in reversed(items):
            if item.received_quantity > 0:
                inventory_service.reverse_receipt(
                    item.product_id, item.received_quantity, item.cost_cents,
                    inventory_service.REF_PURCHASE_REVERSAL, purchase.id,
                    f"Delete purchase {purchase.purchase_no}", commit=False,
                )

        for item in items:
            db.session.delete(item)
        db.session.flush()
        db.session.delete(purchase)
        db.session.commit()
        current_app.logger.info("Deleted purchase %s", purchase.purchase_no)

    run_with_retry(_op)
