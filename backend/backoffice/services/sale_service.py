# Overview: Service-layer operations for sales; orchestrates stock, prizes, cash, receivables and points.

"""
Sale Orchestrator

WHY: A sale is the one operation that touches every ledger. Each ledger call
commits on its own, so creation runs as a saga: a fixed sequence of steps,
each paired with the ledger operation that undoes it.

create_sale() steps, in order:
1. Insert the sale (draft)
2. Check stock and prize availability for every item (read-only)
3. Insert items with name, price and unit-cost snapshots
4. Apply discount, compute totals, mark confirmed
5. Reserve prizes for items tied to a prize pool
6. Deliveries: a confirmed delivery (negative stock movements) for items
   delivered now, a draft delivery (no stock effect) for the rest
7. Cash: one account movement per payment tranche
8. AR: one receivable per item for the unpaid remainder, apportioned by
   item subtotal (last line absorbs rounding), only when a customer is set
9. Points accrual when a point program is attached

Any failure compensates the completed steps newest first.

delete_sale() and convert_sale_item_to_store_credit() are single
transactions: every ledger call joins one DB transaction, so a failure in
any of them leaves nothing behind.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Customer,
    CustomerBalanceLog,
    Delivery,
    DeliveryItem,
    PointProgram,
    Prize,
    Product,
    Sale,
    SaleCorrection,
    SaleItem,
)
from ..time_utils import business_today, utcnow
from ..validation import coerce_int
from . import (
    account_service,
    customer_service,
    inventory_service,
    partner_account_service,
    points_service,
    prize_service,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .saga import Saga
from .settlement_service import allocate_proportionally


SALE_STATUS_DRAFT = "draft"
SALE_STATUS_CONFIRMED = "confirmed"
SALE_STATUS_CANCELLED = "cancelled"

FULFILLMENT_NONE = "none"
FULFILLMENT_PARTIAL = "partial"
FULFILLMENT_COMPLETED = "completed"

DELIVERY_DRAFT = "draft"
DELIVERY_CONFIRMED = "confirmed"

DISCOUNT_NONE = "none"
DISCOUNT_PERCENT = "percent"
DISCOUNT_AMOUNT = "amount"

VALID_SOURCES = {"pos", "live", "manual"}


@dataclass
class SaleResult:
    sale: Sale
    warnings: list[str] = field(default_factory=list)


@dataclass
class ConversionResult:
    sale: Sale
    sale_item: SaleItem
    correction: SaleCorrection
    store_credit_cents: int
    refunded_quantity: int
    balance_log: CustomerBalanceLog


# =============================================================================
# DRAFT VALIDATION (pure + reads, no mutation)
# =============================================================================

def _int_field(raw: dict, key: str, default=None, *, minimum: int | None = None) -> int | None:
    value = raw.get(key, default)
    if value is None:
        return None
    value = coerce_int(value, key)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return value


def compute_discount(subtotal_cents: int, discount_type: str, discount_value: int) -> int:
    if discount_type == DISCOUNT_NONE or not discount_value:
        return 0
    if discount_type == DISCOUNT_PERCENT:
        if not 0 <= discount_value <= 100:
            raise ValidationError("Percent discount must be between 0 and 100")
        return subtotal_cents * discount_value // 100
    if discount_type == DISCOUNT_AMOUNT:
        if not 0 <= discount_value <= subtotal_cents:
            raise ValidationError("Amount discount must be between 0 and the subtotal")
        return discount_value
    raise ValidationError(f"Invalid discount_type: {discount_type}")


def _prepare(draft: dict) -> dict:
    """Validate a sale draft and compute everything that does not need a write."""
    raw_items = draft.get("items") or []
    if not raw_items:
        raise ValidationError("A sale needs at least one item")

    customer_id = _int_field(draft, "customer_id")
    if customer_id is not None and db.session.get(Customer, customer_id) is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})

    program_id = _int_field(draft, "point_program_id")
    if program_id is not None and db.session.get(PointProgram, program_id) is None:
        raise NotFoundError(f"Point program {program_id} not found", details={"program_id": program_id})

    source = draft.get("source") or "pos"
    if source not in VALID_SOURCES:
        raise ValidationError(f"Invalid source: {source}")

    items = []
    for raw in raw_items:
        product_id = _int_field(raw, "product_id")
        if product_id is None:
            raise ValidationError("Each item needs a product_id")
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        quantity = _int_field(raw, "quantity", minimum=1)
        if quantity is None:
            raise ValidationError("Each item needs a quantity")
        price = _int_field(raw, "price_cents", product.price_cents, minimum=0)
        prize_id = _int_field(raw, "prize_id")
        if prize_id is not None:
            prize = db.session.get(Prize, prize_id)
            if prize is None:
                raise NotFoundError(f"Prize {prize_id} not found", details={"prize_id": prize_id})
            if prize.product_id != product_id:
                raise ValidationError("Prize does not belong to this product", details={"prize_id": prize_id})
        items.append({
            "product_id": product_id,
            "name": product.name,
            "quantity": quantity,
            "price_cents": price,
            "subtotal_cents": price * quantity,
            "prize_id": prize_id,
            "is_delivered": bool(raw.get("is_delivered", True)),
        })

    subtotal = sum(i["subtotal_cents"] for i in items)
    discount_type = draft.get("discount_type") or DISCOUNT_NONE
    discount_value = _int_field(draft, "discount_value", 0, minimum=0)
    discount = compute_discount(subtotal, discount_type, discount_value)
    total = subtotal - discount

    payment_method = draft.get("payment_method")
    account_id = _int_field(draft, "account_id")
    tranches = []
    for raw in draft.get("payments") or []:
        amount = _int_field(raw, "amount_cents", minimum=1)
        if amount is None:
            raise ValidationError("Each payment needs amount_cents")
        tranches.append({
            "amount_cents": amount,
            "method": raw.get("method") or payment_method,
            "account_id": _int_field(raw, "account_id"),
        })
    if not tranches and draft.get("is_paid") and total > 0:
        tranches.append({"amount_cents": total, "method": payment_method, "account_id": account_id})

    paid = sum(t["amount_cents"] for t in tranches)
    if paid > total:
        raise ValidationError(
            "Payments exceed the sale total", details={"total_cents": total, "paid_cents": paid}
        )

    # Explicit cash accounts must exist before anything is written
    explicit_ids = {t["account_id"] for t in tranches if t["account_id"] is not None}
    if account_id is not None:
        explicit_ids.add(account_id)
    for explicit_id in sorted(explicit_ids):
        account_service.resolve_account(explicit_id)

    return {
        "customer_id": customer_id,
        "program_id": program_id,
        "source": source,
        "payment_method": payment_method,
        "account_id": account_id,
        "items": items,
        "subtotal_cents": subtotal,
        "discount_type": discount_type,
        "discount_value": discount_value,
        "discount_cents": discount,
        "total_cents": total,
        "tranches": tranches,
        "paid_cents": paid,
        "note": draft.get("note"),
    }


def _stock_requirements(items: list[dict]) -> dict[int, int]:
    required = defaultdict(int)
    for item in items:
        required[item["product_id"]] += item["quantity"]
    return dict(required)


def _prize_requirements(items: list[dict]) -> dict[int, int]:
    required = defaultdict(int)
    for item in items:
        if item["prize_id"] is not None:
            required[item["prize_id"]] += item["quantity"]
    return dict(required)


def fulfillment_status_for(items) -> str:
    ordered = sum(i.quantity for i in items)
    delivered = sum(i.delivered_quantity for i in items)
    if delivered <= 0:
        return FULFILLMENT_NONE
    if delivered >= ordered:
        return FULFILLMENT_COMPLETED
    return FULFILLMENT_PARTIAL


# =============================================================================
# SALE CREATION (saga)
# =============================================================================

def create_sale(draft: dict) -> SaleResult:
    """
    Create a confirmed sale and apply its side effects to every ledger.

    Raises:
        ValidationError / NotFoundError: bad draft, nothing written
        InsufficientStockError: stock or prize availability, nothing written
        ConsistencyError: a step failed and so did its compensation
        Any other step failure after compensation has restored prior state
    """
    plan = _prepare(draft)
    warnings: list[str] = []
    ctx: dict = {}

    if plan["total_cents"] > plan["paid_cents"] and plan["customer_id"] is None:
        warnings.append("Unpaid balance with no customer attached; no receivable opened")
    if plan["program_id"] is not None and plan["customer_id"] is None:
        warnings.append("Point program ignored: sale has no customer")

    with Saga("create_sale") as saga:
        # 1. insert draft sale
        saga.step(
            "insert sale",
            lambda: _insert_sale(plan, ctx),
            lambda: _delete_sale_row(ctx["sale_id"]),
        )

        # 2. availability (read-only)
        saga.step("check availability", lambda: _check_availability(plan))

        # 3. items with snapshots
        saga.step(
            "insert items",
            lambda: _insert_items(ctx["sale_id"], plan, ctx),
            lambda: _delete_items(ctx["sale_id"]),
        )

        # 4. totals + confirm
        saga.step(
            "confirm sale",
            lambda: _confirm_sale(ctx["sale_id"], plan),
            lambda: _set_sale_status(ctx["sale_id"], SALE_STATUS_DRAFT),
        )

        # 5. prizes
        for item_id, prize_id, quantity in ctx["prize_items"]:
            saga.step(
                f"reserve prize {prize_id} for item {item_id}",
                lambda p=prize_id, q=quantity: prize_service.reserve_prize(p, q),
                lambda p=prize_id, q=quantity: prize_service.restore_prize(p, q),
            )

        # 6. deliveries + stock
        saga.step(
            "create deliveries",
            lambda: _create_deliveries(ctx["sale_id"], ctx),
            lambda: _delete_deliveries(ctx["sale_id"]),
        )
        for product_id, quantity in ctx["delivered"]:
            saga.step(
                f"deduct stock product {product_id}",
                lambda p=product_id, q=quantity: inventory_service.record_movement(
                    p, -q, inventory_service.REF_DELIVERY, ctx["delivery_id"], f"Sale {ctx['sale_no']}",
                ),
                lambda p=product_id, q=quantity: inventory_service.record_movement(
                    p, q, inventory_service.REF_CORRECTION, ctx["delivery_id"],
                    f"Compensation for sale {ctx['sale_no']}",
                ),
            )

        # 7. cash tranches
        for tranche in plan["tranches"]:
            holder: dict = {}
            update = saga.step(
                f"receive {tranche['amount_cents']} via {tranche['method']}",
                lambda t=tranche, h=holder: _receive_tranche(t, ctx, h),
                lambda t=tranche, h=holder: _reverse_tranche(h.get("update"), t["amount_cents"], ctx["sale_id"]),
            )
            if update.warning:
                warnings.append(update.warning)
                saga.step("flag unresolved payment", lambda: _flag_payment_unresolved(ctx["sale_id"]))

        # 8. receivables
        unpaid = plan["total_cents"] - plan["paid_cents"]
        if unpaid > 0 and plan["customer_id"] is not None:
            saga.step(
                "open receivables",
                lambda: _open_receivables(ctx, plan["customer_id"], unpaid),
                lambda: partner_account_service.delete_accounts_for(
                    partner_account_service.REF_SALE, ctx["sale_id"],
                ),
            )

        # 9. points
        if plan["program_id"] is not None and plan["customer_id"] is not None:
            saga.step(
                "accrue points",
                lambda: points_service.accrue(
                    plan["customer_id"], plan["program_id"], plan["total_cents"], ctx["sale_id"],
                ),
                lambda: points_service.reverse_accrual(ctx["sale_id"]),
            )

    sale = db.session.get(Sale, ctx["sale_id"])
    current_app.logger.info(
        "Created sale %s total=%s paid=%s warnings=%s", sale.sale_no, sale.total_cents, sale.paid_cents, len(warnings)
    )
    return SaleResult(sale=sale, warnings=warnings)


def _insert_sale(plan: dict, ctx: dict) -> int:
    def _op():
        sale = Sale(
            sale_no=next_document_number(document_type="sale", prefix="S"),
            sale_date=business_today(),
            customer_id=plan["customer_id"],
            source=plan["source"],
            payment_method=plan["payment_method"],
            account_id=plan["account_id"],
            status=SALE_STATUS_DRAFT,
            discount_type=plan["discount_type"],
            discount_value=plan["discount_value"],
            point_program_id=plan["program_id"],
            note=plan["note"],
        )
        db.session.add(sale)
        db.session.commit()
        ctx["sale_id"] = sale.id
        ctx["sale_no"] = sale.sale_no
        return sale.id

    return run_with_retry(_op)


def _delete_sale_row(sale_id: int) -> None:
    def _op():
        Sale.query.filter_by(id=sale_id).delete(synchronize_session=False)
        db.session.commit()

    run_with_retry(_op)


def _check_availability(plan: dict) -> None:
    inventory_service.ensure_available(_stock_requirements(plan["items"]))
    prize_service.ensure_prizes_available(_prize_requirements(plan["items"]))


def _insert_items(sale_id: int, plan: dict, ctx: dict) -> None:
    def _op():
        prize_items = []
        rows = []
        for spec in plan["items"]:
            product = db.session.get(Product, spec["product_id"])
            item = SaleItem(
                sale_id=sale_id,
                product_id=product.id,
                snapshot_name=spec["name"],
                quantity=spec["quantity"],
                price_cents=spec["price_cents"],
                cost_cents=inventory_service.current_cost_cents(product),
                subtotal_cents=spec["subtotal_cents"],
                is_delivered=False,
                delivered_quantity=0,
                prize_id=spec["prize_id"],
            )
            db.session.add(item)
            rows.append((item, spec))
        db.session.commit()

        for item, spec in rows:
            if spec["prize_id"] is not None:
                prize_items.append((item.id, spec["prize_id"], spec["quantity"]))
        ctx["item_specs"] = [(item.id, spec) for item, spec in rows]
        ctx["prize_items"] = prize_items

    run_with_retry(_op)


def _delete_items(sale_id: int) -> None:
    def _op():
        SaleItem.query.filter_by(sale_id=sale_id).delete(synchronize_session=False)
        db.session.commit()

    run_with_retry(_op)


def _confirm_sale(sale_id: int, plan: dict) -> None:
    def _op():
        sale = db.session.get(Sale, sale_id)
        sale.subtotal_cents = plan["subtotal_cents"]
        sale.discount_cents = plan["discount_cents"]
        sale.total_cents = plan["total_cents"]
        sale.paid_cents = plan["paid_cents"]
        sale.is_paid = plan["paid_cents"] >= plan["total_cents"]
        sale.status = SALE_STATUS_CONFIRMED
        db.session.commit()

    run_with_retry(_op)


def _set_sale_status(sale_id: int, status: str) -> None:
    def _op():
        sale = db.session.get(Sale, sale_id)
        if sale is not None:
            sale.status = status
            db.session.commit()

    run_with_retry(_op)


def _create_deliveries(sale_id: int, ctx: dict) -> None:
    """Confirmed delivery for items delivered now, draft delivery for the rest."""
    def _op():
        now_items = [(iid, s) for iid, s in ctx["item_specs"] if s["is_delivered"]]
        later_items = [(iid, s) for iid, s in ctx["item_specs"] if not s["is_delivered"]]

        delivered = defaultdict(int)
        delivery_id = None
        if now_items:
            delivery = Delivery(
                delivery_no=next_document_number(document_type="delivery", prefix="D"),
                sale_id=sale_id,
                status=DELIVERY_CONFIRMED,
                delivered_at=utcnow(),
            )
            db.session.add(delivery)
            db.session.flush()
            delivery_id = delivery.id
            for item_id, spec in now_items:
                db.session.add(DeliveryItem(
                    delivery_id=delivery.id, sale_item_id=item_id,
                    product_id=spec["product_id"], quantity=spec["quantity"],
                ))
                item = db.session.get(SaleItem, item_id)
                item.delivered_quantity = spec["quantity"]
                item.is_delivered = True
                delivered[spec["product_id"]] += spec["quantity"]

        if later_items:
            pending = Delivery(
                delivery_no=next_document_number(document_type="delivery", prefix="D"),
                sale_id=sale_id,
                status=DELIVERY_DRAFT,
            )
            db.session.add(pending)
            db.session.flush()
            for item_id, spec in later_items:
                db.session.add(DeliveryItem(
                    delivery_id=pending.id, sale_item_id=item_id,
                    product_id=spec["product_id"], quantity=spec["quantity"],
                ))

        db.session.flush()
        sale = db.session.get(Sale, sale_id)
        sale.fulfillment_status = fulfillment_status_for(sale.items)
        db.session.commit()

        ctx["delivery_id"] = delivery_id
        ctx["delivered"] = sorted(delivered.items())

    run_with_retry(_op)


def _delete_deliveries(sale_id: int) -> None:
    def _op():
        delivery_ids = [d.id for d in Delivery.query.filter_by(sale_id=sale_id).all()]
        if delivery_ids:
            DeliveryItem.query.filter(DeliveryItem.delivery_id.in_(delivery_ids)).delete(synchronize_session=False)
            Delivery.query.filter(Delivery.id.in_(delivery_ids)).delete(synchronize_session=False)
        for item in SaleItem.query.filter_by(sale_id=sale_id).all():
            item.delivered_quantity = 0
            item.is_delivered = False
        sale = db.session.get(Sale, sale_id)
        if sale is not None:
            sale.fulfillment_status = FULFILLMENT_NONE
        db.session.commit()

    run_with_retry(_op)


def _receive_tranche(tranche: dict, ctx: dict, holder: dict):
    update = account_service.adjust_balance(
        tranche["account_id"], tranche["amount_cents"], account_service.DIRECTION_INCREASE,
        account_service.TX_SALE, ref_type="sale", ref_id=ctx["sale_id"],
        note=ctx["sale_no"], payment_method=tranche["method"],
    )
    holder["update"] = update
    return update


def _reverse_tranche(update, amount_cents: int, sale_id: int) -> None:
    if update is None or not update.applied:
        return
    account_service.adjust_balance(
        update.account_id, amount_cents, account_service.DIRECTION_DECREASE,
        account_service.TX_SALE_REVERSAL, ref_type="sale", ref_id=sale_id,
        note="Sale compensation",
    )


def _flag_payment_unresolved(sale_id: int) -> None:
    def _op():
        sale = db.session.get(Sale, sale_id)
        sale.payment_unresolved = True
        db.session.commit()

    run_with_retry(_op)


def _open_receivables(ctx: dict, customer_id: int, unpaid_cents: int) -> list[int]:
    """One AR line per item, unpaid total apportioned by item subtotal."""
    specs = [(iid, s) for iid, s in ctx["item_specs"] if s["subtotal_cents"] > 0]
    shares = allocate_proportionally(unpaid_cents, [s["subtotal_cents"] for _, s in specs])

    def _op():
        due = partner_account_service.due_date_for(partner_account_service.DIRECTION_AR)
        lines = []
        for (item_id, _), share in zip(specs, shares):
            if share <= 0:
                continue
            line = partner_account_service.open_account(
                partner_account_service.PARTNER_CUSTOMER,
                customer_id,
                partner_account_service.DIRECTION_AR,
                partner_account_service.REF_SALE,
                ctx["sale_id"],
                share,
                due,
                sale_item_id=item_id,
                commit=False,
            )
            lines.append(line)
        db.session.commit()
        return [line.id for line in lines]

    return run_with_retry(_op)


# =============================================================================
# DELIVERY CONFIRMATION
# =============================================================================

def confirm_delivery(delivery_id: int) -> Delivery:
    """Confirm a draft delivery: stock leaves now, item and sale fulfillment update."""
    def _op():
        delivery = lock_for_update(db.session.query(Delivery).filter_by(id=delivery_id)).first()
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found")
        if delivery.status != DELIVERY_DRAFT:
            raise ValidationError(f"Delivery {delivery.delivery_no} is already {delivery.status}")
        if not delivery.items:
            raise ValidationError(f"Delivery {delivery.delivery_no} has no items")

        for line in delivery.items:
            inventory_service.record_movement(
                line.product_id, -line.quantity, inventory_service.REF_DELIVERY, delivery.id,
                f"Delivery {delivery.delivery_no}", commit=False,
            )
            item = db.session.get(SaleItem, line.sale_item_id)
            item.delivered_quantity = min(item.quantity, item.delivered_quantity + line.quantity)
            item.is_delivered = item.delivered_quantity >= item.quantity

        delivery.status = DELIVERY_CONFIRMED
        delivery.delivered_at = utcnow()
        db.session.flush()
        delivery.sale.fulfillment_status = fulfillment_status_for(delivery.sale.items)
        db.session.commit()
        return delivery

    return run_with_retry(_op)


# =============================================================================
# DELETION
# =============================================================================

def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _net_cash_received(sale_id: int) -> dict[int, int]:
    net = defaultdict(int)
    for txn in account_service.transactions_for_ref("sale", sale_id):
        if txn.transaction_type == account_service.TX_SALE:
            net[txn.account_id] += txn.amount_cents
        elif txn.transaction_type == account_service.TX_SALE_REVERSAL:
            net[txn.account_id] -= txn.amount_cents
    return {aid: amount for aid, amount in net.items() if amount > 0}


def delete_sale(sale_id: int) -> None:
    """
    Delete a sale and reverse everything it caused.

    Refused while any of its receivables has money applied.
    """
    def _op():
        sale = _lock_sale(sale_id)
        ref = f"Delete sale {sale.sale_no}"

        partner_account_service.delete_accounts_for(partner_account_service.REF_SALE, sale.id, commit=False)
        points_service.reverse_accrual(sale.id, commit=False)

        for account_id, amount in sorted(_net_cash_received(sale.id).items()):
            account_service.adjust_balance(
                account_id, amount, account_service.DIRECTION_DECREASE, account_service.TX_SALE_REVERSAL,
                ref_type="sale", ref_id=sale.id, note=ref, commit=False,
            )

        for item in sale.items:
            if item.delivered_quantity > 0:
                inventory_service.record_movement(
                    item.product_id, item.delivered_quantity, inventory_service.REF_RETURN, sale.id, ref,
                    commit=False,
                )
            if item.prize_id is not None:
                prize_service.restore_prize(item.prize_id, item.quantity, commit=False)

        for correction in SaleCorrection.query.filter_by(sale_id=sale.id).all():
            if correction.store_credit_granted_cents > 0 and sale.customer_id is not None:
                customer_service.adjust_store_credit(
                    sale.customer_id, -correction.store_credit_granted_cents, customer_service.ENTRY_DEDUCT,
                    ref_type="sale", ref_id=sale.id, ref_no=sale.sale_no, note=ref, commit=False,
                )
            db.session.delete(correction)

        for delivery in list(sale.deliveries):
            for line in list(delivery.items):
                db.session.delete(line)
            db.session.delete(delivery)
        db.session.flush()
        for item in list(sale.items):
            db.session.delete(item)
        db.session.flush()
        db.session.delete(sale)
        db.session.commit()
        current_app.logger.info("%s", ref)

    run_with_retry(_op)


# =============================================================================
# STORE-CREDIT CONVERSION
# =============================================================================

def convert_sale_item_to_store_credit(
    sale_item_id: int,
    amount=None,
    refund_inventory: bool = True,
    note: str | None = None,
) -> ConversionResult:
    """
    Turn (part of) a sold item's value into store credit for the customer.

    An amount that is missing, not a positive integer, or larger than the
    item subtotal falls back to the full subtotal; a decimal amount is
    refused. With refund_inventory the delivered quantity returns to stock;
    undelivered quantity is dropped from its draft delivery either way.

    The item's open receivable shrinks by the credited amount, so a partial
    conversion of an unpaid item leaves the rest still owed. A full
    conversion removes the receivable.
    """
    def _op():
        item = lock_for_update(db.session.query(SaleItem).filter_by(id=sale_item_id)).first()
        if item is None:
            raise NotFoundError(f"Sale item {sale_item_id} not found")
        sale = _lock_sale(item.sale_id)
        if sale.customer_id is None:
            raise ValidationError("Store credit needs a customer on the sale")
        if item.subtotal_cents <= 0:
            raise ValidationError("Sale item has no value left to convert")

        credit = _conversion_amount(amount, item.subtotal_cents)

        partner_account_service.reduce_accounts_for(
            partner_account_service.REF_SALE, sale.id, credit, sale_item_id=item.id, commit=False,
        )

        refunded = 0
        if refund_inventory and item.delivered_quantity > 0:
            refunded = item.delivered_quantity
            inventory_service.record_movement(
                item.product_id, refunded, inventory_service.REF_RETURN, sale.id,
                f"Store credit for sale {sale.sale_no}", commit=False,
            )
            item.delivered_quantity = 0
            item.is_delivered = False
        _drop_pending_delivery_lines(item.id)

        original_total = sale.total_cents
        item.subtotal_cents -= credit
        item.price_cents = item.subtotal_cents // item.quantity
        sale.subtotal_cents -= credit
        sale.total_cents = max(0, sale.total_cents - credit)

        balance_log = customer_service.adjust_store_credit(
            sale.customer_id, credit, customer_service.ENTRY_REFUND,
            ref_type="sale", ref_id=sale.id, ref_no=sale.sale_no,
            note=note or f"Item {item.snapshot_name} converted to store credit", commit=False,
        )
        correction = SaleCorrection(
            sale_id=sale.id,
            sale_item_id=item.id,
            correction_type="store_credit",
            original_total_cents=original_total,
            corrected_total_cents=sale.total_cents,
            adjustment_cents=sale.total_cents - original_total,
            store_credit_granted_cents=credit,
            note=note,
        )
        db.session.add(correction)
        db.session.flush()

        remaining_lines = partner_account_service.accounts_for(partner_account_service.REF_SALE, sale.id).count()
        if remaining_lines:
            partner_account_service.refresh_document_paid(partner_account_service.REF_SALE, sale.id)
        else:
            sale.paid_cents = min(sale.paid_cents, sale.total_cents)
            sale.is_paid = sale.paid_cents >= sale.total_cents
        sale.fulfillment_status = fulfillment_status_for(sale.items)

        db.session.commit()
        current_app.logger.info(
            "Converted sale item %s to store credit %s (refunded %s units)", item.id, credit, refunded,
        )
        return ConversionResult(
            sale=sale,
            sale_item=item,
            correction=correction,
            store_credit_cents=credit,
            refunded_quantity=refunded,
            balance_log=balance_log,
        )

    return run_with_retry(_op)


def _conversion_amount(amount, subtotal_cents: int) -> int:
    if isinstance(amount, float) or (isinstance(amount, str) and "." in amount):
        raise ValidationError("amount_cents must be an integer, not a decimal")
    try:
        value = int(amount)
    except (TypeError, ValueError):
        return subtotal_cents
    if isinstance(amount, bool) or value <= 0 or value > subtotal_cents:
        return subtotal_cents
    return value


def _drop_pending_delivery_lines(sale_item_id: int) -> None:
    lines = (
        db.session.query(DeliveryItem)
        .join(Delivery, Delivery.id == DeliveryItem.delivery_id)
        .filter(DeliveryItem.sale_item_id == sale_item_id, Delivery.status == DELIVERY_DRAFT)
        .all()
    )
    for line in lines:
        delivery = line.delivery
        db.session.delete(line)
        db.session.flush()
        if not DeliveryItem.query.filter_by(delivery_id=delivery.id).count():
            db.session.delete(delivery)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale
