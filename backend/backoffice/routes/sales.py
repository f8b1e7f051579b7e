# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
"""
Sales API Routes

DESIGN:
- Create a sale with every ledger side effect (stock, prizes, cash, AR, points)
- Delete a sale, reversing what it caused
- Confirm a draft delivery (stock leaves when goods leave)
- Convert a sold item into customer store credit

Non-fatal problems (e.g. a payment method with no matching cash account)
come back in ``warnings`` next to a 201, never as an error.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import sale_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")
deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")
sale_items_bp = Blueprint("sale_items", __name__, url_prefix="/api/sale-items")


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale.

    Request body:
    {
        "customer_id": 7,                      (optional)
        "source": "pos",                       pos | live | manual
        "payment_method": "cash",              (optional)
        "account_id": 1,                       (optional)
        "is_paid": true,                       shorthand for one full tranche
        "payments": [{"method": "card", "amount_cents": 500}],
        "discount_type": "percent",            none | percent | amount
        "discount_value": 10,
        "point_program_id": 1,                 (optional)
        "items": [
            {"product_id": 1, "quantity": 2, "price_cents": 1500, "is_delivered": true}
        ]
    }

    Returns:
        201: sale with items and warnings
        400/404/409: rejected, nothing written
        500: compensation failed, ledgers need reconciliation
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sale_service.create_sale(data)
        return jsonify({
            "sale": result.sale.to_dict(include_items=True),
            "warnings": result.warnings,
        }), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sale_service.get_sale(sale_id)
        data = sale.to_dict(include_items=True)
        data["deliveries"] = [d.to_dict() for d in sale.deliveries]
        return jsonify({"sale": data}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    """Delete a sale and reverse its stock, prizes, cash, receivables and points."""
    try:
        sale_service.delete_sale(sale_id)
        return jsonify({"deleted": sale_id}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@deliveries_bp.post("/<int:delivery_id>/confirm")
def confirm_delivery_route(delivery_id: int):
    try:
        delivery = sale_service.confirm_delivery(delivery_id)
        return jsonify({
            "delivery": delivery.to_dict(),
            "fulfillment_status": delivery.sale.fulfillment_status,
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm delivery")
        return jsonify({"error": "Internal server error"}), 500


@sale_items_bp.post("/<int:sale_item_id>/to-store-credit")
def convert_to_store_credit_route(sale_item_id: int):
    """
    Convert a sold item into store credit.

    Request body (all optional):
    {
        "amount_cents": 500,          defaults to the item subtotal
        "refund_inventory": true,     return delivered units to stock
        "note": "Customer swap"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sale_service.convert_sale_item_to_store_credit(
            sale_item_id,
            amount=data.get("amount_cents"),
            refund_inventory=bool(data.get("refund_inventory", True)),
            note=data.get("note"),
        )
        return jsonify({
            "sale": result.sale.to_dict(),
            "sale_item": result.sale_item.to_dict(),
            "correction": result.correction.to_dict(),
            "store_credit_cents": result.store_credit_cents,
            "refunded_quantity": result.refunded_quantity,
            "customer_balance": result.balance_log.to_dict(),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert sale item to store credit")
        return jsonify({"error": "Internal server error"}), 500
