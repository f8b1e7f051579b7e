# Overview: Flask API routes for purchases operations; parses input and returns JSON responses.

# backend/backoffice/routes/purchases.py
"""
Purchase API Routes

DESIGN:
- Pending purchases are plans; approval moves stock, recosts and opens AP
- Receiving later shipments per line
- Deleting reverses received quantities only
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import purchase_service
from ..validation import coerce_int


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")
purchase_items_bp = Blueprint("purchase_items", __name__, url_prefix="/api/purchase-items")


@purchases_bp.post("")
def create_purchase_route():
    """
    Create a pending purchase.

    Request body:
    {
        "vendor_id": 3,
        "items": [{"product_id": 1, "quantity": 5, "cost_cents": 800}],
        "note": "Weekly restock",
        "is_paid": false
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        vendor_id = data.get("vendor_id")
        if vendor_id is None:
            return jsonify({"error": "vendor_id required"}), 400

        purchase = purchase_service.create_purchase(
            vendor_id=coerce_int(vendor_id, "vendor_id"),
            items=data.get("items"),
            note=data.get("note"),
            is_paid=bool(data.get("is_paid", False)),
        )
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/approve")
def approve_purchase_route(purchase_id: int):
    """
    Approve a pending purchase.

    Request body (optional):
    {
        "items": [{"id": 10, "product_id": 1, "quantity": 5, "cost_cents": 800, "receive": true}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        purchase = purchase_service.approve_purchase(purchase_id, data.get("items"))
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/cancel")
def cancel_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.cancel_purchase(purchase_id)
        return jsonify({"purchase": purchase.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@purchases_bp.delete("/<int:purchase_id>")
def delete_purchase_route(purchase_id: int):
    try:
        purchase_service.delete_purchase(purchase_id)
        return jsonify({"deleted": purchase_id}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchase_items_bp.post("/<int:purchase_item_id>/receive")
def receive_purchase_item_route(purchase_item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")
        if quantity is None:
            return jsonify({"error": "quantity required"}), 400

        item = purchase_service.receive_purchase_item(purchase_item_id, coerce_int(quantity, "quantity"))
        return jsonify({"purchase_item": item.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase item")
        return jsonify({"error": "Internal server error"}), 500
