# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..errors import LedgerError
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/products")


@inventory_bp.get("/<int:product_id>/inventory")
def get_inventory(product_id: int):
    """Stock, weighted-average cost and recent movements for one product."""
    try:
        limit = request.args.get("limit", 50, type=int)
        summary = inventory_service.get_inventory_summary(product_id)
        movements = inventory_service.list_movements(product_id, limit=limit)
        return jsonify({
            "summary": summary,
            "movements": [m.to_dict() for m in movements],
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
