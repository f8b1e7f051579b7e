# Overview: Flask API routes for customer points operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import points_service
from ..validation import coerce_int


points_bp = Blueprint("points", __name__, url_prefix="/api/customer-points")


def _require_ints(data: dict, *keys):
    missing = [k for k in keys if data.get(k) is None]
    if missing:
        return None, (jsonify({"error": f"{', '.join(missing)} required"}), 400)
    return [coerce_int(data[k], k) for k in keys], None


@points_bp.post("/redeem")
def redeem_points_route():
    """
    Redeem points for store credit.

    Request body:
    {"customer_id": 7, "program_id": 1, "tier_id": 2, "note": "optional"}
    """
    try:
        data = request.get_json(silent=True) or {}
        values, error = _require_ints(data, "customer_id", "program_id", "tier_id")
        if error:
            return error
        customer_id, program_id, tier_id = values

        result = points_service.redeem(customer_id, program_id, tier_id, note=data.get("note"))
        return jsonify({
            "customer_points": result.customer_points.to_dict(),
            "points_used": result.points_used,
            "reward_value_cents": result.reward_value_cents,
            "point_log": result.point_log.to_dict(),
            "customer_balance": result.balance_log.to_dict() if result.balance_log else None,
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to redeem points")
        return jsonify({"error": "Internal server error"}), 500


@points_bp.post("/adjust")
def adjust_points_route():
    """Manual signed adjustment: {"customer_id", "program_id", "points_change", "note"}."""
    try:
        data = request.get_json(silent=True) or {}
        values, error = _require_ints(data, "customer_id", "program_id", "points_change")
        if error:
            return error
        customer_id, program_id, points_change = values

        balance = points_service.adjust_points(customer_id, program_id, points_change, note=data.get("note"))
        return jsonify({"customer_points": balance.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust points")
        return jsonify({"error": "Internal server error"}), 500
