# Overview: Flask API routes for settlements operations; parses input and returns JSON responses.

# backend/backoffice/routes/settlements.py
"""
Settlement API Routes

DESIGN:
- POST /api/receipts: customer pays open AR lines (cash account increases)
- POST /api/payments: we pay a vendor's open AP lines (cash account decreases)
- Allocation is explicit (allocations), by line list (account_ids +
  strategy) or across all open lines of the partner
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import settlement_service
from ..validation import coerce_int


settlements_bp = Blueprint("settlements", __name__, url_prefix="/api")


def _record(direction: str, partner_type: str, partner_key: str):
    data = request.get_json(silent=True) or {}
    partner_id = data.get(partner_key)
    amount_cents = data.get("amount_cents")
    if partner_id is None or amount_cents is None:
        return jsonify({"error": f"{partner_key} and amount_cents required"}), 400
    partner_id = coerce_int(partner_id, partner_key)
    amount_cents = coerce_int(amount_cents, "amount_cents")

    result = settlement_service.record_settlement(
        partner_type=partner_type,
        partner_id=partner_id,
        direction=direction,
        amount_cents=amount_cents,
        method=data.get("method") or "cash",
        allocations=data.get("allocations"),
        account_ids=data.get("account_ids"),
        strategy=data.get("strategy") or settlement_service.STRATEGY_PROPORTIONAL,
        account_id=data.get("account_id"),
        note=data.get("note"),
    )
    return jsonify({
        "settlement": result.settlement.to_dict(),
        "warnings": result.warnings,
    }), 201


@settlements_bp.post("/receipts")
def record_receipt_route():
    """
    Record a customer receipt.

    Request body:
    {
        "customer_id": 7,
        "amount_cents": 15000,
        "method": "cash",
        "account_id": 1,                              (optional)
        "allocations": [{"account_id": 4, "amount_cents": 5000}],   (optional)
        "account_ids": [4, 5, 6],                     (optional)
        "strategy": "proportional"                    proportional | oldest_first
    }
    """
    try:
        return _record(settlement_service.DIRECTION_RECEIPT, "customer", "customer_id")
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record receipt")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.post("/payments")
def record_payment_route():
    """Record a vendor payment. Same body as /receipts with vendor_id."""
    try:
        return _record(settlement_service.DIRECTION_PAYMENT, "vendor", "vendor_id")
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.get("/settlements/<int:settlement_id>")
def get_settlement_route(settlement_id: int):
    try:
        settlement = settlement_service.get_settlement(settlement_id)
        return jsonify({"settlement": settlement.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@settlements_bp.post("/settlements/<int:settlement_id>/void")
def void_settlement_route(settlement_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = settlement_service.void_settlement(settlement_id, note=data.get("note"))
        return jsonify({
            "settlement": result.settlement.to_dict(),
            "warnings": result.warnings,
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void settlement")
        return jsonify({"error": "Internal server error"}), 500
