# Overview: Flask API routes for cash accounts operations; parses input and returns JSON responses.

# backend/backoffice/routes/accounts.py
"""
Cash Account API Routes

DESIGN:
- Manual signed adjustments and transfers between accounts
- Transaction history with balance before/after on every row
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import account_service
from ..validation import coerce_int


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.post("/adjust")
def adjust_account_route():
    """
    Manual adjustment.

    Request body:
    {"account_id": 1, "amount_cents": -500, "note": "Till count short"}
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("account_id") is None or data.get("amount_cents") is None:
            return jsonify({"error": "account_id and amount_cents required"}), 400

        txn = account_service.manual_adjustment(
            coerce_int(data["account_id"], "account_id"),
            coerce_int(data["amount_cents"], "amount_cents"),
            note=data.get("note"),
        )
        return jsonify({"transaction": txn.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.post("/transfer")
def transfer_route():
    """
    Transfer between accounts.

    Request body:
    {"from_account_id": 1, "to_account_id": 2, "amount_cents": 10000, "note": "Bank deposit"}
    """
    try:
        data = request.get_json(silent=True) or {}
        required = ("from_account_id", "to_account_id", "amount_cents")
        if any(data.get(k) is None for k in required):
            return jsonify({"error": "from_account_id, to_account_id and amount_cents required"}), 400

        out_txn, in_txn = account_service.transfer_funds(
            coerce_int(data["from_account_id"], "from_account_id"),
            coerce_int(data["to_account_id"], "to_account_id"),
            coerce_int(data["amount_cents"], "amount_cents"),
            note=data.get("note"),
        )
        return jsonify({"out": out_txn.to_dict(), "in": in_txn.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to transfer funds")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/<int:account_id>/transactions")
def list_transactions_route(account_id: int):
    try:
        limit = request.args.get("limit", 200, type=int)
        rows = account_service.list_transactions(account_id, limit=limit)
        return jsonify({"transactions": [t.to_dict() for t in rows]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
