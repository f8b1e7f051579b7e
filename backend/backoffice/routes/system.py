# backend/backoffice/routes/system.py
"""
System health endpoint.

Reports database connectivity and a quick ledger invariant summary.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..services.integrity_service import check_ledgers
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial round trip.

    Returns dict with status and latency.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_ledger_health() -> dict:
    start_time = time.time()
    try:
        problems = check_ledgers()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy" if not problems else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "violations": len(problems),
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Ledger health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Ledger check error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    ledgers = check_ledger_health() if database["status"] == "healthy" else {"status": "skipped"}

    if database["status"] != "healthy":
        overall = "unhealthy"
    elif ledgers["status"] != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    body = {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database, "ledgers": ledgers},
    }
    return jsonify(body), 200 if overall != "unhealthy" else 503
