# backend/stockbook/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports row counts for the core tables.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Product, Sale, User
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Run a few cheap queries; returns status, latency and counts."""
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "sales": db.session.query(Sale).count(),
            "users": db.session.query(User).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database check failed
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }
    return response, 200 if healthy else 503
