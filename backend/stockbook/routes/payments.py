# Overview: Flask API routes for receivables; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_permission
from ..services import payment_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("/unpaid")
@require_auth
@require_permission("payment", "read")
def unpaid_route():
    """Unpaid and partially paid sales with their outstanding balance."""
    sales = payment_service.list_unpaid_sales()
    return jsonify({
        "sales": [sale.to_dict() for sale in sales],
        "count": len(sales),
        "total_outstanding_cents": sum(sale.remaining_cents for sale in sales),
    }), 200


@payments_bp.get("/paid")
@require_auth
@require_permission("payment", "read")
def paid_route():
    sales = payment_service.list_paid_sales()
    return jsonify({"sales": [sale.to_dict() for sale in sales], "count": len(sales)}), 200


@payments_bp.get("/summary")
@require_auth
@require_permission("report", "read")
def summary_route():
    """Dashboard figures: sales count, revenue, collected, receivables."""
    return jsonify(payment_service.dashboard_summary()), 200
