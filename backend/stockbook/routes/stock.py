# Overview: Flask API routes for stock ledger operations; parses input and returns JSON responses.

"""
Stock ledger routes

Movements are append-only. There is no endpoint that edits or deletes a
movement; mistakes are fixed with a correction, which records another one.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth, require_permission
from ..models.inventory import TX_IN, TX_OUT
from ..responses import HANDLED_ERRORS, error_response, json_object
from ..services import stock_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/overview")
@require_auth
@require_permission("stock", "read")
def overview_route():
    return jsonify(stock_service.stock_overview()), 200


@stock_bp.get("/transactions")
@require_auth
@require_permission("stock", "read")
def transactions_route():
    """
    Movement history, newest first.

    Query params: product_id, type (in/out), start, end (ISO-8601),
    reference, limit (default 50), offset.
    """
    try:
        transactions = stock_service.list_transactions(
            product_id=request.args.get("product_id", type=int),
            tx_type=request.args.get("type") or None,
            start=request.args.get("start"),
            end=request.args.get("end"),
            reference=request.args.get("reference"),
            limit=request.args.get("limit", default=50, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
    except HANDLED_ERRORS as e:
        return error_response(e)

    return jsonify({
        "transactions": [tx.to_dict(include_product=True) for tx in transactions],
        "count": len(transactions),
    }), 200


def _record(tx_type: str):
    try:
        data = json_object()
        tx = stock_service.record_movement(
            data.get("product_id"),
            tx_type,
            data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            transaction_date=data.get("transaction_date"),
            user_id=current_user_id(),
        )
        return jsonify({
            "transaction": tx.to_dict(include_product=True),
            "current_stock": stock_service.get_current_stock(tx.product_id),
        }), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock %s", tx_type)
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/in")
@require_auth
@require_permission("stock", "create")
def stock_in_route():
    """Incoming goods (purchase, return from customer, ...)."""
    return _record(TX_IN)


@stock_bp.post("/out")
@require_auth
@require_permission("stock", "create")
def stock_out_route():
    """Outgoing goods outside of a sale (damage, internal use, ...)."""
    return _record(TX_OUT)


@stock_bp.post("/<int:product_id>/correct")
@require_auth
@require_permission("stock", "adjust")
def correct_route(product_id: int):
    """
    Set stock to a counted quantity.

    Body: {"counted_quantity": int, "notes": str}
    Responds with the compensating movement, or "transaction": null when
    the stock already matched.
    """
    try:
        data = json_object()
        tx = stock_service.correct_stock(
            product_id,
            data.get("counted_quantity"),
            notes=data.get("notes"),
            user_id=current_user_id(),
        )
        return jsonify({
            "transaction": tx.to_dict() if tx else None,
            "current_stock": stock_service.get_current_stock(product_id),
        }), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to correct stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:product_id>/reconcile")
@require_auth
@require_permission("stock", "read")
def reconcile_route(product_id: int):
    try:
        return jsonify(stock_service.reconcile_product(product_id)), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
