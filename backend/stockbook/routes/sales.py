# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes with permission enforcement"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_user_id, require_auth, require_permission
from ..money import parse_display
from ..responses import HANDLED_ERRORS, error_response, json_object
from ..services import payment_service, sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
@require_permission("sale", "read")
def list_sales_route():
    """
    Newest first, at most 100.

    Query params: status, search (invoice or customer), start, end.
    """
    try:
        sales = sales_service.list_sales(
            status=request.args.get("status") or None,
            search=request.args.get("search"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"sales": [sale.to_dict() for sale in sales], "count": len(sales)}), 200


@sales_bp.post("")
@require_auth
@require_permission("sale", "create")
def create_sale_route():
    """
    Create a sale and debit stock.

    Body:
    {
        "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 1500000}],
        "customer_name": "...", "customer_phone": "...",
        "due_date": "2026-11-01", "notes": "..."
    }
    """
    try:
        data = json_object()
        sale = sales_service.create_sale(
            data.get("items"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            due_date=data.get("due_date"),
            notes=data.get("notes"),
            user_id=current_user_id(),
        )
        return jsonify({"sale": sales_service.get_sale_detail(sale.id)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("sale", "read")
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale_detail(sale_id)}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_permission("sale", "void")
def void_sale_route(sale_id: int):
    """Void a sale and return its items to stock. Payments are kept."""
    try:
        sale = sales_service.void_sale(sale_id, user_id=current_user_id())
        return jsonify({"sale": sale.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/payments")
@require_auth
@require_permission("payment", "create")
def add_payment_route(sale_id: int):
    """
    Body: {"amount_cents": int, "payment_method": "cash", "payment_date": ISO-8601, "notes": str}

    "amount" (display string such as "Rp150.000,50") is accepted in place
    of amount_cents.
    """
    try:
        data = json_object()
        amount_cents = data.get("amount_cents")
        if amount_cents is None and data.get("amount") is not None:
            amount_cents = parse_display(data["amount"], current_app.config.get("CURRENCY_SYMBOL", "Rp"))
        payment = payment_service.add_payment(
            sale_id,
            amount_cents,
            payment_method=data.get("payment_method"),
            payment_date=data.get("payment_date"),
            notes=data.get("notes"),
            user_id=current_user_id(),
        )
        sale = sales_service.get_sale(sale_id)
        return jsonify({"payment": payment.to_dict(), "sale": sale.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500
