# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockbook/routes/products.py
"""
Product management routes.

Stock is never written through this blueprint directly:
- POST accepts "initial_stock", booked as an opening IN movement
- PATCH accepts "current_stock", booked as a stock correction movement
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import current_user_id, require_auth, require_permission
from ..models import Product
from ..permissions import role_allows
from ..responses import HANDLED_ERRORS, error_response, json_object
from ..services import products_service
from ..services.stock_service import get_product
from ..validation import (
    PAYMENT_METHODS,
    PRODUCT_UNITS,
    ModelValidationPolicy,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category", "unit",
        "base_price_cents", "selling_price_cents", "min_stock",
    },
    required_on_create={"sku", "name", "unit", "base_price_cents", "selling_price_cents"},
    min_lengths={"sku": 3, "name": 2},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("product", "read")
def list_products():
    """
    List products with current stock.

    Query params:
    - search: str (optional) - name or SKU contains
    - category: str (optional)
    - low_stock: "1"/"true" (optional) - only products at or below min_stock
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    low_stock = (request.args.get("low_stock") or "").lower() in ("1", "true", "yes")
    result = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock=low_stock,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/meta")
@require_auth
@require_permission("product", "read")
def product_meta():
    """Choices for product forms: suggested units, known categories, payment methods."""
    return jsonify({
        "units": list(PRODUCT_UNITS),
        "categories": products_service.list_categories(),
        "payment_methods": list(PAYMENT_METHODS),
    }), 200


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("product", "read")
def get_product_route(product_id: int):
    try:
        product = get_product(product_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("")
@require_auth
@require_permission("product", "create")
def create_product_route():
    try:
        payload = json_object()
        initial_stock = payload.pop("initial_stock", None)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(
            patch=patch,
            initial_stock=initial_stock,
            user_id=current_user_id(),
        )
        return jsonify({"product": product.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission("product", "update")
def update_product_route(product_id: int):
    """
    Edit metadata and prices.

    A "current_stock" key is treated as a counted quantity and needs
    stock:adjust on top of product:update.
    """
    try:
        payload = json_object()
    except HANDLED_ERRORS as e:
        return error_response(e)
    counted_stock = payload.pop("current_stock", None)

    if counted_stock is not None and not role_allows(g.current_user.role, "stock", "adjust"):
        return jsonify({
            "error": "Permission denied",
            "required_permission": "stock:adjust",
            "message": "Changing stock requires stock:adjust",
        }), 403

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(
            product_id=product_id,
            patch=patch,
            counted_stock=counted_stock,
            user_id=current_user_id(),
        )
        return jsonify({"product": product.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("product", "delete")
def delete_product_route(product_id: int):
    """Delete a product that no sale references; its stock movements go with it."""
    try:
        products_service.delete_product(product_id=product_id, user_id=current_user_id())
        return jsonify({"ok": True}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
