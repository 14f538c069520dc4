# backend/stockbook/services/products_service.py
"""
Products Service

Product master data (SKU, names, prices, reorder threshold). The stock
counter is NOT part of the product patch: initial stock and counted-stock
edits are written as ledger movements through stock_service so that
current_stock keeps reconciling against the transaction history.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product, SaleItem
from ..models.inventory import TX_IN
from ..validation import ConflictError
from .audit_service import log_audit
from .concurrency import run_with_retry
from .errors import ProductInUseError, ProductNotFoundError
from .stock_service import apply_correction, apply_movement, get_product, parse_counted_quantity

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "category", "unit",
    "base_price_cents", "selling_price_cents", "min_stock",
}

OPENING_STOCK_REFERENCE = "OPENING"


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _snapshot(p: Product) -> dict:
    return {k: getattr(p, k) for k in sorted(PRODUCT_MUTABLE_FIELDS)}


def _ensure_unique_sku(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists.")


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    low_stock: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with current stock.

    Args:
        search: case-insensitive match on name or SKU
        category: exact category filter
        low_stock: only products with current_stock <= min_stock
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if category:
        base_query = base_query.filter(Product.category == category)
    if low_stock:
        base_query = base_query.filter(Product.current_stock <= Product.min_stock)

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict, initial_stock=None, user_id: int | None = None) -> Product:
    """
    Create a product from a validated patch dict.

    initial_stock > 0 is recorded as an opening IN movement (reference
    "OPENING") in the same transaction; the counter itself starts at 0.

    Raises:
        ConflictError: SKU already exists
        InvalidQuantityError: initial_stock negative or not an integer
    """
    opening = parse_counted_quantity(initial_stock) if initial_stock is not None else 0

    def _op() -> Product:
        _ensure_unique_sku(patch["sku"])

        p = Product(current_stock=0, min_stock=0)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()

        if opening > 0:
            apply_movement(
                p,
                TX_IN,
                opening,
                unit_price_cents=p.base_price_cents,
                reference=OPENING_STOCK_REFERENCE,
                notes="Opening stock",
                user_id=user_id,
            )

        log_audit(
            action="product.create",
            user_id=user_id,
            target_type="product",
            target_id=p.id,
            after={**_snapshot(p), "current_stock": opening},
        )
        db.session.commit()
        current_app.logger.info("Created product id=%s sku=%s", p.id, p.sku)
        return p

    return run_with_retry(_op)


def update_product(
    *,
    product_id: int,
    patch: dict,
    counted_stock=None,
    user_id: int | None = None,
) -> Product:
    """
    Edit product metadata and prices.

    current_stock is never assigned here. When counted_stock is given the
    difference is booked as a stock correction movement in the same
    transaction as the metadata change.

    Raises:
        ProductNotFoundError, ConflictError, InvalidQuantityError
    """
    counted = parse_counted_quantity(counted_stock) if counted_stock is not None else None

    def _op() -> Product:
        p = get_product(product_id, lock=True)

        if "sku" in patch and patch["sku"] != p.sku:
            _ensure_unique_sku(patch["sku"], exclude_id=p.id)

        before = _snapshot(p)
        apply_product_patch(p, patch)
        db.session.flush()

        if counted is not None:
            apply_correction(p, counted, notes="Stock correction from product edit", user_id=user_id)

        log_audit(
            action="product.update",
            user_id=user_id,
            target_type="product",
            target_id=p.id,
            before=before,
            after=_snapshot(p),
        )
        db.session.commit()
        return p

    return run_with_retry(_op)


def delete_product(*, product_id: int, user_id: int | None = None) -> None:
    """
    Hard-delete a product and its stock movements.

    Restricted: a product referenced by any sale item cannot be deleted,
    since the sale history must keep resolving its lines.
    """
    def _op() -> None:
        p = db.session.query(Product).filter_by(id=product_id).first()
        if p is None:
            raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

        in_use = db.session.query(SaleItem.id).filter(SaleItem.product_id == product_id).first()
        if in_use:
            raise ProductInUseError(
                "Product is referenced by sales and cannot be deleted",
                details={"product_id": product_id},
            )

        log_audit(
            action="product.delete",
            user_id=user_id,
            target_type="product",
            target_id=p.id,
            before={**_snapshot(p), "current_stock": p.current_stock},
        )
        db.session.delete(p)
        db.session.commit()
        current_app.logger.info("Deleted product id=%s", product_id)

    run_with_retry(_op)


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.category.isnot(None))
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [category for (category,) in rows]
