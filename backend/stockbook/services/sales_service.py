"""
Sales Service - sale creation, voiding and listing

A sale, its items and its payments form one consistency boundary. Creating
a sale debits stock for every item through the stock ledger; voiding it
credits the same quantities back. Both happen in the same DB transaction
as the sale rows, so a failure leaves neither the sale nor any movement.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..models.inventory import TX_IN, TX_OUT
from ..models.sales import (
    SALE_STATUS_PAID,
    SALE_STATUS_PARTIAL,
    SALE_STATUS_UNPAID,
    SALE_STATUS_VOIDED,
    SALE_STATUSES,
)
from ..time_utils import normalize_datetime, parse_end_bound, utcnow
from ..validation import MAX_PRICE_CENTS, ValidationError, optional_text, require_positive_int
from .audit_service import log_audit
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    AlreadyVoidedError,
    InsufficientStockError,
    InvalidAmountError,
    InvalidQuantityError,
    ProductNotFoundError,
    SaleNotFoundError,
)
from .invoice_service import next_invoice_number
from .stock_service import apply_movement

SALE_LIST_LIMIT = 100


def next_status(total_cents: int, paid_cents: int) -> str:
    """
    Payment status for a non-voided sale.

    unpaid (nothing paid) -> partial (0 < paid < total) -> paid (paid >= total).
    A zero-total sale is paid from the start.
    """
    if paid_cents >= total_cents:
        return SALE_STATUS_PAID
    if paid_cents > 0:
        return SALE_STATUS_PARTIAL
    return SALE_STATUS_UNPAID


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    normalized = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        product_id = require_positive_int(item["product_id"], f"items[{index}].product_id")
        quantity = require_positive_int(item.get("quantity"), f"items[{index}].quantity", InvalidQuantityError)
        unit_price = item.get("unit_price_cents")
        if unit_price is not None:
            unit_price = require_positive_int(unit_price, f"items[{index}].unit_price_cents", InvalidAmountError)
            if unit_price > MAX_PRICE_CENTS:
                raise InvalidAmountError(f"items[{index}].unit_price_cents cannot exceed {MAX_PRICE_CENTS}")
        normalized.append({"product_id": product_id, "quantity": quantity, "unit_price_cents": unit_price})
    return normalized


def _load_products(product_ids) -> dict[int, Product]:
    products = db.session.query(Product).filter(Product.id.in_(set(product_ids))).all()
    by_id = {p.id: p for p in products}
    for product_id in product_ids:
        if product_id not in by_id:
            raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return by_id


def _check_stock(items: list[dict], products: dict[int, Product]) -> None:
    """Pre-check with quantities summed per product; the guarded update still decides."""
    requested: dict[int, int] = {}
    for item in items:
        requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity"]

    for product_id, qty in requested.items():
        product = products[product_id]
        if product.current_stock < qty:
            raise InsufficientStockError(product.id, product.name, qty, product.current_stock)


def create_sale(
    items,
    *,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    due_date=None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Sale:
    """
    Create a sale and debit stock for every item.

    items: [{"product_id": int, "quantity": int, "unit_price_cents": int | None}]
    When unit_price_cents is omitted the product's selling price at this
    moment is captured on the item.

    Raises:
        ValidationError: empty items, oversized text, bad due_date
        InvalidQuantityError / InvalidAmountError: non-positive item values
        ProductNotFoundError: unknown product
        InsufficientStockError: stock too low for any product (no writes)
    """
    items = _normalize_items(items)
    customer_name = optional_text(customer_name, "customer_name", 200)
    customer_phone = optional_text(customer_phone, "customer_phone", 20)
    notes = optional_text(notes, "notes", 500)
    try:
        due = normalize_datetime(due_date)
    except ValueError:
        raise ValidationError("due_date must be an ISO-8601 datetime")

    def _op() -> Sale:
        products = _load_products([item["product_id"] for item in items])
        _check_stock(items, products)

        lines = []
        for item in items:
            product = products[item["product_id"]]
            unit_price = item["unit_price_cents"] or product.selling_price_cents
            lines.append((product, item["quantity"], unit_price))

        total = sum(qty * price for _, qty, price in lines)
        invoice_number = next_invoice_number()

        sale = Sale(
            invoice_number=invoice_number,
            customer_name=customer_name,
            customer_phone=customer_phone,
            total_amount_cents=total,
            paid_amount_cents=0,
            status=next_status(total, 0),
            due_date=due,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(sale)
        db.session.flush()

        for product, qty, price in lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                quantity=qty,
                unit_price_cents=price,
                subtotal_cents=qty * price,
            ))
            apply_movement(
                product,
                TX_OUT,
                qty,
                unit_price_cents=price,
                reference=invoice_number,
                notes=f"Sale {invoice_number}",
                user_id=user_id,
            )

        log_audit(
            action="sale.create",
            user_id=user_id,
            target_type="sale",
            target_id=sale.id,
            after={
                "invoice_number": invoice_number,
                "total_amount_cents": total,
                "items": [{"product_id": p.id, "quantity": q, "unit_price_cents": u} for p, q, u in lines],
            },
        )

        db.session.commit()
        current_app.logger.info("Created sale %s total=%d items=%d", invoice_number, total, len(lines))
        return sale

    # IntegrityError here is an invoice number collision with a concurrent sale
    return run_with_retry(_op, retry_on=(IntegrityError,))


def void_sale(sale_id: int, *, user_id: int | None = None) -> Sale:
    """
    Void a sale and credit every item's quantity back to stock.

    Compensating, not point-in-time: movements recorded after the sale are
    kept. Payments and paid_amount_cents are left as they are.

    Raises:
        SaleNotFoundError
        AlreadyVoidedError: the sale is already voided (stock is not credited twice)
    """
    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.status == SALE_STATUS_VOIDED:
            raise AlreadyVoidedError(
                f"Sale {sale.invoice_number} is already voided",
                details={"sale_id": sale.id, "invoice_number": sale.invoice_number},
            )

        before_status = sale.status
        items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()
        for item in items:
            product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
            apply_movement(
                product,
                TX_IN,
                item.quantity,
                unit_price_cents=item.unit_price_cents,
                reference=sale.invoice_number,
                notes=f"Cancellation of {sale.invoice_number}",
                user_id=user_id,
            )

        sale.status = SALE_STATUS_VOIDED
        sale.voided_at = utcnow()
        sale.voided_by_user_id = user_id

        log_audit(
            action="sale.void",
            user_id=user_id,
            target_type="sale",
            target_id=sale.id,
            before={"status": before_status},
            after={"status": SALE_STATUS_VOIDED, "items_restocked": len(items)},
        )

        db.session.commit()
        current_app.logger.info("Voided sale %s", sale.invoice_number)
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def get_sale_detail(sale_id: int) -> dict:
    """Sale with its items (product sku/name/unit) and payments in payment order."""
    from .payment_service import get_sale_payments

    sale = get_sale(sale_id)
    items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()
    data = sale.to_dict()
    data["items"] = [item.to_dict() for item in items]
    data["payments"] = [payment.to_dict() for payment in get_sale_payments(sale.id)]
    return data


def list_sales(
    *,
    status: str | None = None,
    search: str | None = None,
    start=None,
    end=None,
    limit: int = SALE_LIST_LIMIT,
) -> list[Sale]:
    """Newest first. search matches invoice number or customer name; a date-only end covers that whole day."""
    if status is not None and status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(SALE_STATUSES)}")
    try:
        start_dt = normalize_datetime(start)
        end_dt, end_exclusive = parse_end_bound(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")

    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Sale.invoice_number.ilike(pattern), Sale.customer_name.ilike(pattern)))
    if start_dt is not None:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt is not None:
        if end_exclusive:
            query = query.filter(Sale.created_at < end_dt)
        else:
            query = query.filter(Sale.created_at <= end_dt)

    return (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(max(1, min(limit, SALE_LIST_LIMIT)))
        .all()
    )
