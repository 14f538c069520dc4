# Overview: Service-layer operations for the stock ledger; movements, corrections and reconciliation.

# backend/stockbook/services/stock_service.py

from datetime import timedelta

from flask import current_app
from sqlalchemy import case, func, update

from ..extensions import db
from ..models import Product, StockTransaction
from ..models.inventory import TX_IN, TX_OUT, TX_TYPES
from ..time_utils import utcnow, normalize_datetime, parse_end_bound
from ..validation import ValidationError, parse_int, require_positive_int, optional_text
from .audit_service import log_audit
from .concurrency import lock_for_update, run_with_retry
from .errors import InsufficientStockError, InvalidAmountError, InvalidQuantityError, ProductNotFoundError
"""
Stock Ledger Invariants (authoritative)

Ledger model:
- StockTransaction rows are append-only; each one is a single "in" or "out"
  movement of a positive quantity.
- Product.current_stock is the running total of those rows:
      current_stock == SUM(in) - SUM(out)
- apply_movement() is the ONLY writer of current_stock (record_movement,
  sale creation and voiding all go through it). Product edits never touch
  it; counted-quantity fixes go through correct_stock(), which itself
  records a movement.

Concurrency:
- current_stock is changed with a relative UPDATE evaluated by the database
  (current_stock = current_stock + delta), never read-modify-write in Python.
- OUT movements carry the guard "AND current_stock >= quantity"; zero rows
  updated means the debit lost the race (or never had the stock) and the
  movement is rejected with InsufficientStockError.
- CHECK (current_stock >= 0) backs the guard at the storage boundary.

Atomicity:
- The transaction row insert and the counter update happen in the same DB
  transaction. With commit=False the caller owns the unit of work (sale
  creation, void); with commit=True this module commits.
"""

CORRECTION_REFERENCE = "CORRECTION"
FUTURE_TOLERANCE = timedelta(minutes=2)
RECENT_MOVEMENTS_LIMIT = 10


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def get_current_stock(product_id: int) -> int:
    stock = db.session.query(Product.current_stock).filter_by(id=product_id).scalar()
    if stock is None:
        raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return int(stock)


def _parse_transaction_date(value):
    try:
        dt = normalize_datetime(value)
    except ValueError:
        raise ValidationError("transaction_date must be an ISO-8601 datetime")
    if dt is None:
        return utcnow()
    if dt > utcnow() + FUTURE_TOLERANCE:
        raise ValidationError("transaction_date cannot be in the future")
    return dt


def apply_movement(
    product: Product,
    tx_type: str,
    quantity: int,
    *,
    unit_price_cents: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    transaction_date=None,
    user_id: int | None = None,
) -> StockTransaction:
    """
    Guarded relative update + ledger insert, inside the caller's transaction.

    Inputs must already be validated. Flushes, never commits.
    """
    delta = quantity if tx_type == TX_IN else -quantity

    stmt = (
        update(Product)
        .where(Product.id == product.id)
        .values(current_stock=Product.current_stock + delta)
        .execution_options(synchronize_session=False)
    )
    if tx_type == TX_OUT:
        stmt = stmt.where(Product.current_stock >= quantity)

    result = db.session.execute(stmt)
    if result.rowcount == 0:
        available = db.session.query(Product.current_stock).filter_by(id=product.id).scalar()
        raise InsufficientStockError(product.id, product.name, quantity, int(available or 0))

    tx = StockTransaction(
        product_id=product.id,
        type=tx_type,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        reference=reference,
        notes=notes,
        transaction_date=transaction_date or utcnow(),
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()

    # The UPDATE bypassed the identity map; reload the counter on next access
    db.session.expire(product, ["current_stock", "updated_at"])
    return tx


def record_movement(
    product_id: int,
    tx_type: str,
    quantity,
    *,
    unit_price_cents=None,
    reference: str | None = None,
    notes: str | None = None,
    transaction_date=None,
    user_id: int | None = None,
    commit: bool = True,
    audit: bool = True,
) -> StockTransaction:
    """
    Record one stock movement and apply its delta to Product.current_stock.

    Raises:
        InvalidQuantityError: quantity is not a positive integer
        InvalidAmountError: unit_price_cents given but not a positive integer
        ValidationError: unknown type, bad date, oversized text
        ProductNotFoundError: product does not exist
        InsufficientStockError: OUT quantity exceeds current stock
    """
    product_id = require_positive_int(product_id, "product_id")
    if tx_type not in TX_TYPES:
        raise ValidationError(f"type must be one of {', '.join(TX_TYPES)}")
    quantity = require_positive_int(quantity, "quantity", InvalidQuantityError)
    if unit_price_cents is not None:
        unit_price_cents = require_positive_int(unit_price_cents, "unit_price_cents", InvalidAmountError)
    reference = optional_text(reference, "reference", 100)
    notes = optional_text(notes, "notes", 500)
    occurred = _parse_transaction_date(transaction_date)

    def _op() -> StockTransaction:
        product = get_product(product_id)
        before = product.current_stock

        tx = apply_movement(
            product,
            tx_type,
            quantity,
            unit_price_cents=unit_price_cents,
            reference=reference,
            notes=notes,
            transaction_date=occurred,
            user_id=user_id,
        )

        if audit:
            log_audit(
                action=f"stock.{tx_type}",
                user_id=user_id,
                target_type="product",
                target_id=product.id,
                before={"current_stock": before},
                after={"current_stock": product.current_stock, "transaction_id": tx.id},
            )

        if commit:
            db.session.commit()
            current_app.logger.info(
                "Stock %s: product=%s quantity=%d tx=%s", tx_type, product_id, quantity, tx.id
            )
        return tx

    if commit:
        return run_with_retry(_op)
    return _op()


def parse_counted_quantity(value) -> int:
    if value is None:
        raise InvalidQuantityError("counted_quantity is required")
    try:
        counted = parse_int(value, "counted_quantity")
    except ValidationError as exc:
        raise InvalidQuantityError(str(exc))
    if counted < 0:
        raise InvalidQuantityError("counted_quantity must be >= 0")
    return counted


def apply_correction(
    product: Product,
    counted: int,
    *,
    notes: str | None = None,
    user_id: int | None = None,
) -> StockTransaction | None:
    """Correction movement inside the caller's transaction; None when nothing to do."""
    before = product.current_stock
    diff = counted - before
    if diff == 0:
        return None

    tx = apply_movement(
        product,
        TX_IN if diff > 0 else TX_OUT,
        abs(diff),
        reference=CORRECTION_REFERENCE,
        notes=notes or f"Stock correction {before} -> {counted}",
        user_id=user_id,
    )
    log_audit(
        action="stock.correct",
        user_id=user_id,
        target_type="product",
        target_id=product.id,
        before={"current_stock": before},
        after={"current_stock": counted, "transaction_id": tx.id},
    )
    return tx


def correct_stock(
    product_id: int,
    counted_quantity,
    *,
    notes: str | None = None,
    user_id: int | None = None,
) -> StockTransaction | None:
    """
    Maintenance path: bring current_stock to a counted quantity.

    Emits a compensating movement for the difference (reference
    "CORRECTION") instead of overwriting the counter, so the ledger keeps
    reconciling. Returns None when the stock already matches.
    """
    counted = parse_counted_quantity(counted_quantity)
    notes = optional_text(notes, "notes", 500)

    def _op() -> StockTransaction | None:
        product = get_product(product_id, lock=True)
        before = product.current_stock
        tx = apply_correction(product, counted, notes=notes, user_id=user_id)
        if tx is None:
            db.session.rollback()
            return None
        db.session.commit()
        current_app.logger.info("Stock corrected: product=%s %d -> %d", product_id, before, counted)
        return tx

    return run_with_retry(_op)


def ledger_totals(product_id: int) -> tuple[int, int]:
    """(sum of IN quantities, sum of OUT quantities) for a product."""
    row = db.session.query(
        func.coalesce(func.sum(case((StockTransaction.type == TX_IN, StockTransaction.quantity), else_=0)), 0),
        func.coalesce(func.sum(case((StockTransaction.type == TX_OUT, StockTransaction.quantity), else_=0)), 0),
    ).filter(StockTransaction.product_id == product_id).one()
    return int(row[0] or 0), int(row[1] or 0)


def reconcile_product(product_id: int) -> dict:
    """Compare the stored counter against the ledger for one product."""
    product = get_product(product_id)
    total_in, total_out = ledger_totals(product_id)
    ledger_stock = total_in - total_out
    return {
        "product_id": product.id,
        "sku": product.sku,
        "current_stock": product.current_stock,
        "ledger_stock": ledger_stock,
        "total_in": total_in,
        "total_out": total_out,
        "drift": product.current_stock - ledger_stock,
        "is_consistent": product.current_stock == ledger_stock,
    }


def reconcile_all() -> list[dict]:
    """Reconciliation report for every product, ordered by SKU."""
    ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.sku).all()]
    return [reconcile_product(pid) for pid in ids]


def list_transactions(
    *,
    product_id: int | None = None,
    tx_type: str | None = None,
    start=None,
    end=None,
    reference: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[StockTransaction]:
    """Movement history, newest first. Date bounds are inclusive; a date-only end covers that whole day."""
    if tx_type is not None and tx_type not in TX_TYPES:
        raise ValidationError(f"type must be one of {', '.join(TX_TYPES)}")
    try:
        start_dt = normalize_datetime(start)
        end_dt, end_exclusive = parse_end_bound(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")

    query = db.session.query(StockTransaction)
    if product_id is not None:
        query = query.filter(StockTransaction.product_id == product_id)
    if tx_type is not None:
        query = query.filter(StockTransaction.type == tx_type)
    if start_dt is not None:
        query = query.filter(StockTransaction.transaction_date >= start_dt)
    if end_dt is not None:
        if end_exclusive:
            query = query.filter(StockTransaction.transaction_date < end_dt)
        else:
            query = query.filter(StockTransaction.transaction_date <= end_dt)
    if reference:
        query = query.filter(StockTransaction.reference == reference)

    return (
        query.order_by(StockTransaction.transaction_date.desc(), StockTransaction.id.desc())
        .offset(max(0, offset))
        .limit(max(1, min(limit, 500)))
        .all()
    )


def stock_overview() -> dict:
    """Dashboard numbers: totals, stock value at selling price, low stock, recent movements."""
    products = db.session.query(Product).order_by(Product.updated_at.desc(), Product.id.desc()).all()
    low_stock = [p for p in products if p.is_low_stock]

    return {
        "total_products": len(products),
        "total_stock": sum(p.current_stock for p in products),
        "total_value_cents": sum(p.current_stock * p.selling_price_cents for p in products),
        "low_stock_products": [p.to_dict() for p in low_stock],
        "recent_transactions": [
            tx.to_dict(include_product=True)
            for tx in list_transactions(limit=RECENT_MOVEMENTS_LIMIT)
        ],
    }
