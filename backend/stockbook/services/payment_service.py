# Overview: Service-layer operations for payment; receivables and settlement of sales.

"""
Payment Service

DESIGN PRINCIPLES:
- Payments are separate from sales (many-to-one relationship)
- Partial payments: a payment can be less than the remaining balance
- Overpayment is accepted; the sale simply becomes paid
- Append-only: payments are never edited or deleted
- Sale.paid_amount_cents is increased with a relative UPDATE in the same
  transaction as the payment insert, then the status is recomputed
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Payment, Sale
from ..money import format_money
from ..models.sales import SALE_STATUS_PAID, SALE_STATUS_PARTIAL, SALE_STATUS_UNPAID, SALE_STATUS_VOIDED
from ..time_utils import normalize_datetime, utcnow
from ..validation import (
    MAX_PAYMENT_CENTS,
    ValidationError,
    enforce_rules_payment_method,
    optional_text,
    require_positive_int,
)
from .audit_service import log_audit
from .concurrency import lock_for_update, run_with_retry
from .errors import InvalidAmountError, SaleNotFoundError, SaleVoidedError
from .sales_service import SALE_LIST_LIMIT, next_status


def add_payment(
    sale_id: int,
    amount_cents,
    *,
    payment_method: str | None = None,
    payment_date=None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Payment:
    """
    Record a payment against a sale.

    Returns:
        Payment record

    Raises:
        InvalidAmountError: amount is not a positive integer, or above MAX_PAYMENT_CENTS
        ValidationError: unknown payment method, bad date, oversized notes
        SaleNotFoundError
        SaleVoidedError: the sale is voided
    """
    amount_cents = require_positive_int(amount_cents, "amount_cents", InvalidAmountError)
    if amount_cents > MAX_PAYMENT_CENTS:
        raise InvalidAmountError(f"amount_cents cannot exceed {MAX_PAYMENT_CENTS}")
    payment_method = enforce_rules_payment_method(payment_method)
    notes = optional_text(notes, "notes", 500)
    try:
        paid_on = normalize_datetime(payment_date)
    except ValueError:
        raise ValidationError("payment_date must be an ISO-8601 datetime")

    def _op() -> Payment:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.status == SALE_STATUS_VOIDED:
            raise SaleVoidedError(
                f"Cannot add payment to voided sale {sale.invoice_number}",
                details={"sale_id": sale.id, "invoice_number": sale.invoice_number},
            )
        before = {"paid_amount_cents": sale.paid_amount_cents, "status": sale.status}

        result = db.session.execute(
            update(Sale)
            .where(Sale.id == sale.id, Sale.status != SALE_STATUS_VOIDED)
            .values(paid_amount_cents=Sale.paid_amount_cents + amount_cents)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise SaleVoidedError(
                f"Cannot add payment to voided sale {sale.invoice_number}",
                details={"sale_id": sale.id, "invoice_number": sale.invoice_number},
            )

        payment = Payment(
            sale_id=sale.id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            payment_date=paid_on or utcnow(),
            notes=notes,
            user_id=user_id,
            created_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        db.session.refresh(sale, ["paid_amount_cents"])
        sale.status = next_status(sale.total_amount_cents, sale.paid_amount_cents)

        log_audit(
            action="payment.create",
            user_id=user_id,
            target_type="sale",
            target_id=sale.id,
            before=before,
            after={
                "paid_amount_cents": sale.paid_amount_cents,
                "status": sale.status,
                "payment_id": payment.id,
                "amount_cents": amount_cents,
            },
        )

        db.session.commit()
        current_app.logger.info(
            "Payment %d on %s (status=%s)", amount_cents, sale.invoice_number, sale.status
        )
        return payment

    return run_with_retry(_op)


def get_sale_payments(sale_id: int) -> list[Payment]:
    """Payments for a sale, oldest first."""
    return (
        db.session.query(Payment)
        .filter_by(sale_id=sale_id)
        .order_by(Payment.payment_date.asc(), Payment.id.asc())
        .all()
    )


def list_unpaid_sales() -> list[Sale]:
    """Receivables: unpaid and partially paid sales, oldest due first."""
    return (
        db.session.query(Sale)
        .filter(Sale.status.in_((SALE_STATUS_UNPAID, SALE_STATUS_PARTIAL)))
        .order_by(Sale.due_date.is_(None), Sale.due_date.asc(), Sale.created_at.asc(), Sale.id.asc())
        .all()
    )


def list_paid_sales(limit: int = SALE_LIST_LIMIT) -> list[Sale]:
    """Settled sales, most recently updated first."""
    return (
        db.session.query(Sale)
        .filter(Sale.status == SALE_STATUS_PAID)
        .order_by(Sale.updated_at.desc(), Sale.id.desc())
        .limit(max(1, min(limit, SALE_LIST_LIMIT)))
        .all()
    )


def dashboard_summary() -> dict:
    """
    Sales count, revenue and outstanding receivables.

    Voided sales are excluded from every figure. Receivables clamp each
    sale's remaining balance at zero, so overpayments do not offset debts.
    """
    live = db.session.query(Sale).filter(Sale.status != SALE_STATUS_VOIDED)

    sales_count = live.count()
    revenue = (
        db.session.query(func.coalesce(func.sum(Sale.total_amount_cents), 0))
        .filter(Sale.status != SALE_STATUS_VOIDED)
        .scalar()
    )
    collected = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .join(Sale, Sale.id == Payment.sale_id)
        .filter(Sale.status != SALE_STATUS_VOIDED)
        .scalar()
    )
    open_sales = live.filter(Sale.status.in_((SALE_STATUS_UNPAID, SALE_STATUS_PARTIAL))).all()

    receivables = sum(sale.remaining_cents for sale in open_sales)
    symbol = current_app.config.get("CURRENCY_SYMBOL", "Rp")

    return {
        "sales_count": int(sales_count),
        "revenue_cents": int(revenue or 0),
        "collected_cents": int(collected or 0),
        "receivables_cents": receivables,
        "unpaid_count": len(open_sales),
        "display": {
            "revenue": format_money(int(revenue or 0), symbol),
            "collected": format_money(int(collected or 0), symbol),
            "receivables": format_money(receivables, symbol),
        },
    }
