from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SALE_STATUS_UNPAID = "unpaid"
SALE_STATUS_PARTIAL = "partial"
SALE_STATUS_PAID = "paid"
SALE_STATUS_VOIDED = "voided"

SALE_STATUSES = (
    SALE_STATUS_UNPAID,
    SALE_STATUS_PARTIAL,
    SALE_STATUS_PAID,
    SALE_STATUS_VOIDED,
)


class Sale(db.Model):
    """
    Sale aggregate root: header, items and payments form one consistency boundary.

    INVARIANTS:
    - total_amount_cents == sum(item.subtotal_cents); fixed at creation.
    - paid_amount_cents == sum(payment.amount_cents); only grows.
    - status is stored and transitioned explicitly:
        unpaid -> partial -> paid (payments), any non-voided -> voided (void).
    - invoice_number is unique; collisions are retried by sales_service.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("total_amount_cents >= 0", name="ck_sales_total_nonnegative"),
        db.CheckConstraint("paid_amount_cents >= 0", name="ck_sales_paid_nonnegative"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "INV-2026-0001")
    invoice_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    customer_name = db.Column(db.String(200), nullable=True)
    customer_phone = db.Column(db.String(20), nullable=True)

    total_amount_cents = db.Column(db.BigInteger, nullable=False)
    paid_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_UNPAID, index=True)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "SaleItem",
        backref=db.backref("sale", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    payments = db.relationship(
        "Payment",
        backref=db.backref("sale", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Payment.payment_date",
    )

    @property
    def remaining_cents(self) -> int:
        return max((self.total_amount_cents or 0) - (self.paid_amount_cents or 0), 0)

    @property
    def is_voided(self) -> bool:
        return self.status == SALE_STATUS_VOIDED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_cents": self.remaining_cents,
            "status": self.status,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "notes": self.notes,
            "user_id": self.user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by_user_id": self.voided_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SaleItem(db.Model):
    """Line item with the unit price captured at sale time. Immutable."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("subtotal_cents = quantity * unit_price_cents", name="ck_sale_items_subtotal"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.BigInteger, nullable=False)
    subtotal_cents = db.Column(db.BigInteger, nullable=False)

    # Display only; the economic truth is unit_price_cents
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }
        if self.product is not None:
            data["product"] = {
                "id": self.product.id,
                "sku": self.product.sku,
                "name": self.product.name,
                "unit": self.product.unit,
            }
        return data


class Payment(db.Model):
    """
    Payment received against a sale.

    Append-only. A sale may receive several partial payments; the running
    total lives on Sale.paid_amount_cents and is updated in the same
    transaction as the insert.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_sale_date", "sale_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)

    # cash, transfer, qris, debit, credit, other
    payment_method = db.Column(db.String(50), nullable=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    notes = db.Column(db.String(500), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_date": to_utc_z(self.payment_date),
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
