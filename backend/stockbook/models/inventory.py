from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TX_IN = "in"
TX_OUT = "out"
TX_TYPES = (TX_IN, TX_OUT)


class Product(db.Model):
    """
    Product master data plus the current stock counter.

    STOCK COUNTER:
    current_stock is a denormalized running total of the product's
    StockTransaction history (sum of "in" minus sum of "out").
    - Only stock_service.apply_movement() changes it, via a relative
      UPDATE evaluated by the database (current_stock = current_stock + delta).
    - CHECK (current_stock >= 0) rejects a late concurrent debit instead of
      letting the counter go negative.
    - Product edits never write current_stock; counted-quantity fixes go
      through stock_service.correct_stock(), which emits a movement.

    DELETE RULES:
    - Referenced by any SaleItem -> restrict (ProductInUseError).
    - StockTransactions are removed together with the product.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_current_stock_nonnegative"),
        db.CheckConstraint("min_stock >= 0", name="ck_products_min_stock_nonnegative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(50), nullable=False, unique=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    category = db.Column(db.String(100), nullable=True)
    unit = db.Column(db.String(20), nullable=False)

    # Authoritative storage in cents (frontend may only format for display)
    base_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    min_stock = db.Column(db.Integer, nullable=False, default=0)
    current_stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    transactions = db.relationship(
        "StockTransaction",
        backref=db.backref("product", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
    )

    @property
    def is_low_stock(self) -> bool:
        return (self.current_stock or 0) <= (self.min_stock or 0)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "base_price_cents": self.base_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "min_stock": self.min_stock,
            "current_stock": self.current_stock,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    Append-only stock movement ledger.

    IMMUTABLE: rows are never updated or deleted by the services. Every
    change of Product.current_stock has exactly one row here, including
    compensating entries written when a sale is voided and corrections.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_tx_quantity_positive"),
        db.CheckConstraint("type IN ('in', 'out')", name="ck_stock_tx_type"),
        db.Index("ix_stock_tx_product_date", "product_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type = db.Column(db.String(8), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Price at transaction time (cents), informational only
    unit_price_cents = db.Column(db.Integer, nullable=True)

    # PO number, invoice number, "CORRECTION", ...
    reference = db.Column(db.String(100), nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)

    transaction_date = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    # Opaque actor id from the identity layer
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == TX_IN else -self.quantity

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "reference": self.reference,
            "notes": self.notes,
            "transaction_date": to_utc_z(self.transaction_date),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_product and self.product is not None:
            data["product"] = {
                "id": self.product.id,
                "sku": self.product.sku,
                "name": self.product.name,
                "unit": self.product.unit,
            }
        return data
