# Overview: Exception taxonomy for the inventory ledger and sales settlement services.

"""
Ledger error taxonomy.

Every ledger operation either commits all of its writes or none of them.
Errors below are raised BEFORE any write is flushed, or cause the whole
unit of work to be rolled back by the caller.

Storage-layer failures (IntegrityError, OperationalError) are not wrapped;
they propagate unchanged after rollback.
"""


class LedgerError(Exception):
    """Base class for ledger/settlement business errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidQuantityError(LedgerError):
    """Quantity is missing, non-integer, or not positive."""


class InvalidAmountError(LedgerError):
    """Monetary amount is missing, non-integer, or not positive."""


class ProductNotFoundError(LedgerError):
    """Referenced product does not exist."""


class ProductInUseError(LedgerError):
    """Product is referenced by sale items and cannot be deleted."""


class InsufficientStockError(LedgerError):
    """
    Requested OUT quantity exceeds current stock.

    User-facing validation failure: the caller reduces the quantity or
    restocks. Never retried automatically.
    """

    def __init__(self, product_id: int, product_name: str | None, requested: int, available: int):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "current_stock": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class SaleNotFoundError(LedgerError):
    """Referenced sale does not exist."""


class SaleVoidedError(LedgerError):
    """Mutation attempted on a voided sale."""


class AlreadyVoidedError(SaleVoidedError):
    """Void attempted on a sale that is already voided."""
