# Overview: Maps ledger/validation exceptions to JSON error responses for routes.

from flask import jsonify, request

from .services.errors import (
    LedgerError,
    ProductInUseError,
    ProductNotFoundError,
    SaleNotFoundError,
    SaleVoidedError,
)
from .validation import ConflictError, ValidationError

STATUS_BY_ERROR = (
    (ProductNotFoundError, 404),
    (SaleNotFoundError, 404),
    (SaleVoidedError, 409),  # includes AlreadyVoidedError
    (ProductInUseError, 409),
    (ConflictError, 409),
    (ValidationError, 400),
    (LedgerError, 400),  # InvalidQuantity/InvalidAmount/InsufficientStock
)

HANDLED_ERRORS = (LedgerError, ValidationError, ConflictError)


def json_object() -> dict:
    """Request body as a dict. A missing or unparseable body is {}; any other JSON value is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def status_for(exc: Exception) -> int:
    for error_cls, status in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status
    return 500


def error_response(exc: Exception):
    """(json, status) for a handled business error."""
    body = {"error": str(exc)}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    return jsonify(body), status_for(exc)
