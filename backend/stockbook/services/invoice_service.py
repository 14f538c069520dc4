# Overview: Service-layer operations for invoice numbering; year-scoped sale identifiers.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Sale
from ..time_utils import current_year


class InvoiceNumberError(ValueError):
    """Raised when an invoice number cannot be parsed."""


def _prefix() -> str:
    return current_app.config.get("INVOICE_PREFIX", "INV")


def _pad() -> int:
    return int(current_app.config.get("INVOICE_PAD", 4))


def format_invoice_number(year: int, sequence: int) -> str:
    return f"{_prefix()}-{year}-{sequence:0{_pad()}d}"


def parse_invoice_number(invoice_number: str) -> tuple[int, int]:
    """
    Split "INV-2026-0042" into (2026, 42).

    Raises InvoiceNumberError for anything that does not follow the
    configured prefix-year-sequence layout.
    """
    prefix = _prefix()
    parts = (invoice_number or "").rsplit("-", 2)
    if len(parts) != 3 or parts[0] != prefix:
        raise InvoiceNumberError(f"Not an invoice number: {invoice_number!r}")
    year, seq = parts[1], parts[2]
    if not (year.isdigit() and seq.isdigit()):
        raise InvoiceNumberError(f"Not an invoice number: {invoice_number!r}")
    return int(year), int(seq)


def next_invoice_number(year: int | None = None) -> str:
    """
    Next invoice number for the given year (default: current UTC year).

    The sequence restarts at 1 every year. Candidates are ordered by length
    first, so "INV-2026-10000" ranks above "INV-2026-9999" even though it
    sorts lower as text.

    Not a reservation: two concurrent callers can get the same number. The
    unique constraint on sales.invoice_number rejects the loser and
    create_sale retries its unit of work.
    """
    if year is None:
        year = current_year()

    stem = f"{_prefix()}-{year}-"
    pattern = stem.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"

    candidates = (
        db.session.query(Sale.invoice_number)
        .filter(Sale.invoice_number.like(pattern, escape="\\"))
        .order_by(func.length(Sale.invoice_number).desc(), Sale.invoice_number.desc())
        .limit(20)
        .all()
    )

    last = 0
    for (invoice_number,) in candidates:
        suffix = invoice_number[len(stem):]
        if suffix.isdigit():
            last = int(suffix)
            break

    return format_invoice_number(year, last + 1)
