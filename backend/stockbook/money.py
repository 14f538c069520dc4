# Overview: Integer-cents money helpers: display conversion, parsing and formatting.

"""
Money is stored and computed as integer minor units (cents). Never a float.

Display values are decimal major units (cents / 100). The conversion from a
display value back to cents is the only lossy boundary in the system and
always rounds HALF AWAY FROM ZERO (decimal.ROUND_HALF_UP):

    from_display("10.005") -> 1001
    from_display("-0.005") -> -1

Display strings follow the id-ID convention used by the dashboard:
"." is the thousands separator and "," the decimal mark ("Rp10.000,50").
No arithmetic is ever performed on formatted strings.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .services.errors import InvalidAmountError

CENTS_PER_UNIT = 100
DEFAULT_CURRENCY_SYMBOL = "Rp"

_SEPARATOR_RE = re.compile(r"[\s.]")
_DISPLAY_NUMBER_RE = re.compile(r"\d+(,\d+)?")


def to_display(cents: int) -> Decimal:
    """Cents -> major units (exact; Decimal, not float)."""
    return Decimal(int(cents)) / CENTS_PER_UNIT


def from_display(value) -> int:
    """
    Major units -> cents, rounding half away from zero.

    Accepts int, Decimal, str or float (floats are converted via str() so
    1.1 stays 1.1 and does not become 1.1000000000000000888).
    """
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be a number")
    try:
        if isinstance(value, float):
            dec = Decimal(str(value))
        else:
            dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if not dec.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    return int((dec * CENTS_PER_UNIT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_display(text: str, symbol: str = DEFAULT_CURRENCY_SYMBOL) -> int:
    """
    Parse a user-entered display string into cents.

    Accepts an optional leading "-", an optional currency symbol (matched
    case-insensitively), digits with "." thousands separators and an
    optional "," decimal part: "Rp10.000" -> 1000000,
    "-Rp 10.000,50" -> -1000050. Anything else raises InvalidAmountError.
    """
    if text is None:
        raise InvalidAmountError("Amount is required")
    rest = str(text).strip()

    sign = ""
    if rest.startswith("-"):
        sign, rest = "-", rest[1:].lstrip()
    if symbol and rest.lower().startswith(symbol.lower()):
        rest = rest[len(symbol):].lstrip()
    if not sign and rest.startswith("-"):
        sign, rest = "-", rest[1:]

    digits = _SEPARATOR_RE.sub("", rest)
    if not _DISPLAY_NUMBER_RE.fullmatch(digits):
        raise InvalidAmountError(f"Invalid amount: {text!r}")
    return from_display(sign + digits.replace(",", "."))


def _group_thousands(units: int) -> str:
    return f"{units:,}".replace(",", ".")


def format_number(cents: int) -> str:
    """Cents -> "10.000" (rounded to whole major units, no symbol)."""
    units = int(to_display(cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    sign = "-" if units < 0 else ""
    return f"{sign}{_group_thousands(abs(units))}"


def format_money(cents: int, symbol: str = DEFAULT_CURRENCY_SYMBOL) -> str:
    """Cents -> "Rp10.000"."""
    number = format_number(cents)
    if number.startswith("-"):
        return f"-{symbol}{number[1:]}"
    return f"{symbol}{number}"
