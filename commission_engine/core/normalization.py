"""
Normalization helpers shared by every resolution and parsing site.

Identity equivalence rules (applied by ``normalize_label``):
    1. Unicode NFKC normalization (full-width and compatibility forms fold)
    2. Leading/trailing whitespace is trimmed
    3. Internal whitespace runs collapse to a single space
    4. A single leading ``@`` is dropped (``@Anna`` == ``anna``)
    5. Case-folded (``Straße`` == ``STRASSE``)

Two labels denote the same manager/creator iff their normalized forms match.
"""

import re
import unicodedata
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


_WHITESPACE_RE = re.compile(r"\s+")
_CURRENCY_RE = re.compile(r"[€$£¥₹]|EUR|USD|GBP", re.IGNORECASE)
_PERIOD_RE = re.compile(r"^\d{4}(0[1-9]|1[0-2])$")
# "2,000" or "12,345": a lone comma before exactly three digits groups thousands
_COMMA_THOUSANDS_RE = re.compile(r"^[1-9]\d{0,2},\d{3}$")


class AmountParseError(ValueError):
    """Raised when a monetary cell cannot be read as a decimal amount."""
    pass


def normalize_label(raw: Any) -> str:
    """Normalize a raw manager/creator label. Returns "" for empty input."""
    if raw is None:
        return ""
    text = unicodedata.normalize("NFKC", str(raw)).strip()
    text = _WHITESPACE_RE.sub(" ", text)
    if text.startswith("@"):
        text = text[1:].lstrip()
    return text.casefold()


def display_label(raw: Any) -> str:
    """Trimmed, whitespace-collapsed label kept for display."""
    if raw is None:
        return ""
    return _WHITESPACE_RE.sub(" ", unicodedata.normalize("NFKC", str(raw)).strip())


def parse_amount(raw: Any) -> Decimal:
    """
    Parse a monetary cell into a Decimal.

    Accepts numbers, and strings with currency symbols and either ``,`` or
    ``.`` as decimal separator:
        "€1.234,56" -> 1234.56
        "1,234.56"  -> 1234.56
        "1234,5"    -> 1234.5
        "1,234,567" -> 1234567
        "2,000"     -> 2000      (one comma, 1-3 digit head, 3 digit tail)
        "1234,567"  -> 1234.567
        "0,125"     -> 0.125
    A single comma is a decimal separator unless it reads as a thousands
    group: a head of one to three digits not starting with 0, followed by
    exactly three digits.
    Empty cells read as zero.
    """
    if raw is None:
        return Decimal("0")
    if isinstance(raw, bool):
        raise AmountParseError(f"Invalid amount: {raw!r}")
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        return Decimal(str(raw))

    text = _CURRENCY_RE.sub("", str(raw))
    text = text.replace(" ", "").replace("\u00a0", "").replace("'", "")
    if not text:
        return Decimal("0")

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if text.startswith("-"):
        negative = True
        text = text[1:]

    commas = text.count(",")
    dots = text.count(".")
    if commas and dots:
        # Whichever separator comes last is the decimal separator
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif commas == 1 and _COMMA_THOUSANDS_RE.match(text):
        text = text.replace(",", "")
    elif commas == 1:
        text = text.replace(",", ".")
    elif commas > 1:
        text = text.replace(",", "")
    elif dots > 1:
        text = text.replace(".", "")

    try:
        value = Decimal(text)
    except InvalidOperation:
        raise AmountParseError(f"Invalid amount: {raw!r}")
    if not value.is_finite():
        raise AmountParseError(f"Invalid amount: {raw!r}")
    return -value if negative else value


def is_valid_period(period: Optional[str]) -> bool:
    return bool(period) and bool(_PERIOD_RE.match(period))


def validate_period(period: str) -> str:
    """Validate a YYYYMM period string and return it stripped."""
    value = str(period).strip() if period is not None else ""
    if not is_valid_period(value):
        raise ValueError(f"Invalid period '{period}'. Expected YYYYMM")
    return value


def previous_period(today: Optional[date] = None) -> str:
    """Period (YYYYMM) of the month before ``today``."""
    today = today or date.today()
    year, month = today.year, today.month - 1
    if month == 0:
        year, month = year - 1, 12
    return f"{year}{month:02d}"
