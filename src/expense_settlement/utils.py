"""Money, period, and date helpers."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

CENT = Decimal("0.01")

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


def to_number(value: Any, default: float | None = 0.0) -> float | None:
    """Coerce a loosely typed value to a finite float.

    Returns ``default`` for None, blanks, booleans, unparseable strings,
    NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def to_money(value: Any, default: float | None = None) -> float | None:
    """Coerce to a 2-decimal amount, half away from zero.

    Returns ``default`` when the value is not a number or has too many
    significant digits to be represented to the cent.
    """
    number = to_number(value, None)
    if number is None:
        return default
    try:
        quantized = Decimal(repr(number)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return default
    result = float(quantized)
    return 0.0 if result == 0 else result


def round2(value: Any) -> float:
    """Round a monetary value to 2 decimals; non-numbers count as 0.

    Raises:
        ValueError: if the value cannot be represented to the cent
    """
    amount = to_money(to_number(value))
    if amount is None:
        raise ValueError(f"amount out of range: {value!r}")
    return amount


def ratio(numerator: Any, denominator: Any) -> float:
    """Divide, returning 0 when the denominator is zero."""
    d = to_number(denominator)
    if d == 0:
        return 0.0
    return to_number(numerator) / d


def sum_money(values: Iterable[Any]) -> float:
    """Sum monetary values with Decimal arithmetic, rounded to 2 decimals."""
    total = Decimal("0")
    for value in values:
        total += Decimal(repr(round2(value)))
    return round2(float(total))


def normalize_period(value: Any) -> str | None:
    """Return ``YYYY-MM`` if value is a valid period string, else None."""
    if not isinstance(value, str):
        return None
    match = _PERIOD_RE.match(value.strip())
    if not match:
        return None
    month = int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return f"{match.group(1)}-{match.group(2)}"


def parse_datetime(value: Any) -> datetime | None:
    """Parse a date-like value to an aware UTC datetime.

    Accepts datetime and date objects and ISO-8601 strings (a trailing ``Z``
    is allowed). Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def period_of(value: Any) -> str | None:
    """Calendar month (``YYYY-MM``) a date-like value falls in."""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def is_date_in_period(value: Any, period: str) -> bool:
    normalized = normalize_period(period)
    return normalized is not None and period_of(value) == normalized


def clean_str(value: Any) -> str:
    """Stringify and strip; None becomes the empty string."""
    if value is None:
        return ""
    return str(value).strip()


def pick(doc: dict[str, Any], keys: Iterable[str]) -> dict[str, Any]:
    """Project a document onto the given keys (missing keys are skipped)."""
    return {key: doc[key] for key in keys if key in doc}


def unique(values: Iterable[Any]) -> list[Any]:
    """De-duplicate preserving first-seen order."""
    seen: dict[Any, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)
