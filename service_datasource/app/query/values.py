"""
Row value kinds.

Rows are open mappings, so every comparison the engine makes goes through
this module: a value is first classified into a ``ValueKind`` and then
compared, stringified or coerced according to that kind.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional


class ValueKind(str, Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    DATE = "date"
    STRING = "string"
    OTHER = "other"


# Cross-kind ordering used when two values of different kinds are compared.
_KIND_RANK = {
    ValueKind.NULL: 0,
    ValueKind.BOOLEAN: 1,
    ValueKind.NUMBER: 2,
    ValueKind.DATE: 3,
    ValueKind.STRING: 4,
    ValueKind.OTHER: 5,
}

_EPOCH_TEXT = re.compile(r"^-?\d+(\.\d+)?$")

_TRUE_LITERALS = {"1", "true", "yes", "y", "on"}
_FALSE_LITERALS = {"0", "false", "no", "n", "off"}


def classify(value: Any) -> ValueKind:
    """Return the kind of a runtime row value."""
    if value is None:
        return ValueKind.NULL
    # bool is an int subclass, so it has to be checked first
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return ValueKind.NUMBER
    if isinstance(value, (date, datetime)):
        return ValueKind.DATE
    if isinstance(value, str):
        return ValueKind.STRING
    return ValueKind.OTHER


def to_text(value: Any) -> Optional[str]:
    """Render a value as search text, or ``None`` when it has no text form."""
    kind = classify(value)
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind is ValueKind.NUMBER:
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    if kind is ValueKind.DATE:
        return value.isoformat()
    if kind is ValueKind.STRING:
        return value
    if isinstance(value, (Mapping, list, tuple, set, frozenset, bytes)):
        return None
    return str(value)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _date_sort_value(value: Any) -> datetime:
    if isinstance(value, datetime):
        return _as_naive_utc(value)
    return datetime(value.year, value.month, value.day)


def _natural_compare(left: Any, right: Any) -> int:
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison with a total order across kinds.

    Values of the same kind use their natural ordering. Values of different
    kinds are ordered by kind rank, so ``None`` sorts before everything else
    in ascending order.
    """
    left_kind, right_kind = classify(left), classify(right)
    if left_kind is not right_kind:
        return _natural_compare(_KIND_RANK[left_kind], _KIND_RANK[right_kind])

    if left_kind is ValueKind.NULL or left_kind is ValueKind.OTHER:
        return 0
    if left_kind is ValueKind.DATE:
        return _natural_compare(_date_sort_value(left), _date_sort_value(right))
    return _natural_compare(left, right)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Best-effort conversion of a row or criterion value to a datetime.

    Accepts ``date``/``datetime`` objects, ISO 8601 strings (with or without a
    time part, ``Z`` suffix allowed) and epoch milliseconds, given either as a
    number or as a numeric string.
    """
    kind = classify(value)
    if kind is ValueKind.DATE:
        if isinstance(value, datetime):
            return value
        return datetime(value.year, value.month, value.day)
    if kind is ValueKind.NUMBER:
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if kind is not ValueKind.STRING:
        return None

    text = value.strip()
    if not text:
        return None
    if _EPOCH_TEXT.match(text):
        # numeric criteria arrive as text once encoded as query parameters
        return parse_datetime(float(text))
    try:
        if len(text) == 10:
            parsed = date.fromisoformat(text)
            return datetime(parsed.year, parsed.month, parsed.day)
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_calendar_date(value: Any) -> Optional[date]:
    """Calendar date of a value, ignoring the time of day."""
    parsed = parse_datetime(value)
    return parsed.date() if parsed is not None else None


def coerce_like(raw: Any, sample: Any) -> Any:
    """Coerce a filter criterion to the kind of the row value it is compared to.

    Criteria decoded from query strings arrive as text, so ``"30"`` has to
    become ``30`` before it can be ordered against a numeric column. Returns
    ``None`` when the criterion cannot represent a value of that kind.
    """
    kind = classify(sample)
    raw_kind = classify(raw)
    if raw_kind is kind:
        return raw

    if kind is ValueKind.NUMBER:
        if raw_kind is ValueKind.BOOLEAN:
            return None
        text = str(raw).strip().replace(",", ".")
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
        if isinstance(sample, int) and number == number.to_integral_value():
            return int(number)
        return float(number)

    if kind is ValueKind.BOOLEAN:
        text = str(raw).strip().lower()
        if text in _TRUE_LITERALS:
            return True
        if text in _FALSE_LITERALS:
            return False
        return None

    if kind is ValueKind.DATE:
        return parse_datetime(raw)

    if kind is ValueKind.STRING:
        return to_text(raw)

    return None
