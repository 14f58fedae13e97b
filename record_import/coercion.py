from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from dateutil import parser as dateparser


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


# Blank receipt numbers stay "" so a generated one can be told apart from an unset field.
BLANK_AS_EMPTY_FIELDS = frozenset({"receipt_number"})

TRUTHY_VALUES = frozenset({"true", "yes", "1"})

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_FLOAT = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
_MONTH_DAY_YEAR = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def blank_value(field_name: str | None) -> str | None:
    return "" if field_name in BLANK_AS_EMPTY_FIELDS else None


def parse_number(raw: str) -> float | None:
    cleaned = _NON_NUMERIC.sub("", raw)
    match = _LEADING_FLOAT.match(cleaned)
    if match is None:
        return None
    return float(match.group(0))


def parse_date(raw: str) -> datetime | None:
    """Parse month/day/year first, then ISO-8601, then anything dateutil understands."""
    text = raw.strip()
    mdy = _MONTH_DAY_YEAR.match(text)
    if mdy:
        # An impossible month/day/year is invalid, never reread day-first.
        month, day, year = (int(part) for part in mdy.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = dateparser.parse(text)
        except (ValueError, OverflowError):
            return None
    try:
        parsed.utcoffset()
    except ValueError:
        return None
    return parsed


def parse_boolean(raw: str) -> bool:
    return raw.strip().lower() in TRUTHY_VALUES


def coerce_value(raw: str | None, field_type: FieldType, field_name: str | None = None) -> Any:
    if raw is None or not raw.strip():
        return blank_value(field_name)

    if field_type is FieldType.NUMBER:
        return parse_number(raw)
    if field_type is FieldType.DATE:
        return parse_date(raw)
    if field_type is FieldType.BOOLEAN:
        return parse_boolean(raw)
    return raw
