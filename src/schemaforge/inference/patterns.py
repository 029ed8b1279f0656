"""
Value patterns used by type inference
"""
from __future__ import annotations

import json
import re
from datetime import date, datetime
from enum import Enum
from typing import Optional

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)
INTEGER_PATTERN = re.compile(r"^-?\d+$")
DECIMAL_PATTERN = re.compile(r"^-?\d*\.\d+$")
DATE_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}[T\s]\d{2}:\d{2}(:\d{2}(\.\d+)?)?")
TZ_SUFFIX_PATTERN = re.compile(r"(Z|[+-]\d{2}(:?\d{2})?)$", re.IGNORECASE)
JSON_PATTERN = re.compile(r"^[\[\{].*[\]\}]$", re.DOTALL)

BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no", "y", "n", "t", "f", "1", "0"})

# Non-ISO date layouts accepted as DATE
DATE_FORMATS = ("%m/%d/%Y", "%d.%m.%Y", "%Y/%m/%d", "%d-%b-%Y", "%b %d, %Y")

EMAIL_CHECK = r"~* '^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$'"
URL_CHECK = r"~* '^https?://'"

SMALLINT_RANGE = (-32768, 32767)
INTEGER_RANGE = (-2147483648, 2147483647)
BIGINT_RANGE = (-9223372036854775808, 9223372036854775807)


class ValueFormat(str, Enum):
    """Format of a single raw value"""
    UUID = "uuid"
    EMAIL = "email"
    URL = "url"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    TIMESTAMPTZ = "timestamptz"
    JSON = "json"
    TEXT = "text"


def is_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value))


def is_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def is_url(value: str) -> bool:
    return bool(URL_PATTERN.match(value))


def is_integer(value: str) -> bool:
    return bool(INTEGER_PATTERN.match(value))


def is_decimal(value: str) -> bool:
    return bool(DECIMAL_PATTERN.match(value))


def is_boolean(value: str) -> bool:
    return value.lower() in BOOLEAN_TOKENS


def is_json(value: str) -> bool:
    if not JSON_PATTERN.match(value):
        return False
    try:
        json.loads(value)
    except ValueError:
        return False
    return True


def temporal_format(value: str) -> Optional[ValueFormat]:
    """Classify a date/time literal, or None if it does not parse"""
    if DATE_ISO_PATTERN.match(value):
        try:
            date.fromisoformat(value)
        except ValueError:
            return None
        return ValueFormat.DATE

    if DATETIME_ISO_PATTERN.match(value):
        normalized = value.replace(" ", "T", 1)
        if normalized[-1:] in ("Z", "z"):
            normalized = normalized[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
        if parsed.tzinfo is not None or TZ_SUFFIX_PATTERN.search(value[10:]):
            return ValueFormat.TIMESTAMPTZ
        return ValueFormat.TIMESTAMP

    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
        except ValueError:
            continue
        return ValueFormat.DATE

    return None


def classify_value(value: str) -> ValueFormat:
    """Format of one value, using the same priority order as column inference"""
    if is_uuid(value):
        return ValueFormat.UUID
    if is_email(value):
        return ValueFormat.EMAIL
    if is_url(value):
        return ValueFormat.URL
    if is_integer(value):
        return ValueFormat.INTEGER
    if is_decimal(value):
        return ValueFormat.DECIMAL
    if is_boolean(value):
        return ValueFormat.BOOLEAN
    temporal = temporal_format(value)
    if temporal is not None:
        return temporal
    if is_json(value):
        return ValueFormat.JSON
    return ValueFormat.TEXT


def digit_counts(value: str):
    """(integer digits, fractional digits) of a numeric literal"""
    unsigned = value.lstrip("-")
    whole, _, fraction = unsigned.partition(".")
    whole = whole.lstrip("0")
    return len(whole), len(fraction)
