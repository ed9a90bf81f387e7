"""
Tolerant conversion of decoded wire values into column-ready Python values.
Every converter returns None instead of raising: a value that cannot be coerced
becomes NULL, and the validator decides whether that makes the record malformed.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable


class FieldType(str, Enum):
    STRING = "string"
    DECIMAL = "decimal"
    FLOAT = "float"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"          # epoch milliseconds
    EPOCH_SECONDS = "epoch_seconds"


_TRUE = {"true", "1"}
_FALSE = {"false", "0"}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        text = str(value).strip()
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


def to_float(value: Any) -> float | None:
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    number = to_decimal(value)
    return float(number) if number is not None else None


def to_int(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = to_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        number = to_decimal(value)
        return None if number is None else number != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    return None


def to_string(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, (int, float, Decimal, bool)):
        return str(value)
    return None


def _from_epoch(value: Any, unit: str) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    epoch = to_int(value)
    if epoch is None:
        return None
    try:
        return _EPOCH + timedelta(**{unit: epoch})
    except OverflowError:
        return None


def to_timestamp(value: Any) -> datetime | None:
    """Epoch milliseconds (or an already typed datetime) to an aware UTC datetime."""
    return _from_epoch(value, "milliseconds")


def to_timestamp_from_seconds(value: Any) -> datetime | None:
    return _from_epoch(value, "seconds")


_CONVERTERS: dict[FieldType, Callable[[Any], Any]] = {
    FieldType.STRING: to_string,
    FieldType.DECIMAL: to_decimal,
    FieldType.FLOAT: to_float,
    FieldType.INTEGER: to_int,
    FieldType.BOOLEAN: to_bool,
    FieldType.TIMESTAMP: to_timestamp,
    FieldType.EPOCH_SECONDS: to_timestamp_from_seconds,
}


def coerce(value: Any, field_type: FieldType) -> Any:
    return _CONVERTERS[field_type](value)
