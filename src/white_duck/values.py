"""
Tagged engine values and their normalization to JSON-safe transport values.

The engine adapter converts every DuckDB result cell into a ``Value`` once,
via ``to_value``. Everything downstream works on the tag, never on the
Python type of the original cell. ``normalize`` turns a ``Value`` into one of:
None, bool, finite int/float, str (ISO-8601 UTC for timestamps), or a
list/dict of those.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Tuple
from uuid import UUID
import base64
import math

# Largest integer a double represents exactly (2**53 - 1)
MAX_SAFE_INTEGER = 9007199254740991


class ValueKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    TEXT = "text"
    TIMESTAMP = "timestamp"
    ARRAY = "array"
    STRUCT = "struct"


@dataclass(frozen=True)
class Value:
    """One engine value tagged with its kind.

    ``payload`` is None for NULL, bool/int/float/str for scalars, an aware
    UTC datetime for TIMESTAMP, a tuple of Values for ARRAY and a tuple of
    (key, Value) pairs for STRUCT.
    """

    kind: ValueKind
    payload: Any = None


NULL = Value(ValueKind.NULL)


def to_value(raw: Any) -> Value:
    """Convert a DuckDB Python result object into a tagged Value."""
    if raw is None:
        return NULL
    # bool before int: bool is an int subclass
    if isinstance(raw, bool):
        return Value(ValueKind.BOOL, raw)
    if isinstance(raw, int):
        return Value(ValueKind.INT, raw)
    if isinstance(raw, float):
        return Value(ValueKind.FLOAT, raw)
    if isinstance(raw, Decimal):
        return Value(ValueKind.FLOAT, float(raw))
    if isinstance(raw, str):
        return Value(ValueKind.TEXT, raw)
    if isinstance(raw, datetime):
        if raw.tzinfo is None:
            raw = raw.replace(tzinfo=timezone.utc)
        return Value(ValueKind.TIMESTAMP, raw.astimezone(timezone.utc))
    if isinstance(raw, date):
        return Value(ValueKind.TIMESTAMP, datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc))
    if isinstance(raw, time):
        return Value(ValueKind.TEXT, raw.isoformat())
    if isinstance(raw, timedelta):
        return Value(ValueKind.TEXT, str(raw))
    if isinstance(raw, UUID):
        return Value(ValueKind.TEXT, str(raw))
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return Value(ValueKind.TEXT, base64.b64encode(bytes(raw)).decode("ascii"))
    if isinstance(raw, (list, tuple)):
        return Value(ValueKind.ARRAY, tuple(to_value(item) for item in raw))
    if isinstance(raw, dict):
        return Value(ValueKind.STRUCT, tuple((str(k), to_value(v)) for k, v in raw.items()))
    # Anything else DuckDB may hand back (e.g. numpy scalars) goes out as text
    return Value(ValueKind.TEXT, str(raw))


def _normalize_int(payload: int):
    if -MAX_SAFE_INTEGER <= payload <= MAX_SAFE_INTEGER:
        return payload
    # Lossy beyond 2**53, same as a JSON number read by a double-based client
    return float(payload)


def _normalize_float(payload: float):
    if math.isfinite(payload):
        return payload
    return None


def _normalize_timestamp(payload: datetime) -> str:
    return payload.astimezone(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


def _normalize_array(payload: Tuple[Value, ...]) -> list:
    return [normalize(item) for item in payload]


def _normalize_struct(payload: Tuple[Tuple[str, Value], ...]) -> dict:
    return {key: normalize(item) for key, item in payload}


_NORMALIZERS: Dict[ValueKind, Callable[[Any], Any]] = {
    ValueKind.NULL: lambda payload: None,
    ValueKind.BOOL: bool,
    ValueKind.INT: _normalize_int,
    ValueKind.FLOAT: _normalize_float,
    ValueKind.TEXT: str,
    ValueKind.TIMESTAMP: _normalize_timestamp,
    ValueKind.ARRAY: _normalize_array,
    ValueKind.STRUCT: _normalize_struct,
}


def normalize(value: Value) -> Any:
    """Normalize a tagged value into the transport-safe type set."""
    return _NORMALIZERS[value.kind](value.payload)


def normalize_raw(raw: Any) -> Any:
    """Shortcut: tag a raw engine object and normalize it."""
    return normalize(to_value(raw))


def json_type_name(normalized: Any) -> str:
    """Name of the JSON type of an already-normalized value."""
    if normalized is None:
        return "null"
    if isinstance(normalized, bool):
        return "boolean"
    if isinstance(normalized, (int, float)):
        return "number"
    if isinstance(normalized, str):
        return "string"
    if isinstance(normalized, list):
        return "array"
    return "object"
