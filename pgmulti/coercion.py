"""Lossy conversion of driver values into display text.

Every column value ends up as a string. SQL NULL and any value that does not
match its declared column type both collapse to :data:`NULL_TOKEN`; geometry
payloads that cannot be parsed become :data:`GEOMETRY_INVALID` instead so a
corrupt value can be told apart from a missing one.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Callable

import numpy
import shapely
from shapely.errors import ShapelyError

NULL_TOKEN = "NULL"
GEOMETRY_INVALID = "GEOMETRY_INVALID"


class ColumnKind(str, Enum):
    """Normalized column families with dedicated coercion rules."""

    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    GEOMETRY = "geometry"
    TEXT = "text"


_INTEGER_BOUNDS: dict[str, tuple[int, int]] = {
    "int2": (-(2**15), 2**15 - 1),
    "int4": (-(2**31), 2**31 - 1),
    "int8": (-(2**63), 2**63 - 1),
}

# Checked in order; TEXT is the catch-all.
_KIND_RULES: tuple[tuple[ColumnKind, frozenset[str]], ...] = (
    (ColumnKind.INTEGER, frozenset(_INTEGER_BOUNDS)),
    (ColumnKind.DECIMAL, frozenset({"numeric"})),
    (ColumnKind.FLOAT, frozenset({"float4", "float8"})),
    (ColumnKind.GEOMETRY, frozenset({"geometry"})),
)


def classify(type_name: str) -> ColumnKind:
    """Map a PostgreSQL type name to its coercion family."""

    name = (type_name or "").strip().lower()
    for kind, names in _KIND_RULES:
        if name in names:
            return kind
    return ColumnKind.TEXT


def coerce_value(type_name: str, value: object) -> str:
    """Render ``value`` from a column declared as ``type_name``."""

    kind = classify(type_name)
    if value is None:
        return NULL_TOKEN
    try:
        return _COERCERS[kind](type_name.strip().lower(), value)
    except Exception:  # pragma: no cover - last line of defence, coercion never raises
        return NULL_TOKEN


def _coerce_integer(type_name: str, value: object) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        return NULL_TOKEN
    low, high = _INTEGER_BOUNDS[type_name]
    if not low <= value <= high:
        return NULL_TOKEN
    return str(value)


def _coerce_decimal(type_name: str, value: object) -> str:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return str(Decimal(value))
    return NULL_TOKEN


def _coerce_float(type_name: str, value: object) -> str:
    if not isinstance(value, float):
        return NULL_TOKEN
    if type_name == "float4":
        # Shortest text that round-trips through single precision.
        return str(numpy.float32(value))
    return str(value)


def _coerce_geometry(type_name: str, value: object) -> str:
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, str):
        try:
            value = bytes.fromhex(value.strip())
        except ValueError:
            return GEOMETRY_INVALID
    if not isinstance(value, (bytes, bytearray)):
        return NULL_TOKEN
    try:
        geometry = shapely.from_wkb(bytes(value))
    except (ShapelyError, ValueError, TypeError):
        return GEOMETRY_INVALID
    if geometry is None:
        return GEOMETRY_INVALID
    srid = shapely.get_srid(geometry)
    if srid:
        return f"SRID={srid};{geometry.wkt}"
    return geometry.wkt


def _coerce_text(type_name: str, value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return NULL_TOKEN
    return NULL_TOKEN


_COERCERS: dict[ColumnKind, Callable[[str, object], str]] = {
    ColumnKind.INTEGER: _coerce_integer,
    ColumnKind.DECIMAL: _coerce_decimal,
    ColumnKind.FLOAT: _coerce_float,
    ColumnKind.GEOMETRY: _coerce_geometry,
    ColumnKind.TEXT: _coerce_text,
}


__all__ = ["ColumnKind", "GEOMETRY_INVALID", "NULL_TOKEN", "classify", "coerce_value"]
