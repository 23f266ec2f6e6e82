"""Tests for column value coercion."""

from __future__ import annotations

import struct
from decimal import Decimal

import pytest

from pgmulti.coercion import GEOMETRY_INVALID, NULL_TOKEN, ColumnKind, classify, coerce_value

POINT_4326_HEX = "0101000020E6100000000000000000F03F0000000000000040"
POINT_HEX = "0101000000000000000000F03F0000000000000040"


@pytest.mark.parametrize(
    ("type_name", "kind"),
    [
        ("int2", ColumnKind.INTEGER),
        ("INT8", ColumnKind.INTEGER),
        ("numeric", ColumnKind.DECIMAL),
        ("float4", ColumnKind.FLOAT),
        ("geometry", ColumnKind.GEOMETRY),
        ("timestamptz", ColumnKind.TEXT),
        ("", ColumnKind.TEXT),
    ],
)
def test_classify_maps_type_names(type_name: str, kind: ColumnKind) -> None:
    assert classify(type_name) is kind


def test_numeric_families_render_decimal_text() -> None:
    assert coerce_value("int4", 42) == "42"
    assert coerce_value("int8", -9_000_000_000) == "-9000000000"
    assert coerce_value("numeric", Decimal("12.50")) == "12.50"
    assert coerce_value("float8", 1.5) == "1.5"


def test_float4_renders_single_precision_text() -> None:
    # asyncpg widens real columns to a Python float.
    widened = struct.unpack("f", struct.pack("f", 0.1))[0]
    assert widened != 0.1
    assert coerce_value("float4", widened) == "0.1"
    assert coerce_value("float4", 2.5) == "2.5"
    assert coerce_value("float8", 0.1) == "0.1"


def test_null_renders_null_token_for_every_family() -> None:
    for type_name in ("int4", "numeric", "float8", "geometry", "text"):
        assert coerce_value(type_name, None) == NULL_TOKEN


def test_type_mismatch_collapses_to_null() -> None:
    assert coerce_value("int4", "not a number") == NULL_TOKEN
    assert coerce_value("int4", True) == NULL_TOKEN
    assert coerce_value("int2", 70_000) == NULL_TOKEN
    assert coerce_value("float8", Decimal("1.0")) == NULL_TOKEN
    assert coerce_value("numeric", 1.25) == NULL_TOKEN


def test_text_fallback_accepts_only_text() -> None:
    assert coerce_value("varchar", "hello") == "hello"
    assert coerce_value("bytea", b"caf\xc3\xa9") == "café"
    assert coerce_value("bytea", b"\xff\xfe") == NULL_TOKEN
    assert coerce_value("bool", True) == NULL_TOKEN


def test_geometry_decodes_ewkb_with_srid() -> None:
    assert coerce_value("geometry", POINT_4326_HEX) == "SRID=4326;POINT (1 2)"
    assert coerce_value("geometry", bytes.fromhex(POINT_HEX)) == "POINT (1 2)"


def test_corrupt_geometry_is_distinguishable_from_null() -> None:
    assert coerce_value("geometry", b"\x01\x02\x03") == GEOMETRY_INVALID
    assert coerce_value("geometry", "not-hex") == GEOMETRY_INVALID
