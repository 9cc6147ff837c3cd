"""Unit tests for column type mapping and schema validation."""

from __future__ import annotations

import pytest

from datastore.base import ColumnInfo
from models.errors import InvalidSchema
from services.schema import find_temporal_column, is_temporal_type, map_type, validate_schema


@pytest.mark.parametrize(
    ("token", "concrete", "temporal"),
    [
        ("string", "TEXT", False),
        ("Number", "REAL", False),
        ("float", "REAL", False),
        ("INTEGER", "INTEGER", False),
        ("date", "DATE", True),
        ("DateTime", "DATETIME", True),
        ("boolean", "TEXT", False),
        ("", "TEXT", False),
    ],
)
def test_map_type(token: str, concrete: str, temporal: bool) -> None:
    column_type = map_type(token)

    assert column_type.concrete == concrete
    assert column_type.temporal is temporal


def test_is_temporal_type_accepts_abstract_and_storage_names() -> None:
    assert is_temporal_type("datetime")
    assert is_temporal_type("DATE")
    assert not is_temporal_type("REAL")
    assert not is_temporal_type(None)


def test_validate_schema_returns_temporal_column() -> None:
    schema = {"temp": "float", "humidity": "float", "ts": "datetime"}

    assert validate_schema(schema) == "ts"


def test_validate_schema_accepts_single_date_column() -> None:
    assert validate_schema({"day": "date", "pm25": "number"}) == "day"


@pytest.mark.parametrize(
    "schema",
    [
        {"temp": "float"},
        {"ts": "datetime", "day": "date"},
        {"a": "date", "b": "date", "c": "date"},
    ],
)
def test_validate_schema_rejects_wrong_temporal_count(schema) -> None:
    with pytest.raises(InvalidSchema) as excinfo:
        validate_schema(schema)

    assert "exactly one date or datetime column" in str(excinfo.value)


def test_validate_schema_rejects_reserved_and_empty_names() -> None:
    with pytest.raises(InvalidSchema):
        validate_schema({"id": "integer", "ts": "datetime"})
    with pytest.raises(InvalidSchema):
        validate_schema({" ": "float", "ts": "datetime"})
    with pytest.raises(InvalidSchema):
        validate_schema({})


def test_validate_schema_is_repeatable() -> None:
    schema = {"ts": "datetime", "value": "float"}

    assert validate_schema(schema) == validate_schema(schema) == "ts"
    assert schema == {"ts": "datetime", "value": "float"}


def test_find_temporal_column_from_live_metadata() -> None:
    columns = [
        ColumnInfo(name="id", type="INTEGER"),
        ColumnInfo(name="value", type="REAL"),
        ColumnInfo(name="ts", type="DATETIME"),
    ]

    assert find_temporal_column(columns) == "ts"
    assert find_temporal_column(columns[:2]) is None
    assert find_temporal_column([*columns, ColumnInfo(name="day", type="DATE")]) is None
