"""Column type mapping and schema validation for measurement tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from models.errors import InvalidSchema
from models.measurements import SURROGATE_KEY


@dataclass(frozen=True, slots=True)
class ColumnType:
    concrete: str
    temporal: bool = False


_TYPE_MAP = {
    "string": ColumnType("TEXT"),
    "number": ColumnType("REAL"),
    "float": ColumnType("REAL"),
    "integer": ColumnType("INTEGER"),
    "date": ColumnType("DATE", temporal=True),
    "datetime": ColumnType("DATETIME", temporal=True),
}
_FALLBACK = ColumnType("TEXT")

TEMPORAL_TYPES = frozenset({"date", "datetime"})


def map_type(token: str) -> ColumnType:
    """Map an abstract column type name onto its storage type.

    Unknown tokens fall back to ``TEXT`` rather than raising.
    """
    return _TYPE_MAP.get(str(token).strip().lower(), _FALLBACK)


def is_temporal_type(type_name: Optional[str]) -> bool:
    """True for ``date``/``datetime`` given as abstract or storage type names."""
    if not type_name:
        return False
    return str(type_name).strip().lower() in TEMPORAL_TYPES


def temporal_columns(schema: Mapping[str, str]) -> List[str]:
    return [name for name, token in schema.items() if map_type(token).temporal]


def validate_schema(schema: Mapping[str, str]) -> str:
    """Check the one-temporal-column rule and return the temporal column name."""
    if not isinstance(schema, Mapping) or not schema:
        raise InvalidSchema("Schema must map at least one column name to a type.")

    for name, token in schema.items():
        if not isinstance(name, str) or not name.strip():
            raise InvalidSchema("Column names must be non-empty strings.")
        if name.lower() == SURROGATE_KEY:
            raise InvalidSchema(
                f"Column name {name!r} is reserved for the surrogate key."
            )
        if not isinstance(token, str):
            raise InvalidSchema(f"Type of column {name!r} must be a string.")

    temporal = temporal_columns(schema)
    if len(temporal) != 1:
        raise InvalidSchema(
            "Table must contain exactly one date or datetime column, "
            f"found {len(temporal)}."
        )
    return temporal[0]


def find_temporal_column(columns: Iterable[object]) -> Optional[str]:
    """Pick the single temporal column out of live column metadata.

    Returns ``None`` when there is not exactly one.
    """
    matches = [
        column.name  # type: ignore[attr-defined]
        for column in columns
        if is_temporal_type(getattr(column, "type", None))
    ]
    if len(matches) != 1:
        return None
    return matches[0]
