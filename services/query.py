"""Range and latest-row queries over provisioned measurement tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from datastore.base import MeasurementStore, StoreError
from models.errors import MalformedTimestamp, StorageFailure
from models.measurements import SURROGATE_KEY, Record
from services.normalizer import normalize_timestamp
from services.schema import find_temporal_column


class BoundsMode(str, Enum):
    """``inclusive`` keeps rows equal to either bound, ``exclusive`` drops them."""

    inclusive = "inclusive"
    exclusive = "exclusive"


class QueryStatus(str, Enum):
    ok = "ok"
    empty = "empty"
    missing_table = "missing_table"
    missing_temporal_column = "missing_temporal_column"


@dataclass
class QueryResult:
    table_name: str
    status: QueryStatus
    temporal_column: Optional[str] = None
    columns: List[str] = field(default_factory=list)
    rows: List[Record] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.status is QueryStatus.ok


def resolve_table(store: MeasurementStore, table_name: str) -> Tuple[QueryStatus, List[str], Optional[str]]:
    """Inspect live column metadata for ``table_name``.

    Returns the status, the data column names in declaration order (surrogate
    key excluded) and the temporal column.
    """
    try:
        if not store.table_exists(table_name):
            return QueryStatus.missing_table, [], None
        columns = store.list_columns(table_name)
    except StoreError as exc:
        raise StorageFailure("column lookup", table_name, str(exc)) from exc

    names = [column.name for column in columns if column.name != SURROGATE_KEY]
    temporal_column = find_temporal_column(columns)
    if temporal_column is None:
        return QueryStatus.missing_temporal_column, names, None
    return QueryStatus.ok, names, temporal_column


def _bound(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        return normalize_timestamp(value)
    except ValueError as exc:
        raise MalformedTimestamp(value) from exc


def _project(rows: List[Dict[str, Any]], columns: List[str]) -> List[Record]:
    return [{name: row.get(name) for name in columns} for row in rows]


def range_query(
    store: MeasurementStore,
    table_name: str,
    start: Any = None,
    end: Any = None,
    bounds: BoundsMode = BoundsMode.inclusive,
) -> QueryResult:
    """Rows between ``start`` and ``end`` ordered ascending by time.

    A missing bound leaves that side open.
    """
    lower = _bound(start)
    upper = _bound(end)

    status, columns, temporal_column = resolve_table(store, table_name)
    if temporal_column is None:
        return QueryResult(table_name=table_name, status=status, columns=columns)

    inclusive = bounds is BoundsMode.inclusive
    try:
        rows = store.select_range(
            table_name,
            temporal_column,
            lower,
            upper,
            inclusive_lower=inclusive,
            inclusive_upper=inclusive,
        )
    except StoreError as exc:
        raise StorageFailure("range query", table_name, str(exc)) from exc

    return QueryResult(
        table_name=table_name,
        status=QueryStatus.ok if rows else QueryStatus.empty,
        temporal_column=temporal_column,
        columns=columns,
        rows=_project(rows, columns),
    )


def last_row(store: MeasurementStore, table_name: str) -> QueryResult:
    status, columns, temporal_column = resolve_table(store, table_name)
    if temporal_column is None:
        return QueryResult(table_name=table_name, status=status, columns=columns)

    try:
        rows = store.select_latest(table_name, temporal_column, limit=1)
    except StoreError as exc:
        raise StorageFailure("latest row query", table_name, str(exc)) from exc

    return QueryResult(
        table_name=table_name,
        status=QueryStatus.ok if rows else QueryStatus.empty,
        temporal_column=temporal_column,
        columns=columns,
        rows=_project(rows, columns),
    )
