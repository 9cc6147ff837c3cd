"""Storage collaborator contract used by the measurement services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence


class StoreError(Exception):
    """Raised by a store for any failure it reports."""


class TableExistsError(StoreError):
    pass


class ConstraintViolation(StoreError):
    pass


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    name: str
    type: str
    primary_key: bool = False


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    name: str
    type: str


class MeasurementStore(Protocol):
    def table_exists(self, name: str) -> bool: ...

    def create_table(
        self,
        name: str,
        columns: Sequence[ColumnSpec],
        unique: Sequence[str] = (),
        indexes: Sequence[str] = (),
    ) -> None: ...

    def list_columns(self, name: str) -> List[ColumnInfo]: ...

    def insert_rows(self, name: str, records: Sequence[Mapping[str, Any]]) -> int: ...

    def select_range(
        self,
        name: str,
        column: str,
        lower: Optional[str],
        upper: Optional[str],
        inclusive_lower: bool = True,
        inclusive_upper: bool = True,
    ) -> List[Dict[str, Any]]: ...

    def select_latest(
        self, name: str, column: str, limit: int = 1
    ) -> List[Dict[str, Any]]: ...

    def put_model(self, record: Mapping[str, Any]) -> None: ...

    def get_model(self, table_name: str) -> Optional[Dict[str, Any]]: ...

    def list_models(self) -> List[Dict[str, Any]]: ...
