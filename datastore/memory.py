from __future__ import annotations
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Sequence

from datastore.base import (
    ColumnInfo,
    ColumnSpec,
    ConstraintViolation,
    StoreError,
    TableExistsError,
)


def _apply_affinity(column_type: str, value: Any) -> Any:
    """Coerce textual numbers the way a SQL column affinity would."""
    if not isinstance(value, str):
        return value
    candidate = value.strip()
    upper = column_type.upper()
    try:
        if upper == "INTEGER":
            return int(candidate)
        if upper == "REAL":
            return float(candidate)
    except ValueError:
        return value
    return value


@dataclass
class _MemoryTable:
    columns: List[ColumnSpec]
    unique: List[str] = field(default_factory=list)
    indexes: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    next_id: int = 1

    @property
    def primary_key(self) -> Optional[str]:
        for column in self.columns:
            if column.primary_key:
                return column.name
        return None

    def column_type(self, name: str) -> Optional[str]:
        for column in self.columns:
            if column.name == name:
                return column.type
        return None


class MockMeasurementStore:
    """In-memory measurement store with optional JSON persistence."""

    def __init__(self, name: str = "measurements", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._tables: Dict[str, _MemoryTable] = {}
        self._models: Dict[str, Dict[str, Any]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def table_exists(self, name: str) -> bool:
        with self._lock:
            return name in self._tables

    def create_table(
        self,
        name: str,
        columns: Sequence[ColumnSpec],
        unique: Sequence[str] = (),
        indexes: Sequence[str] = (),
    ) -> None:
        with self._lock:
            if name in self._tables:
                raise TableExistsError(f"Table {name!r} already exists.")
            known = {column.name for column in columns}
            for column_name in [*unique, *indexes]:
                if column_name not in known:
                    raise StoreError(f"Unknown column {column_name!r} for table {name!r}.")
            self._tables[name] = _MemoryTable(
                columns=list(columns), unique=list(unique), indexes=list(indexes)
            )
            self._persist()

    def list_columns(self, name: str) -> List[ColumnInfo]:
        with self._lock:
            table = self._tables.get(name)
            if table is None:
                return []
            return [ColumnInfo(name=column.name, type=column.type) for column in table.columns]

    def insert_rows(self, name: str, records: Sequence[Mapping[str, Any]]) -> int:
        with self._lock:
            table = self._require(name)
            known = {column.name for column in table.columns}
            prepared: List[Dict[str, Any]] = []
            for record in records:
                unknown = sorted(set(record) - known)
                if unknown:
                    raise StoreError(
                        f"Table {name!r} has no column(s) named {', '.join(unknown)}."
                    )
                prepared.append(
                    {
                        key: _apply_affinity(table.column_type(key) or "", value)
                        for key, value in record.items()
                    }
                )

            for column_name in table.unique:
                seen = {row.get(column_name) for row in table.rows}
                seen.discard(None)
                for row in prepared:
                    value = row.get(column_name)
                    if value is None:
                        continue
                    if value in seen:
                        raise ConstraintViolation(
                            f"Duplicate entry {value!r} for unique column {column_name!r}."
                        )
                    seen.add(value)

            primary_key = table.primary_key
            for row in prepared:
                stored = {column.name: None for column in table.columns}
                stored.update(row)
                if primary_key is not None:
                    stored[primary_key] = table.next_id
                    table.next_id += 1
                table.rows.append(stored)
            self._persist()
            return len(prepared)

    def select_range(
        self,
        name: str,
        column: str,
        lower: Optional[str],
        upper: Optional[str],
        inclusive_lower: bool = True,
        inclusive_upper: bool = True,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            table = self._require(name)
            selected = []
            for row in table.rows:
                value = row.get(column)
                if value is None:
                    continue
                key = str(value)
                if lower is not None and (key < lower if inclusive_lower else key <= lower):
                    continue
                if upper is not None and (key > upper if inclusive_upper else key >= upper):
                    continue
                selected.append(dict(row))
        return sorted(selected, key=lambda row: str(row[column]))

    def select_latest(self, name: str, column: str, limit: int = 1) -> List[Dict[str, Any]]:
        with self._lock:
            table = self._require(name)
            candidates = [dict(row) for row in table.rows if row.get(column) is not None]
        candidates.sort(key=lambda row: str(row[column]), reverse=True)
        return candidates[:limit]

    def put_model(self, record: Mapping[str, Any]) -> None:
        with self._lock:
            self._models[record["sensor_table_name"]] = json.loads(json.dumps(record))
            self._persist()

    def get_model(self, table_name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._models.get(table_name)
            return json.loads(json.dumps(record)) if record is not None else None

    def list_models(self) -> List[Dict[str, Any]]:
        """Return copies of all registered model records."""

        with self._lock:
            return [json.loads(json.dumps(record)) for record in self._models.values()]

    def _require(self, name: str) -> _MemoryTable:
        table = self._tables.get(name)
        if table is None:
            raise StoreError(f"Table {name!r} does not exist.")
        return table

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "tables": {
                name: {
                    "columns": [asdict(column) for column in table.columns],
                    "unique": table.unique,
                    "indexes": table.indexes,
                    "rows": table.rows,
                    "next_id": table.next_id,
                }
                for name, table in self._tables.items()
            },
            "models": self._models,
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for name, payload in data.get("tables", {}).items():
            self._tables[name] = _MemoryTable(
                columns=[ColumnSpec(**column) for column in payload["columns"]],
                unique=list(payload.get("unique", [])),
                indexes=list(payload.get("indexes", [])),
                rows=list(payload.get("rows", [])),
                next_id=int(payload.get("next_id", 1)),
            )
        self._models.update(data.get("models", {}))
