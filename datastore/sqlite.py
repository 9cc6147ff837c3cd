from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from datastore.base import (
    ColumnInfo,
    ColumnSpec,
    ConstraintViolation,
    StoreError,
    TableExistsError,
)

_MODELS_TABLE = "_measurement_models"


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SQLiteMeasurementStore:
    """Measurement store backed by a SQLite database file.

    Every call opens its own connection and closes it before returning, so a
    failed statement never leaks a handle.
    """

    def __init__(self, db_path: str | Path, timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {_MODELS_TABLE} ("
                "sensor_table_name TEXT PRIMARY KEY, payload TEXT NOT NULL)"
            )

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def table_exists(self, name: str) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
            )
            return cur.fetchone() is not None

    def create_table(
        self,
        name: str,
        columns: Sequence[ColumnSpec],
        unique: Sequence[str] = (),
        indexes: Sequence[str] = (),
    ) -> None:
        definitions = []
        for column in columns:
            if column.primary_key:
                definitions.append(
                    f"{quote_identifier(column.name)} INTEGER PRIMARY KEY AUTOINCREMENT"
                )
            else:
                definitions.append(f"{quote_identifier(column.name)} {column.type}")
        for column_name in unique:
            definitions.append(
                f"CONSTRAINT {quote_identifier('uq_' + column_name)} "
                f"UNIQUE ({quote_identifier(column_name)})"
            )

        statements = [f"CREATE TABLE {quote_identifier(name)} ({', '.join(definitions)})"]
        for column_name in indexes:
            statements.append(
                f"CREATE INDEX {quote_identifier(f'ix_{name}_{column_name}')} "
                f"ON {quote_identifier(name)} ({quote_identifier(column_name)})"
            )

        with self._connection() as conn:
            try:
                with conn:
                    for statement in statements:
                        conn.execute(statement)
            except sqlite3.OperationalError as exc:
                if "already exists" in str(exc):
                    raise TableExistsError(f"Table {name!r} already exists.") from exc
                raise StoreError(str(exc)) from exc
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def list_columns(self, name: str) -> List[ColumnInfo]:
        with self._connection() as conn:
            cur = conn.execute(f"PRAGMA table_info({quote_identifier(name)})")
            return [ColumnInfo(name=row["name"], type=row["type"]) for row in cur.fetchall()]

    def insert_rows(self, name: str, records: Sequence[Mapping[str, Any]]) -> int:
        if not records:
            return 0
        with self._connection() as conn:
            try:
                with conn:
                    for record in records:
                        keys = list(record.keys())
                        column_list = ", ".join(quote_identifier(key) for key in keys)
                        placeholders = ", ".join("?" for _ in keys)
                        conn.execute(
                            f"INSERT INTO {quote_identifier(name)} ({column_list}) "
                            f"VALUES ({placeholders})",
                            [record[key] for key in keys],
                        )
            except sqlite3.IntegrityError as exc:
                raise ConstraintViolation(str(exc)) from exc
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc
        return len(records)

    def select_range(
        self,
        name: str,
        column: str,
        lower: Optional[str],
        upper: Optional[str],
        inclusive_lower: bool = True,
        inclusive_upper: bool = True,
    ) -> List[Dict[str, Any]]:
        quoted = quote_identifier(column)
        clauses = [f"{quoted} IS NOT NULL"]
        params: List[Any] = []
        if lower is not None:
            clauses.append(f"{quoted} {'>=' if inclusive_lower else '>'} ?")
            params.append(lower)
        if upper is not None:
            clauses.append(f"{quoted} {'<=' if inclusive_upper else '<'} ?")
            params.append(upper)
        sql = (
            f"SELECT * FROM {quote_identifier(name)} "
            f"WHERE {' AND '.join(clauses)} ORDER BY {quoted} ASC"
        )
        return self._fetch(sql, params)

    def select_latest(self, name: str, column: str, limit: int = 1) -> List[Dict[str, Any]]:
        quoted = quote_identifier(column)
        sql = (
            f"SELECT * FROM {quote_identifier(name)} "
            f"WHERE {quoted} IS NOT NULL ORDER BY {quoted} DESC LIMIT ?"
        )
        return self._fetch(sql, [limit])

    def put_model(self, record: Mapping[str, Any]) -> None:
        with self._connection() as conn:
            try:
                with conn:
                    conn.execute(
                        f"INSERT OR REPLACE INTO {_MODELS_TABLE} "
                        "(sensor_table_name, payload) VALUES (?, ?)",
                        (record["sensor_table_name"], json.dumps(record)),
                    )
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def get_model(self, table_name: str) -> Optional[Dict[str, Any]]:
        rows = self._fetch(
            f"SELECT payload FROM {_MODELS_TABLE} WHERE sensor_table_name = ?",
            [table_name],
        )
        return json.loads(rows[0]["payload"]) if rows else None

    def list_models(self) -> List[Dict[str, Any]]:
        rows = self._fetch(
            f"SELECT payload FROM {_MODELS_TABLE} ORDER BY sensor_table_name", []
        )
        return [json.loads(row["payload"]) for row in rows]

    def _fetch(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        with self._connection() as conn:
            try:
                cur = conn.execute(sql, list(params))
                return [dict(row) for row in cur.fetchall()]
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc
