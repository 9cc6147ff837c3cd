"""Request/response operations over registered measurement tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional, TextIO

from datastore.base import ConstraintViolation, MeasurementStore, StoreError
from datastore.factory import build_default_store
from models.errors import (
    DuplicateTimestamp,
    EmptyBatch,
    InvalidSchema,
    InvalidTargetCount,
    StorageFailure,
    TableNotFound,
    ValidationError,
)
from models.measurements import SURROGATE_KEY, MeasurementModel, TableIdentity
from services.downsampler import Downsampler
from services.export import to_delimited_text
from services.normalizer import normalize, read_delimited_records
from services.query import BoundsMode, QueryResult, QueryStatus, last_row, range_query, resolve_table
from services.registry import ModelRegistry, Registration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CsvExport:
    result: QueryResult
    content: str

    @property
    def filename(self) -> str:
        return f"{self.result.table_name}.csv"


def _check_target_count(target_count: Optional[int]) -> None:
    if target_count is None:
        return
    if isinstance(target_count, bool) or not isinstance(target_count, int) or target_count < 1:
        raise InvalidTargetCount(target_count)


class ReadingsService:
    """Coordinates the registry, ingestion checks, queries and downsampling."""

    def __init__(
        self,
        store: MeasurementStore,
        registry: ModelRegistry,
        downsampler: Downsampler,
    ) -> None:
        self.store = store
        self.registry = registry
        self.downsampler = downsampler

    def register_model(self, identity: TableIdentity, schema: Mapping[str, str]) -> Registration:
        return self.registry.register(identity, schema)

    def list_models(self) -> List[MeasurementModel]:
        return self.registry.list_all()

    def list_sensor_models(self, sensor_brand: str, sensor_id: str) -> List[MeasurementModel]:
        return self.registry.list_for_sensor(sensor_brand, sensor_id)

    def describe_schema(self, identity: TableIdentity) -> Dict[str, str]:
        """Return the live column types of the identity's table."""
        table_name = identity.table_name
        try:
            if not self.store.table_exists(table_name):
                raise TableNotFound(table_name)
            columns = self.store.list_columns(table_name)
        except StoreError as exc:
            raise StorageFailure("column lookup", table_name, str(exc)) from exc
        return {
            column.name: column.type
            for column in columns
            if column.name != SURROGATE_KEY
        }

    def ingest_records(self, identity: TableIdentity, records: Iterable[Mapping[str, Any]]) -> int:
        """Validate and append a structured batch; returns rows inserted."""
        return self._ingest(identity, records, source="json")

    def ingest_csv(self, identity: TableIdentity, stream: TextIO) -> int:
        """Validate and append the rows of an uploaded CSV file."""
        table_name = identity.table_name
        try:
            records = read_delimited_records(stream)
        except ValidationError as exc:
            logger.warning(
                "Rejected CSV upload",
                extra={"table_name": table_name, "reason": str(exc)},
            )
            raise
        return self._ingest(identity, records, source="csv")

    def fetch_readings(
        self,
        identity: TableIdentity,
        start: Any = None,
        end: Any = None,
        target_count: Optional[int] = None,
    ) -> QueryResult:
        """Readings strictly between ``start`` and ``end``."""
        _check_target_count(target_count)
        result = range_query(
            self.store, identity.table_name, start, end, bounds=BoundsMode.exclusive
        )
        return self._reduce(result, target_count)

    def export_readings(
        self,
        identity: TableIdentity,
        start: Any = None,
        end: Any = None,
        target_count: Optional[int] = None,
    ) -> CsvExport:
        """Readings between ``start`` and ``end`` inclusive, rendered as CSV."""
        _check_target_count(target_count)
        result = range_query(
            self.store, identity.table_name, start, end, bounds=BoundsMode.inclusive
        )
        result = self._reduce(result, target_count)
        return CsvExport(result=result, content=to_delimited_text(result.rows, result.columns))

    def download_all(self, identity: TableIdentity) -> CsvExport:
        return self.export_readings(identity)

    def latest_reading(self, identity: TableIdentity) -> QueryResult:
        return last_row(self.store, identity.table_name)

    def _reduce(self, result: QueryResult, target_count: Optional[int]) -> QueryResult:
        if target_count is None or result.temporal_column is None or not result.rows:
            return result
        result.rows = self.downsampler.downsample(
            result.rows, result.temporal_column, target_count
        )
        logger.debug(
            "Downsampled range query",
            extra={
                "table_name": result.table_name,
                "target_count": target_count,
                "row_count": len(result.rows),
            },
        )
        return result

    def _ingest(
        self,
        identity: TableIdentity,
        records: Iterable[Mapping[str, Any]],
        source: str,
    ) -> int:
        table_name = identity.table_name
        status, columns, temporal_column = resolve_table(self.store, table_name)
        if status is QueryStatus.missing_table:
            raise TableNotFound(table_name)
        if temporal_column is None:
            raise InvalidSchema(
                f"Table {table_name!r} is missing a single date or datetime column."
            )

        try:
            normalized = normalize(columns, temporal_column, records)
            if not normalized:
                raise EmptyBatch(f"No valid data found in the {source.upper()} payload.")
        except ValidationError as exc:
            logger.warning(
                "Rejected %s batch",
                source,
                extra={
                    "table_name": table_name,
                    "record_index": getattr(exc, "record_index", None),
                    "reason": str(exc),
                },
            )
            raise

        try:
            inserted = self.store.insert_rows(table_name, normalized)
        except ConstraintViolation as exc:
            logger.warning(
                "Duplicate timestamp in %s batch",
                source,
                extra={"table_name": table_name, "column": temporal_column, "reason": str(exc)},
            )
            raise DuplicateTimestamp(table_name, str(exc)) from exc
        except StoreError as exc:
            raise StorageFailure("insert", table_name, str(exc)) from exc

        logger.info(
            "Ingested %s batch",
            source,
            extra={"table_name": table_name, "row_count": inserted},
        )
        return inserted


@lru_cache
def build_default_service() -> ReadingsService:
    """Factory that wires the service with the configured store."""
    store = build_default_store()
    return ReadingsService(store=store, registry=ModelRegistry(store), downsampler=Downsampler())
