import io
import logging

import pytest

from datastore.base import ConstraintViolation, StoreError
from datastore.memory import MockMeasurementStore
from datastore.sqlite import SQLiteMeasurementStore
from models.errors import (
    DuplicateTimestamp,
    EmptyBatch,
    InvalidTargetCount,
    MalformedTimestamp,
    SchemaMismatch,
    StorageFailure,
    TableNotFound,
)
from models.measurements import MeasurementType, TableIdentity, TimeInterval
from services.downsampler import Downsampler
from services.query import QueryStatus
from services.readings import ReadingsService
from services.registry import ModelRegistry

SCHEMA = {"temp": "float", "humidity": "float", "ts": "datetime"}
IDENTITY = TableIdentity("vaisala", "HMP-1", MeasurementType.RAW, TimeInterval.HOURLY)


def _service(store) -> ReadingsService:
    return ReadingsService(store=store, registry=ModelRegistry(store), downsampler=Downsampler())


@pytest.fixture(params=["memory", "sqlite"])
def service(request, tmp_path) -> ReadingsService:
    if request.param == "memory":
        store = MockMeasurementStore()
    else:
        store = SQLiteMeasurementStore(tmp_path / "measurements.db")
    svc = _service(store)
    svc.register_model(IDENTITY, SCHEMA)
    return svc


def _hourly_records(count: int) -> list[dict]:
    return [
        {"temp": 20.0 + index / 2, "humidity": 40.0 + index, "ts": f"2024-03-05T{index:02d}:00:00Z"}
        for index in range(count)
    ]


def test_ingest_then_downsample_end_to_end(service: ReadingsService) -> None:
    assert service.ingest_records(IDENTITY, _hourly_records(10)) == 10

    result = service.fetch_readings(IDENTITY, target_count=2)

    assert result.status is QueryStatus.ok
    assert result.rows == [
        {"temp": 21.0, "humidity": 42.0, "ts": "2024-03-05 02:00:00"},
        {"temp": 23.5, "humidity": 47.0, "ts": "2024-03-05 07:00:00"},
    ]

    raw = service.fetch_readings(IDENTITY)
    assert Downsampler().downsample(raw.rows, "ts", 2) == result.rows


def test_fetch_is_exclusive_and_export_is_inclusive(service: ReadingsService) -> None:
    service.ingest_records(IDENTITY, _hourly_records(5))

    fetched = service.fetch_readings(IDENTITY, "2024-03-05 01:00:00", "2024-03-05 03:00:00")
    export = service.export_readings(IDENTITY, "2024-03-05 01:00:00", "2024-03-05 03:00:00")

    assert [row["ts"] for row in fetched.rows] == ["2024-03-05 02:00:00"]
    assert [row["ts"] for row in export.result.rows] == [
        "2024-03-05 01:00:00",
        "2024-03-05 02:00:00",
        "2024-03-05 03:00:00",
    ]
    assert export.content.splitlines()[0] == "temp,humidity,ts"
    assert len(export.content.splitlines()) == 4
    assert export.filename == f"{IDENTITY.table_name}.csv"


def test_export_downsamples_when_requested(service: ReadingsService) -> None:
    service.ingest_records(IDENTITY, _hourly_records(10))

    export = service.export_readings(IDENTITY, target_count=3)

    assert export.content.splitlines()[1:] == [
        "20.75,41.5,2024-03-05 01:30:00",
        "22.5,45.0,2024-03-05 05:00:00",
        "24.0,48.0,2024-03-05 08:00:00",
    ]


@pytest.mark.parametrize("target", [0, -1])
def test_invalid_target_count_rejected_before_query(service: ReadingsService, target: int) -> None:
    with pytest.raises(InvalidTargetCount):
        service.fetch_readings(IDENTITY, target_count=target)
    with pytest.raises(InvalidTargetCount):
        service.export_readings(IDENTITY, target_count=target)


def test_ingest_csv_appends_rows(service: ReadingsService) -> None:
    stream = io.StringIO(
        "ts,temp,humidity\n"
        "3/5/2024 14:00:00,21.5,40\n"
        "3/5/2024 15:00:00,22,41\n",
        newline="",
    )

    assert service.ingest_csv(IDENTITY, stream) == 2

    latest = service.latest_reading(IDENTITY)
    assert latest.rows == [{"temp": 22.0, "humidity": 41.0, "ts": "2024-03-05 15:00:00"}]


def test_empty_batches_rejected_on_both_paths(service: ReadingsService) -> None:
    with pytest.raises(EmptyBatch, match="JSON"):
        service.ingest_records(IDENTITY, [])
    with pytest.raises(EmptyBatch, match="CSV"):
        service.ingest_csv(IDENTITY, io.StringIO("temp,humidity,ts\n"))


def test_schema_mismatch_leaves_table_untouched(service: ReadingsService) -> None:
    records = _hourly_records(3)
    records[2] = {"temp": 1.0, "ts": "2024-03-05 09:00:00"}

    with pytest.raises(SchemaMismatch) as excinfo:
        service.ingest_records(IDENTITY, records)

    assert excinfo.value.missing == ("humidity",)
    assert service.fetch_readings(IDENTITY).status is QueryStatus.empty


def test_malformed_timestamp_rejects_batch(service: ReadingsService) -> None:
    records = _hourly_records(2)
    records[1]["ts"] = "someday"

    with pytest.raises(MalformedTimestamp):
        service.ingest_records(IDENTITY, records)
    assert service.fetch_readings(IDENTITY).rows == []


def test_duplicate_timestamp_rejects_batch(service: ReadingsService) -> None:
    service.ingest_records(IDENTITY, _hourly_records(2))

    with pytest.raises(DuplicateTimestamp):
        service.ingest_records(IDENTITY, _hourly_records(3))

    assert len(service.fetch_readings(IDENTITY).rows) == 2


def test_unknown_identity_raises_table_not_found(service: ReadingsService) -> None:
    other = TableIdentity("vaisala", "HMP-2", MeasurementType.RAW, TimeInterval.HOURLY)

    with pytest.raises(TableNotFound, match="does not exist"):
        service.ingest_records(other, _hourly_records(1))
    with pytest.raises(TableNotFound):
        service.describe_schema(other)
    assert service.fetch_readings(other).status is QueryStatus.missing_table


def test_describe_schema_lists_live_columns(service: ReadingsService) -> None:
    assert service.describe_schema(IDENTITY) == {
        "temp": "REAL",
        "humidity": "REAL",
        "ts": "DATETIME",
    }


def test_registry_listing_by_sensor(service: ReadingsService) -> None:
    corrected = TableIdentity(
        "vaisala", "HMP-1", MeasurementType.CORRECTED, TimeInterval.DAILY, "calibrated"
    )
    service.register_model(corrected, {"temp": "float", "day": "date"})
    service.register_model(
        TableIdentity("aeroqual", "AQ-1", MeasurementType.RAW, TimeInterval.OTHER),
        {"pm25": "number", "ts": "datetime"},
    )

    names = [model.table_name for model in service.list_sensor_models("vaisala", "HMP-1")]

    assert names == sorted([IDENTITY.table_name, corrected.table_name])
    assert len(service.list_models()) == 3


def test_ingest_logs_context(service: ReadingsService, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="services.readings"):
        service.ingest_records(IDENTITY, _hourly_records(2))
        with pytest.raises(DuplicateTimestamp):
            service.ingest_records(IDENTITY, _hourly_records(1))

    records = [record for record in caplog.records if record.name == "services.readings"]
    messages = [record.getMessage() for record in records]

    assert "Ingested json batch" in messages
    assert "Duplicate timestamp in json batch" in messages
    assert all(getattr(record, "table_name", None) == IDENTITY.table_name for record in records)
    assert any(getattr(record, "row_count", None) == 2 for record in records)


def test_rejected_csv_is_logged(service: ReadingsService, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="services.readings"):
        with pytest.raises(SchemaMismatch):
            service.ingest_csv(IDENTITY, io.StringIO(""))

    assert any(
        record.getMessage() == "Rejected CSV upload"
        and getattr(record, "table_name", None) == IDENTITY.table_name
        for record in caplog.records
    )


def test_store_failures_are_wrapped(tmp_path) -> None:
    class BrokenInsertStore(MockMeasurementStore):
        def insert_rows(self, name, rows):
            raise StoreError("disk full")

    svc = _service(BrokenInsertStore())
    svc.register_model(IDENTITY, SCHEMA)

    with pytest.raises(StorageFailure) as excinfo:
        svc.ingest_records(IDENTITY, _hourly_records(1))

    assert isinstance(excinfo.value.__cause__, StoreError)
    assert not isinstance(excinfo.value.__cause__, ConstraintViolation)


def test_nested_values_rejected_before_storage(service: ReadingsService) -> None:
    records = _hourly_records(2)
    records[1]["humidity"] = {"value": 41.0}

    with pytest.raises(SchemaMismatch, match="humidity"):
        service.ingest_records(IDENTITY, records)

    assert service.fetch_readings(IDENTITY).status is QueryStatus.empty
