from __future__ import annotations

import pytest

from datastore.base import StoreError, TableExistsError
from datastore.memory import MockMeasurementStore
from datastore.sqlite import SQLiteMeasurementStore
from models.errors import InvalidIdentity, InvalidSchema, StorageFailure
from models.measurements import (
    DEFAULT_MEASUREMENT_MODEL,
    MeasurementType,
    TableIdentity,
    TimeInterval,
)
from services.provisioner import ProvisionStatus, provision
from services.registry import ModelRegistry

SCHEMA = {"temp": "float", "humidity": "float", "ts": "datetime"}


def _identity(model: str = "") -> TableIdentity:
    return TableIdentity(
        sensor_brand="purpleair",
        sensor_id="PA-1",
        measurement_type=MeasurementType.RAW,
        measurement_time_interval=TimeInterval.HOURLY,
        measurement_model=model,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MockMeasurementStore()
    return SQLiteMeasurementStore(tmp_path / "measurements.db")


def test_table_name_joins_identity_fields() -> None:
    identity = TableIdentity(
        sensor_brand="clarity",
        sensor_id="A12",
        measurement_type="CORRECTED",
        measurement_time_interval="DAILY",
        measurement_model="epa-v2",
    )

    assert identity.table_name == "clarity_A12_epa-v2_CORRECTED_DAILY"


def test_missing_model_uses_single_sentinel() -> None:
    identity = _identity(model="  ")

    assert identity.measurement_model == DEFAULT_MEASUREMENT_MODEL
    assert identity.table_name == "purpleair_PA-1_RAW-MODEL_RAW_HOURLY"


def test_identity_rejects_bad_values() -> None:
    with pytest.raises(InvalidIdentity):
        TableIdentity("", "PA-1", MeasurementType.RAW, TimeInterval.HOURLY)
    with pytest.raises(InvalidIdentity, match="measurement type"):
        TableIdentity("purpleair", "PA-1", "SMOOTHED", TimeInterval.HOURLY)
    with pytest.raises(InvalidIdentity, match="time interval"):
        TableIdentity("purpleair", "PA-1", MeasurementType.RAW, "WEEKLY")


def test_provision_twice_creates_once(store) -> None:
    first = provision(store, _identity(), SCHEMA)
    second = provision(store, _identity(), SCHEMA)

    assert first.status is ProvisionStatus.created
    assert second.status is ProvisionStatus.already_exists
    assert first.table_name == second.table_name


def test_provision_creates_surrogate_key_and_typed_columns(store) -> None:
    result = provision(store, _identity(), SCHEMA)

    columns = store.list_columns(result.table_name)
    assert [(column.name, column.type) for column in columns] == [
        ("id", "INTEGER"),
        ("temp", "REAL"),
        ("humidity", "REAL"),
        ("ts", "DATETIME"),
    ]


def test_provision_rejects_invalid_schema_without_creating(store) -> None:
    identity = _identity()

    with pytest.raises(InvalidSchema):
        provision(store, identity, {"temp": "float"})

    assert store.table_exists(identity.table_name) is False


def test_existing_table_wins_over_schema_validation(store) -> None:
    provision(store, _identity(), SCHEMA)

    result = provision(store, _identity(), {"temp": "float"})

    assert result.status is ProvisionStatus.already_exists


def test_lost_creation_race_reports_already_exists() -> None:
    class RacingStore(MockMeasurementStore):
        def table_exists(self, name: str) -> bool:
            return False

        def create_table(self, name, columns, unique=(), indexes=()):
            raise TableExistsError(f"Table {name!r} already exists.")

    result = provision(RacingStore(), _identity(), SCHEMA)

    assert result.status is ProvisionStatus.already_exists


def test_store_failure_is_wrapped_with_context() -> None:
    class BrokenStore(MockMeasurementStore):
        def create_table(self, name, columns, unique=(), indexes=()):
            raise StoreError("disk full")

    with pytest.raises(StorageFailure) as excinfo:
        provision(BrokenStore(), _identity(), SCHEMA)

    assert "disk full" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, StoreError)


def test_registry_records_and_lists_models(store) -> None:
    registry = ModelRegistry(store)
    other = TableIdentity("purpleair", "PA-2", MeasurementType.CORRECTED, TimeInterval.DAILY)

    first = registry.register(_identity(), SCHEMA)
    registry.register(other, {"day": "date", "pm25": "number"})
    again = registry.register(_identity(), SCHEMA)

    assert first.result.created
    assert first.model is not None
    assert again.result.status is ProvisionStatus.already_exists
    assert again.model is not None
    assert again.model.schema == SCHEMA

    names = [model.table_name for model in registry.list_all()]
    assert names == sorted([_identity().table_name, other.table_name])
    sensor_models = registry.list_for_sensor("purpleair", "PA-2")
    assert [model.identity for model in sensor_models] == [other]
    assert registry.list_for_sensor("purpleair", "missing") == []


def test_registry_survives_new_store_instance(tmp_path) -> None:
    path = tmp_path / "measurements.db"
    ModelRegistry(SQLiteMeasurementStore(path)).register(_identity(), SCHEMA)

    reopened = ModelRegistry(SQLiteMeasurementStore(path))
    model = reopened.get(_identity())

    assert model is not None
    assert list(model.schema) == ["temp", "humidity", "ts"]


def test_registry_restores_record_lost_after_table_creation(store) -> None:
    class FlakyModelStore:
        """Fails the first model write, then delegates."""

        def __init__(self, inner) -> None:
            self.inner = inner
            self.failures = 1

        def __getattr__(self, name):
            return getattr(self.inner, name)

        def put_model(self, record) -> None:
            if self.failures:
                self.failures -= 1
                raise StoreError("disk full")
            self.inner.put_model(record)

    registry = ModelRegistry(FlakyModelStore(store))

    with pytest.raises(StorageFailure):
        registry.register(_identity(), SCHEMA)
    assert store.table_exists(_identity().table_name)
    assert registry.list_all() == []

    retried = registry.register(_identity(), SCHEMA)

    assert retried.result.status is ProvisionStatus.already_exists
    assert retried.model is not None
    assert retried.model.schema == SCHEMA
    assert [model.table_name for model in registry.list_all()] == [_identity().table_name]


def test_registry_does_not_restore_record_with_different_schema(store) -> None:
    provision(store, _identity(), SCHEMA)
    registry = ModelRegistry(store)

    result = registry.register(_identity(), {"pm25": "float", "ts": "datetime"})

    assert result.result.status is ProvisionStatus.already_exists
    assert result.model is None
    assert registry.list_all() == []
