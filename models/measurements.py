"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from models.errors import InvalidIdentity

DEFAULT_MEASUREMENT_MODEL = "RAW-MODEL"
SURROGATE_KEY = "id"

Record = Dict[str, Any]


class MeasurementType(str, Enum):
    RAW = "RAW"
    CORRECTED = "CORRECTED"


class TimeInterval(str, Enum):
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    OTHER = "OTHER"


@dataclass(frozen=True, slots=True)
class TableIdentity:
    """The five-field key naming one measurement stream."""

    sensor_brand: str
    sensor_id: str
    measurement_type: MeasurementType
    measurement_time_interval: TimeInterval
    measurement_model: str = DEFAULT_MEASUREMENT_MODEL

    def __post_init__(self) -> None:
        for name in ("sensor_brand", "sensor_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidIdentity(f"{name} is required.")
        model = (self.measurement_model or "").strip() or DEFAULT_MEASUREMENT_MODEL
        object.__setattr__(self, "measurement_model", model)
        try:
            object.__setattr__(
                self, "measurement_type", MeasurementType(self.measurement_type)
            )
        except ValueError as exc:
            allowed = ", ".join(member.value for member in MeasurementType)
            raise InvalidIdentity(
                f"Invalid measurement type. Allowed values are: {allowed}."
            ) from exc
        try:
            object.__setattr__(
                self,
                "measurement_time_interval",
                TimeInterval(self.measurement_time_interval),
            )
        except ValueError as exc:
            allowed = ", ".join(member.value for member in TimeInterval)
            raise InvalidIdentity(
                f"Invalid time interval. Allowed values are: {allowed}."
            ) from exc

    @property
    def table_name(self) -> str:
        return "_".join(
            (
                self.sensor_brand,
                self.sensor_id,
                self.measurement_model,
                self.measurement_type.value,
                self.measurement_time_interval.value,
            )
        )


@dataclass
class MeasurementModel:
    """Registry entry binding an identity to its table and schema."""

    identity: TableIdentity
    schema: Dict[str, str]
    registered_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def table_name(self) -> str:
        return self.identity.table_name

    def to_record(self) -> Record:
        return {
            "sensor_brand": self.identity.sensor_brand,
            "sensor_id": self.identity.sensor_id,
            "measurement_model": self.identity.measurement_model,
            "measurement_type": self.identity.measurement_type.value,
            "measurement_time_interval": self.identity.measurement_time_interval.value,
            "sensor_table_name": self.table_name,
            "sensor_data_schema": dict(self.schema),
            "registered_at": self.registered_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "MeasurementModel":
        identity = TableIdentity(
            sensor_brand=record["sensor_brand"],
            sensor_id=record["sensor_id"],
            measurement_type=record["measurement_type"],
            measurement_time_interval=record["measurement_time_interval"],
            measurement_model=record.get("measurement_model") or DEFAULT_MEASUREMENT_MODEL,
        )
        registered_at: Optional[str] = record.get("registered_at")
        model = cls(identity=identity, schema=dict(record["sensor_data_schema"]))
        if registered_at:
            model.registered_at = datetime.fromisoformat(registered_at)
        return model
