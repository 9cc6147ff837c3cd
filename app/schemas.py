"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.measurements import MeasurementModel
from services.provisioner import ProvisionStatus
from services.query import QueryResult


class SensorModelCreate(BaseModel):
    """Body of a sensor model registration request."""

    sensor_data_schema: Dict[str, str] = Field(
        ...,
        description="Ordered mapping of column name to type (string, number, float, integer, date, datetime).",
    )


class SensorModelOut(BaseModel):
    """A registered measurement stream and its table."""

    sensor_brand: str
    sensor_id: str
    measurement_model: str
    measurement_type: str
    measurement_time_interval: str
    sensor_table_name: str
    sensor_data_schema: Dict[str, str]
    registered_at: datetime

    @classmethod
    def from_model(cls, model: MeasurementModel) -> "SensorModelOut":
        return cls.model_validate(model.to_record())


class RegistrationResponse(BaseModel):
    status: ProvisionStatus
    table_name: str
    message: str


class IngestResponse(BaseModel):
    table_name: str
    row_count: int = Field(..., ge=0)
    message: str


class ReadingsResponse(BaseModel):
    """Rows returned by a range or latest-reading query."""

    table_name: str
    temporal_column: Optional[str] = None
    columns: List[str] = Field(default_factory=list)
    row_count: int = Field(..., ge=0)
    rows: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: QueryResult) -> "ReadingsResponse":
        return cls(
            table_name=result.table_name,
            temporal_column=result.temporal_column,
            columns=list(result.columns),
            row_count=len(result.rows),
            rows=result.rows,
        )
