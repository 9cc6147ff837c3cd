"""HTTP route definitions for the service."""

from __future__ import annotations

import io
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from app.schemas import (
    IngestResponse,
    ReadingsResponse,
    RegistrationResponse,
    SensorModelCreate,
    SensorModelOut,
)
from models.errors import (
    DuplicateTimestamp,
    EmptyBatch,
    MeasurementError,
    TableNotFound,
    ValidationError,
)
from models.measurements import MeasurementType, TableIdentity, TimeInterval
from services.provisioner import ProvisionStatus
from services.query import QueryResult, QueryStatus
from services.readings import CsvExport, ReadingsService, build_default_service
from settings import get_settings

router = APIRouter(prefix="/api/v2")
health_router = APIRouter()

_MODEL_PATH = "{sensor_brand}/{sensor_id}/{measurement_type}/{measurement_time_interval}/{measurement_model}"
_READINGS_PATH = "{sensor_brand}/{sensor_id}/{measurement_model}/{measurement_type}/{measurement_time_interval}"


def get_service() -> ReadingsService:
    return build_default_service()


def _http_error(exc: MeasurementError) -> HTTPException:
    if isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, TableNotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, DuplicateTimestamp):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))


def _identity(
    sensor_brand: str,
    sensor_id: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    measurement_model: Optional[str],
) -> TableIdentity:
    try:
        return TableIdentity(
            sensor_brand=sensor_brand,
            sensor_id=sensor_id,
            measurement_type=measurement_type,
            measurement_time_interval=measurement_time_interval,
            measurement_model=measurement_model or "",
        )
    except ValidationError as exc:
        raise _http_error(exc) from exc


def _require_rows(result: QueryResult) -> QueryResult:
    if result.status is QueryStatus.missing_table:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=(
                f"Table {result.table_name!r} does not exist. "
                "Please ensure the parameters were correctly given."
            ),
        )
    if result.status is QueryStatus.missing_temporal_column:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Table {result.table_name!r} is missing a datetime column.",
        )
    if result.status is QueryStatus.empty:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No data found for the specified sensor.",
        )
    return result


def _csv_response(export: CsvExport) -> Response:
    _require_rows(export.result)
    return Response(
        content=export.content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={export.filename}"},
    )


@router.get(
    "/sensor-models",
    response_model=List[SensorModelOut],
    summary="List every registered sensor model.",
)
def list_sensor_models(
    service: ReadingsService = Depends(get_service),
) -> List[SensorModelOut]:
    try:
        models = service.list_models()
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    return [SensorModelOut.from_model(model) for model in models]


@router.post(
    f"/sensor-models/{_MODEL_PATH}",
    status_code=status.HTTP_201_CREATED,
    response_model=RegistrationResponse,
    summary="Register a sensor model and provision its measurement table.",
    responses={409: {"model": RegistrationResponse}},
)
def register_sensor_model(
    sensor_brand: str,
    sensor_id: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    measurement_model: str,
    payload: SensorModelCreate,
    service: ReadingsService = Depends(get_service),
) -> Any:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    try:
        registration = service.register_model(identity, payload.sensor_data_schema)
    except MeasurementError as exc:
        raise _http_error(exc) from exc

    result = registration.result
    if result.status is ProvisionStatus.already_exists:
        body = RegistrationResponse(
            status=result.status,
            table_name=result.table_name,
            message=f"Table {result.table_name} already exists.",
        )
        return Response(
            content=body.model_dump_json(),
            status_code=status.HTTP_409_CONFLICT,
            media_type="application/json",
        )
    return RegistrationResponse(
        status=result.status,
        table_name=result.table_name,
        message=(
            f"Measurement table '{result.table_name}' has been created. "
            "You can now upload data."
        ),
    )


@router.get(
    "/sensor-models/csv/" + _MODEL_PATH,
    summary="Download every reading of a sensor model as CSV.",
)
def download_sensor_model_readings(
    sensor_brand: str,
    sensor_id: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    measurement_model: str,
    service: ReadingsService = Depends(get_service),
) -> Response:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    try:
        export = service.download_all(identity)
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    return _csv_response(export)


@router.get(
    "/sensor-models/{sensor_brand}/{sensor_id}",
    response_model=List[SensorModelOut],
    summary="List the models registered for one sensor.",
)
def list_models_for_sensor(
    sensor_brand: str,
    sensor_id: str,
    service: ReadingsService = Depends(get_service),
) -> List[SensorModelOut]:
    try:
        models = service.list_sensor_models(sensor_brand, sensor_id)
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    if not models:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No models associated with this sensor brand and ID have been created yet.",
        )
    return [SensorModelOut.from_model(model) for model in models]


@router.get(
    f"/sensor-models/{_MODEL_PATH}",
    response_model=Dict[str, str],
    summary="Fetch the live column schema of a sensor model's table.",
)
def get_sensor_model_schema(
    sensor_brand: str,
    sensor_id: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    measurement_model: str,
    service: ReadingsService = Depends(get_service),
) -> Dict[str, str]:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    try:
        return service.describe_schema(identity)
    except MeasurementError as exc:
        raise _http_error(exc) from exc


@router.get(
    f"/readings/json/{_READINGS_PATH}",
    response_model=ReadingsResponse,
    summary="Fetch readings strictly between two dates.",
)
def fetch_readings(
    sensor_brand: str,
    sensor_id: str,
    measurement_model: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    start_date: Optional[str] = Query(None, description="Lower bound (exclusive)."),
    end_date: Optional[str] = Query(None, description="Upper bound (exclusive)."),
    target_count: Optional[int] = Query(
        None, description="Average the result down to this many rows."
    ),
    service: ReadingsService = Depends(get_service),
) -> ReadingsResponse:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    try:
        result = service.fetch_readings(identity, start_date, end_date, target_count)
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    return ReadingsResponse.from_result(_require_rows(result))


@router.post(
    f"/readings/json/{_READINGS_PATH}",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Insert a batch of readings given as JSON records.",
)
def insert_readings(
    sensor_brand: str,
    sensor_id: str,
    measurement_model: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    records: List[Dict[str, Any]] = Body(...),
    service: ReadingsService = Depends(get_service),
) -> IngestResponse:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    try:
        inserted = service.ingest_records(identity, records)
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    return IngestResponse(
        table_name=identity.table_name,
        row_count=inserted,
        message=f"Successfully inserted {inserted} rows",
    )


@router.get(
    f"/readings/csv/{_READINGS_PATH}",
    summary="Export readings between two dates (inclusive) as CSV.",
)
def export_readings(
    sensor_brand: str,
    sensor_id: str,
    measurement_model: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    start_date: Optional[str] = Query(None, description="Lower bound (inclusive)."),
    end_date: Optional[str] = Query(None, description="Upper bound (inclusive)."),
    target_count: Optional[int] = Query(
        None, description="Average the result down to this many rows."
    ),
    service: ReadingsService = Depends(get_service),
) -> Response:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    try:
        export = service.export_readings(identity, start_date, end_date, target_count)
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    return _csv_response(export)


@router.post(
    f"/readings/csv/{_READINGS_PATH}",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Upload a CSV file of readings.",
)
async def upload_readings_csv(
    sensor_brand: str,
    sensor_id: str,
    measurement_model: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    file: UploadFile = File(..., description="CSV file whose header matches the table schema."),
    service: ReadingsService = Depends(get_service),
) -> IngestResponse:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    limit = get_settings().max_upload_bytes
    try:
        contents = await file.read(limit + 1)
    finally:
        await file.close()
    if len(contents) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Uploaded file exceeds {limit} bytes.",
        )
    if not contents:
        raise _http_error(EmptyBatch("Uploaded file is empty."))
    try:
        text = contents.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is not valid UTF-8 text.",
        ) from exc

    try:
        inserted = await run_in_threadpool(
            service.ingest_csv, identity, io.StringIO(text, newline="")
        )
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    return IngestResponse(
        table_name=identity.table_name,
        row_count=inserted,
        message="Data inserted successfully.",
    )


@router.get(
    f"/readings/last/{_READINGS_PATH}",
    response_model=ReadingsResponse,
    summary="Fetch the most recent reading.",
)
def latest_reading(
    sensor_brand: str,
    sensor_id: str,
    measurement_model: str,
    measurement_type: MeasurementType,
    measurement_time_interval: TimeInterval,
    service: ReadingsService = Depends(get_service),
) -> ReadingsResponse:
    identity = _identity(
        sensor_brand, sensor_id, measurement_type, measurement_time_interval, measurement_model
    )
    try:
        result = service.latest_reading(identity)
    except MeasurementError as exc:
        raise _http_error(exc) from exc
    return ReadingsResponse.from_result(_require_rows(result))


@health_router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@health_router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
