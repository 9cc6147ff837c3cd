from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import typer

from cli.config import CLIConfig
from models.measurements import TableIdentity


def _model_path(identity: TableIdentity) -> str:
    parts = (
        identity.sensor_brand,
        identity.sensor_id,
        identity.measurement_type.value,
        identity.measurement_time_interval.value,
        identity.measurement_model,
    )
    return "/".join(quote(part, safe="") for part in parts)


def _readings_path(identity: TableIdentity) -> str:
    parts = (
        identity.sensor_brand,
        identity.sensor_id,
        identity.measurement_model,
        identity.measurement_type.value,
        identity.measurement_time_interval.value,
    )
    return "/".join(quote(part, safe="") for part in parts)


def _range_params(
    start_date: Optional[str], end_date: Optional[str], target_count: Optional[int]
) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if start_date:
        params["start_date"] = start_date
    if end_date:
        params["end_date"] = end_date
    if target_count is not None:
        params["target_count"] = target_count
    return params


class ApiClient:
    """Minimal HTTP client for the measurement service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=f"{config.base_url}/api/v2", timeout=config.timeout
        )

    def close(self) -> None:
        self._client.close()

    def register_model(self, identity: TableIdentity, schema: Dict[str, str]) -> Dict[str, Any]:
        response = self._client.post(
            f"/sensor-models/{_model_path(identity)}",
            json={"sensor_data_schema": schema},
        )
        if response.status_code == 409:
            return response.json()
        return self._json(response)

    def list_models(
        self, sensor_brand: Optional[str] = None, sensor_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        if sensor_brand and sensor_id:
            path = f"/sensor-models/{quote(sensor_brand, safe='')}/{quote(sensor_id, safe='')}"
        else:
            path = "/sensor-models"
        return self._json(self._client.get(path))

    def get_schema(self, identity: TableIdentity) -> Dict[str, str]:
        return self._json(self._client.get(f"/sensor-models/{_model_path(identity)}"))

    def upload_csv(self, identity: TableIdentity, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        with path.open("rb") as handle:
            response = self._client.post(
                f"/readings/csv/{_readings_path(identity)}",
                files={"file": (path.name, handle, "text/csv")},
            )
        return self._json(response)

    def insert_records(self, identity: TableIdentity, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        response = self._client.post(
            f"/readings/json/{_readings_path(identity)}", json=records
        )
        return self._json(response)

    def fetch_readings(
        self,
        identity: TableIdentity,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        target_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        response = self._client.get(
            f"/readings/json/{_readings_path(identity)}",
            params=_range_params(start_date, end_date, target_count),
        )
        return self._json(response)

    def export_readings(
        self,
        identity: TableIdentity,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        target_count: Optional[int] = None,
    ) -> str:
        response = self._client.get(
            f"/readings/csv/{_readings_path(identity)}",
            params=_range_params(start_date, end_date, target_count),
        )
        self._check(response)
        return response.text

    def latest_reading(self, identity: TableIdentity) -> Dict[str, Any]:
        return self._json(self._client.get(f"/readings/last/{_readings_path(identity)}"))

    def _json(self, response: httpx.Response) -> Any:
        self._check(response)
        return response.json()

    def _check(self, response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
