from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_message, render_models, render_rows, render_schema
from models.errors import InvalidIdentity
from models.measurements import (
    DEFAULT_MEASUREMENT_MODEL,
    MeasurementType,
    TableIdentity,
    TimeInterval,
)


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor measurement service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

_TYPE_OPTION = typer.Option(MeasurementType.RAW, "--type", "-t", help="Measurement type.")
_INTERVAL_OPTION = typer.Option(TimeInterval.HOURLY, "--interval", "-i", help="Measurement time interval.")
_MODEL_OPTION = typer.Option(DEFAULT_MEASUREMENT_MODEL, "--model", "-m", help="Measurement model name.")
_START_OPTION = typer.Option(None, "--start", help="Lower date bound.")
_END_OPTION = typer.Option(None, "--end", help="Upper date bound.")
_TARGET_OPTION = typer.Option(None, "--target-count", help="Average the result down to this many rows.")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


def _identity(
    sensor_brand: str,
    sensor_id: str,
    measurement_type: MeasurementType,
    interval: TimeInterval,
    model: str,
) -> TableIdentity:
    try:
        return TableIdentity(
            sensor_brand=sensor_brand,
            sensor_id=sensor_id,
            measurement_type=measurement_type,
            measurement_time_interval=interval,
            measurement_model=model,
        )
    except InvalidIdentity as exc:
        raise typer.BadParameter(str(exc)) from exc


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}") from exc


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("register")
def register_command(
    ctx: typer.Context,
    sensor_brand: str = typer.Argument(..., help="Sensor brand."),
    sensor_id: str = typer.Argument(..., help="Sensor serial number."),
    schema_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON file mapping column names to types."),
    measurement_type: MeasurementType = _TYPE_OPTION,
    interval: TimeInterval = _INTERVAL_OPTION,
    model: str = _MODEL_OPTION,
) -> None:
    """Register a sensor model and create its measurement table."""
    state = _get_state(ctx)
    schema = _load_json(schema_file)
    if not isinstance(schema, dict):
        raise typer.BadParameter("Schema file must contain a JSON object.")
    identity = _identity(sensor_brand, sensor_id, measurement_type, interval, model)
    render_message(state.client.register_model(identity, schema))


@app.command("models")
def models_command(
    ctx: typer.Context,
    sensor_brand: Optional[str] = typer.Argument(None, help="Only list models of this brand..."),
    sensor_id: Optional[str] = typer.Argument(None, help="...and this sensor."),
) -> None:
    """List registered sensor models."""
    state = _get_state(ctx)
    render_models(state.client.list_models(sensor_brand, sensor_id))


@app.command("schema")
def schema_command(
    ctx: typer.Context,
    sensor_brand: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    measurement_type: MeasurementType = _TYPE_OPTION,
    interval: TimeInterval = _INTERVAL_OPTION,
    model: str = _MODEL_OPTION,
) -> None:
    """Show the live column schema of a measurement table."""
    state = _get_state(ctx)
    identity = _identity(sensor_brand, sensor_id, measurement_type, interval, model)
    render_schema(state.client.get_schema(identity))


@app.command("upload")
def upload_command(
    ctx: typer.Context,
    sensor_brand: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to CSV file."),
    measurement_type: MeasurementType = _TYPE_OPTION,
    interval: TimeInterval = _INTERVAL_OPTION,
    model: str = _MODEL_OPTION,
) -> None:
    """Upload a CSV file of readings."""
    state = _get_state(ctx)
    identity = _identity(sensor_brand, sensor_id, measurement_type, interval, model)
    typer.echo(f"Uploading {file} to {state.config.base_url} ...")
    render_message(state.client.upload_csv(identity, file))


@app.command("insert")
def insert_command(
    ctx: typer.Context,
    sensor_brand: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    records_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON file holding a list of records."),
    measurement_type: MeasurementType = _TYPE_OPTION,
    interval: TimeInterval = _INTERVAL_OPTION,
    model: str = _MODEL_OPTION,
) -> None:
    """Insert readings from a JSON file."""
    state = _get_state(ctx)
    records = _load_json(records_file)
    if not isinstance(records, list):
        raise typer.BadParameter("Records file must contain a JSON list.")
    identity = _identity(sensor_brand, sensor_id, measurement_type, interval, model)
    render_message(state.client.insert_records(identity, records))


@app.command("fetch")
def fetch_command(
    ctx: typer.Context,
    sensor_brand: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    measurement_type: MeasurementType = _TYPE_OPTION,
    interval: TimeInterval = _INTERVAL_OPTION,
    model: str = _MODEL_OPTION,
    start: Optional[str] = _START_OPTION,
    end: Optional[str] = _END_OPTION,
    target_count: Optional[int] = _TARGET_OPTION,
) -> None:
    """Fetch readings strictly between two dates."""
    state = _get_state(ctx)
    identity = _identity(sensor_brand, sensor_id, measurement_type, interval, model)
    render_rows(state.client.fetch_readings(identity, start, end, target_count))


@app.command("export")
def export_command(
    ctx: typer.Context,
    sensor_brand: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    measurement_type: MeasurementType = _TYPE_OPTION,
    interval: TimeInterval = _INTERVAL_OPTION,
    model: str = _MODEL_OPTION,
    start: Optional[str] = _START_OPTION,
    end: Optional[str] = _END_OPTION,
    target_count: Optional[int] = _TARGET_OPTION,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write CSV here instead of stdout."),
) -> None:
    """Export readings between two dates (inclusive) as CSV."""
    state = _get_state(ctx)
    identity = _identity(sensor_brand, sensor_id, measurement_type, interval, model)
    content = state.client.export_readings(identity, start, end, target_count)
    if output is None:
        typer.echo(content, nl=False)
        return
    output.write_text(content, encoding="utf-8")
    typer.secho(f"Wrote {output}", fg=typer.colors.GREEN)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    sensor_brand: str = typer.Argument(...),
    sensor_id: str = typer.Argument(...),
    measurement_type: MeasurementType = _TYPE_OPTION,
    interval: TimeInterval = _INTERVAL_OPTION,
    model: str = _MODEL_OPTION,
) -> None:
    """Show the most recent reading."""
    state = _get_state(ctx)
    identity = _identity(sensor_brand, sensor_id, measurement_type, interval, model)
    render_rows(state.client.latest_reading(identity))
