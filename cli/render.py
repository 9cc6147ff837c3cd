from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_cell(value: Any) -> str:
    return "" if value is None else str(value)


def render_rows(payload: Dict[str, Any]) -> None:
    echo_heading(f"Readings: {payload.get('table_name')}")
    echo_key_values(
        [
            ("temporal_column", payload.get("temporal_column")),
            ("row_count", payload.get("row_count")),
        ]
    )
    columns: List[str] = payload.get("columns") or []
    rows = payload.get("rows") or []
    typer.echo()
    if not rows:
        typer.echo("No rows returned.")
        return

    table = [[_format_cell(row.get(column)) for column in columns] for row in rows]
    widths = [
        max(len(column), *(len(line[index]) for line in table))
        for index, column in enumerate(columns)
    ]
    typer.echo("  ".join(column.ljust(width) for column, width in zip(columns, widths)))
    for line in table:
        typer.echo("  ".join(cell.ljust(width) for cell, width in zip(line, widths)))


def render_models(models: List[Dict[str, Any]]) -> None:
    echo_heading("Sensor Models")
    if not models:
        typer.echo("No sensor models have been registered.")
        return
    for model in models:
        typer.echo(f"- {model.get('sensor_table_name')}")
        schema = model.get("sensor_data_schema") or {}
        for column, column_type in schema.items():
            typer.echo(f"    {column}: {column_type}")


def render_schema(schema: Dict[str, str]) -> None:
    echo_heading("Schema")
    echo_key_values(schema.items())


def render_message(payload: Dict[str, Any]) -> None:
    status = payload.get("status")
    message = payload.get("message") or payload
    color = typer.colors.YELLOW if status == "already_exists" else typer.colors.GREEN
    typer.secho(str(message), fg=color)
