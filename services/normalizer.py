"""Ingestion-time schema conformance and timestamp normalization."""

from __future__ import annotations

import csv
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Mapping, Sequence, TextIO

from dateutil import parser as date_parser

from models.errors import MalformedTimestamp, SchemaMismatch
from models.measurements import Record

CANONICAL_FORMAT = "%Y-%m-%d %H:%M:%S"

_SCALAR_TYPES = (str, int, float, bool)


def parse_timestamp(value: Any) -> datetime:
    """Parse a machine or human-entered timestamp into naive UTC.

    Accepts ``datetime``/``date`` objects, Unix epoch seconds given as numbers,
    and any string ``dateutil`` understands (ISO-8601 with or without offset,
    ``3/5/2024 14:00:00`` read month-first, ...). Raises ``ValueError``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, bool):
        raise ValueError("Boolean is not a timestamp.")
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Epoch value {value!r} out of range.") from exc
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")
        try:
            parsed = date_parser.parse(candidate)
        except (date_parser.ParserError, OverflowError) as exc:
            raise ValueError(f"Invalid timestamp format: {candidate!r}") from exc
    else:
        raise ValueError(f"Unsupported timestamp type {type(value).__name__}.")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.strftime(CANONICAL_FORMAT)


def normalize_timestamp(value: Any) -> str:
    return format_timestamp(parse_timestamp(value))


def normalize(
    table_columns: Sequence[str],
    temporal_column: str,
    records: Iterable[Mapping[str, Any]],
) -> List[Record]:
    """Check every record against the live columns and canonicalize timestamps.

    The whole batch is rejected on the first record whose key set differs
    from ``table_columns`` or whose timestamp cannot be parsed.
    """
    expected = set(table_columns)
    normalized: List[Record] = []

    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise SchemaMismatch(
                f"Record {index} is not a mapping of column names to values.",
                record_index=index,
            )

        keys = set(record.keys())
        if keys != expected:
            missing = sorted(str(key) for key in expected - keys)
            unexpected = sorted(str(key) for key in keys - expected)
            details = []
            if missing:
                details.append(f"missing: {', '.join(missing)}")
            if unexpected:
                details.append(f"unexpected: {', '.join(unexpected)}")
            raise SchemaMismatch(
                f"Column names of record {index} do not match table schema "
                f"({'; '.join(details)}).",
                record_index=index,
                missing=missing,
                unexpected=unexpected,
            )

        for column, cell in record.items():
            if column == temporal_column or cell is None:
                continue
            if not isinstance(cell, _SCALAR_TYPES):
                raise SchemaMismatch(
                    f"Value of column {column!r} in record {index} must be a "
                    f"string, number or boolean, got {type(cell).__name__}.",
                    record_index=index,
                )

        row = dict(record)
        value = row.get(temporal_column)
        if value is not None and value != "":
            try:
                row[temporal_column] = normalize_timestamp(value)
            except ValueError as exc:
                raise MalformedTimestamp(value, record_index=index) from exc
        normalized.append(row)

    return normalized


def read_delimited_records(stream: TextIO) -> List[Record]:
    """Read CSV rows keyed by the header row; empty cells become ``None``."""
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise SchemaMismatch("CSV file is missing a header row.")
    reader.fieldnames = [name.strip() for name in reader.fieldnames]

    records: List[Record] = []
    for row in reader:
        records.append(
            {
                key: (value if value != "" else None)
                for key, value in row.items()
            }
        )
    return records
