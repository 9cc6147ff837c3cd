"""Delimited-text rendering of query results."""

from __future__ import annotations

import csv
import io
from typing import Any, Mapping, Optional, Sequence


def to_delimited_text(
    rows: Sequence[Mapping[str, Any]],
    column_order: Optional[Sequence[str]] = None,
    delimiter: str = ",",
) -> str:
    """Render ``rows`` as CSV with a header row.

    ``column_order`` should be the live schema order; without it the first
    row's keys are used. ``None`` values are written as empty cells.
    """
    if column_order is None:
        column_order = list(rows[0].keys()) if rows else []

    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=list(column_order),
        delimiter=delimiter,
        lineterminator="\n",
        extrasaction="ignore",
    )
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()
