"""Fixed-count windowed averaging of ordered measurement rows."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence

from models.errors import InvalidTargetCount
from models.measurements import Record
from services.normalizer import format_timestamp, parse_timestamp

_EPOCH = datetime(1970, 1, 1)


def window_sizes(row_count: int, target_count: int) -> List[int]:
    """Sizes of the contiguous windows for ``row_count`` rows.

    The first ``row_count % target_count`` windows take one extra row.
    ``target_count`` is clamped to ``row_count``.
    """
    if row_count <= 0:
        return []
    windows = min(target_count, row_count)
    base, extra = divmod(row_count, windows)
    return [base + 1 if index < extra else base for index in range(windows)]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _mean_instant(values: Sequence[Any]) -> Optional[str]:
    instants = [parse_timestamp(value) for value in values if value is not None and value != ""]
    if not instants:
        return None
    offsets = [(instant - _EPOCH).total_seconds() for instant in instants]
    mean = sum(offsets) / len(offsets)
    return format_timestamp(_EPOCH + timedelta(seconds=mean))


def _mean_or_first(values: Sequence[Any]) -> Any:
    present = [value for value in values if value is not None]
    if not present:
        return None
    if all(_is_number(value) for value in present):
        return sum(present) / len(present)
    # non-numeric payload columns keep the window's first value
    return values[0]


class Downsampler:
    """Pure reduction component; holds no state between calls."""

    def downsample(
        self,
        rows: Sequence[Record],
        temporal_column: str,
        target_count: Optional[int] = None,
    ) -> List[Record]:
        if target_count is None:
            return list(rows)
        if (
            isinstance(target_count, bool)
            or not isinstance(target_count, int)
            or target_count < 1
        ):
            raise InvalidTargetCount(target_count)

        output: List[Record] = []
        start = 0
        for size in window_sizes(len(rows), target_count):
            window = rows[start : start + size]
            start += size
            output.append(self._average_window(window, temporal_column))
        return output

    @staticmethod
    def _average_window(window: Sequence[Record], temporal_column: str) -> Record:
        averaged: Record = {}
        for column in window[0].keys():
            values = [row.get(column) for row in window]
            if column == temporal_column:
                averaged[column] = _mean_instant(values)
            else:
                averaged[column] = _mean_or_first(values)
        return averaged
