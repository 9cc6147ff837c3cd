"""Error taxonomy for measurement table management.

Validation errors are raised before any storage mutation and carry enough
detail for the caller to fix its input. ``StorageFailure`` wraps whatever the
storage collaborator reported and keeps it as ``__cause__``.
"""

from __future__ import annotations

from typing import Sequence


class MeasurementError(Exception):
    """Base class for every error raised by the measurement core."""


class ValidationError(MeasurementError):
    """Input rejected before touching storage."""


class InvalidIdentity(ValidationError):
    pass


class InvalidSchema(ValidationError):
    pass


class SchemaMismatch(ValidationError):
    """A record's columns differ from the live table columns."""

    def __init__(
        self,
        message: str,
        record_index: int | None = None,
        missing: Sequence[str] = (),
        unexpected: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.record_index = record_index
        self.missing = tuple(missing)
        self.unexpected = tuple(unexpected)


class MalformedTimestamp(ValidationError):
    def __init__(self, value: object, record_index: int | None = None) -> None:
        location = f" in record {record_index}" if record_index is not None else ""
        super().__init__(f"Could not parse timestamp {value!r}{location}.")
        self.value = value
        self.record_index = record_index


class InvalidTargetCount(ValidationError):
    def __init__(self, target_count: object) -> None:
        super().__init__(
            f"target_count must be an integer >= 1, got {target_count!r}."
        )
        self.target_count = target_count


class EmptyBatch(ValidationError):
    pass


class TableNotFound(MeasurementError):
    def __init__(self, table_name: str) -> None:
        super().__init__(
            f"Table {table_name!r} does not exist. "
            "Please ensure the parameters were correctly given."
        )
        self.table_name = table_name


class DuplicateTimestamp(MeasurementError):
    """A batch collided with the temporal column's uniqueness constraint."""

    def __init__(self, table_name: str, detail: str) -> None:
        super().__init__(
            f"Batch rejected by {table_name!r}: duplicate timestamp ({detail})."
        )
        self.table_name = table_name


class StorageFailure(MeasurementError):
    def __init__(self, operation: str, table_name: str | None, detail: str) -> None:
        target = f" on {table_name!r}" if table_name else ""
        super().__init__(f"Storage failure during {operation}{target}: {detail}")
        self.operation = operation
        self.table_name = table_name
