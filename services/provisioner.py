"""First-time creation of measurement tables."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping

from datastore.base import ColumnSpec, MeasurementStore, StoreError, TableExistsError
from models.errors import StorageFailure
from models.measurements import SURROGATE_KEY, TableIdentity
from services.schema import map_type, validate_schema


class ProvisionStatus(str, Enum):
    created = "created"
    already_exists = "already_exists"


@dataclass(frozen=True)
class ProvisionResult:
    status: ProvisionStatus
    table_name: str

    @property
    def created(self) -> bool:
        return self.status is ProvisionStatus.created


def build_column_specs(schema: Mapping[str, str]) -> List[ColumnSpec]:
    specs = [ColumnSpec(name=SURROGATE_KEY, type="INTEGER", primary_key=True)]
    specs.extend(
        ColumnSpec(name=name, type=map_type(token).concrete)
        for name, token in schema.items()
    )
    return specs


def provision(
    store: MeasurementStore, identity: TableIdentity, schema: Mapping[str, str]
) -> ProvisionResult:
    """Create the table for ``identity`` unless it already exists.

    ``InvalidSchema`` propagates; an existing table, including one created by
    a concurrent caller between the check and the create, is reported as
    ``already_exists``.
    """
    table_name = identity.table_name
    try:
        if store.table_exists(table_name):
            return ProvisionResult(ProvisionStatus.already_exists, table_name)
    except StoreError as exc:
        raise StorageFailure("table lookup", table_name, str(exc)) from exc

    temporal_column = validate_schema(schema)

    try:
        store.create_table(
            table_name,
            build_column_specs(schema),
            unique=[temporal_column],
            indexes=[temporal_column],
        )
    except TableExistsError:
        return ProvisionResult(ProvisionStatus.already_exists, table_name)
    except StoreError as exc:
        raise StorageFailure("table creation", table_name, str(exc)) from exc
    return ProvisionResult(ProvisionStatus.created, table_name)
