"""Index of registered measurement models keyed by identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional

from datastore.base import MeasurementStore, StoreError
from models.errors import StorageFailure
from models.measurements import SURROGATE_KEY, MeasurementModel, TableIdentity
from services.provisioner import ProvisionResult, provision
from services.schema import map_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    result: ProvisionResult
    model: Optional[MeasurementModel]


class ModelRegistry:
    """Maps a ``TableIdentity`` to its schema and physical table.

    Entries are persisted through the store so they outlive the process.
    """

    def __init__(self, store: MeasurementStore) -> None:
        self.store = store

    def register(self, identity: TableIdentity, schema: Mapping[str, str]) -> Registration:
        result = provision(self.store, identity, schema)
        if not result.created:
            logger.info(
                "Measurement table already provisioned",
                extra={"table_name": result.table_name, "status": result.status.value},
            )
            model = self.get(identity)
            if model is None and self._matches_live_table(result.table_name, schema):
                model = self._save(identity, schema)
                logger.warning(
                    "Restored missing registration for existing table",
                    extra={"table_name": result.table_name, "status": result.status.value},
                )
            return Registration(result=result, model=model)

        model = self._save(identity, schema)
        logger.info(
            "Measurement table provisioned",
            extra={"table_name": result.table_name, "status": result.status.value},
        )
        return Registration(result=result, model=model)

    def _save(self, identity: TableIdentity, schema: Mapping[str, str]) -> MeasurementModel:
        model = MeasurementModel(identity=identity, schema=dict(schema))
        try:
            self.store.put_model(model.to_record())
        except StoreError as exc:
            raise StorageFailure("model registration", model.table_name, str(exc)) from exc
        return model

    def _matches_live_table(self, table_name: str, schema: Mapping[str, str]) -> bool:
        """True when ``schema`` describes the columns the table actually has."""
        try:
            columns = self.store.list_columns(table_name)
        except StoreError as exc:
            raise StorageFailure("column lookup", table_name, str(exc)) from exc
        live = {column.name: column.type for column in columns if column.name != SURROGATE_KEY}
        requested = {name: map_type(token).concrete for name, token in schema.items()}
        return bool(live) and live == requested

    def get(self, identity: TableIdentity) -> Optional[MeasurementModel]:
        try:
            record = self.store.get_model(identity.table_name)
        except StoreError as exc:
            raise StorageFailure("model lookup", identity.table_name, str(exc)) from exc
        return MeasurementModel.from_record(record) if record else None

    def list_all(self) -> List[MeasurementModel]:
        try:
            records = self.store.list_models()
        except StoreError as exc:
            raise StorageFailure("model listing", None, str(exc)) from exc
        models = [MeasurementModel.from_record(record) for record in records]
        return sorted(models, key=lambda model: model.table_name)

    def list_for_sensor(self, sensor_brand: str, sensor_id: str) -> List[MeasurementModel]:
        return [
            model
            for model in self.list_all()
            if model.identity.sensor_brand == sensor_brand
            and model.identity.sensor_id == sensor_id
        ]
