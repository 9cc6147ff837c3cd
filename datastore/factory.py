from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from datastore.base import MeasurementStore
from datastore.memory import MockMeasurementStore
from datastore.sqlite import SQLiteMeasurementStore
from settings import get_settings


@lru_cache
def build_default_store(
    backend: Optional[str] = None,
    path: Optional[str] = None,
) -> MeasurementStore:
    settings = get_settings()
    store_backend = settings.store_backend if backend is None else backend
    if store_backend == "memory":
        store_path = settings.store_persistence_path if path is None else path
        persistence = Path(store_path) if store_path else None
        return MockMeasurementStore(persistence_path=persistence)
    db_path = settings.database_path if path is None else path
    return SQLiteMeasurementStore(db_path)
