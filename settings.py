from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_BACKEND_ENV = "MEASUREMENT_STORE_BACKEND"
_DB_PATH_ENV = "MEASUREMENT_DB_PATH"
_STORE_PERSISTENCE_ENV = "MEASUREMENT_STORE_PERSISTENCE_PATH"
_MAX_UPLOAD_ENV = "MAX_UPLOAD_BYTES"
_LOG_LEVEL_ENV = "LOG_LEVEL"

STORE_BACKENDS = ("sqlite", "memory")
DEFAULT_MAX_UPLOAD_BYTES = 30 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    store_backend: str
    database_path: str
    store_persistence_path: Optional[str]
    max_upload_bytes: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_store_backend(default: str) -> str:
    candidate = _read_str_env(_STORE_BACKEND_ENV, default).lower()
    return candidate if candidate in STORE_BACKENDS else default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_backend=_read_store_backend("sqlite"),
        database_path=_read_str_env(_DB_PATH_ENV, "./tmp/measurements.db"),
        store_persistence_path=_read_optional_env(_STORE_PERSISTENCE_ENV, None),
        max_upload_bytes=_read_positive_int(_MAX_UPLOAD_ENV, DEFAULT_MAX_UPLOAD_BYTES),
        log_level=_read_log_level("INFO"),
    )
