"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class IngestionSettings:
    """
    Runtime settings for the massive-import endpoint.
    """

    chunk_sub_batch_size: int = 25
    standalone_sub_batch_size: int = 50
    response_error_sample_size: int = 10
    job_error_sample_size: int = 10
    default_imported_by: str = "import_worker"
    log_record_errors: bool = True


@dataclass(frozen=True)
class ImportClientSettings:
    """
    Settings for the chunked import client.
    """

    api_base_url: str = "http://localhost:8080"
    chunk_size: int = 100
    timeout_seconds: float = 60.0
    cancel_poll_seconds: float = 0.1
    imported_by: str = "import_client"


@dataclass(frozen=True)
class ResolutionCacheSettings:
    """
    Settings for the entity resolution cache and its lookup API.
    """

    capacity: int = 5000
    batch_size: int = 100
    max_concurrency: int = 5
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    db_path: str = ".cache/entity_cache.sqlite3"
    api_base_url: str = "http://localhost:8080"
    timeout_seconds: float = 15.0


@lru_cache(maxsize=1)
def get_ingestion_settings() -> IngestionSettings:
    """
    Return cached massive-import settings from environment variables.
    """

    return IngestionSettings(
        chunk_sub_batch_size=max(1, _get_int_env("MASSIVE_IMPORT_CHUNK_SUB_BATCH_SIZE", 25)),
        standalone_sub_batch_size=max(1, _get_int_env("MASSIVE_IMPORT_STANDALONE_SUB_BATCH_SIZE", 50)),
        response_error_sample_size=max(1, _get_int_env("MASSIVE_IMPORT_RESPONSE_ERROR_SAMPLE", 10)),
        job_error_sample_size=max(1, _get_int_env("MASSIVE_IMPORT_JOB_ERROR_SAMPLE", 10)),
        default_imported_by=_get_str_env("MASSIVE_IMPORT_DEFAULT_IMPORTED_BY", "import_worker"),
        log_record_errors=_get_bool_env("MASSIVE_IMPORT_LOG_RECORD_ERRORS", True),
    )


@lru_cache(maxsize=1)
def get_import_client_settings() -> ImportClientSettings:
    """
    Return cached import client settings from environment variables.
    """

    return ImportClientSettings(
        api_base_url=_get_str_env("IMPORT_API_BASE_URL", "http://localhost:8080").rstrip("/"),
        chunk_size=max(1, _get_int_env("IMPORT_CHUNK_SIZE", 100)),
        timeout_seconds=max(1.0, _get_float_env("IMPORT_HTTP_TIMEOUT_SECONDS", 60.0)),
        cancel_poll_seconds=max(0.01, _get_float_env("IMPORT_CANCEL_POLL_SECONDS", 0.1)),
        imported_by=_get_str_env("IMPORT_IMPORTED_BY", "import_client"),
    )


@lru_cache(maxsize=1)
def get_resolution_cache_settings() -> ResolutionCacheSettings:
    """
    Return cached resolution cache settings from environment variables.
    """

    return ResolutionCacheSettings(
        capacity=max(1, _get_int_env("ENTITY_CACHE_CAPACITY", 5000)),
        batch_size=max(1, _get_int_env("ENTITY_CACHE_BATCH_SIZE", 100)),
        max_concurrency=max(1, _get_int_env("ENTITY_CACHE_MAX_CONCURRENCY", 5)),
        max_retries=max(0, _get_int_env("ENTITY_CACHE_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.0, _get_float_env("ENTITY_CACHE_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("ENTITY_CACHE_BACKOFF_MULTIPLIER", 2.0)),
        db_path=_get_str_env("ENTITY_CACHE_DB_PATH", ".cache/entity_cache.sqlite3"),
        api_base_url=_get_str_env("ENTITY_API_BASE_URL", "http://localhost:8080").rstrip("/"),
        timeout_seconds=max(1.0, _get_float_env("ENTITY_API_TIMEOUT_SECONDS", 15.0)),
    )
