"""Backend name → storage adapter."""

from __future__ import annotations

from typing import Optional

from being_better.adapters.base import StoreAdapter
from being_better.adapters.google_sheets import GoogleSheetsAdapter
from being_better.adapters.redis_store import RedisStoreAdapter
from being_better.adapters.rest_api import RestApiAdapter
from being_better.config.settings import DATA_BACKEND, LOCAL_API_BASE_URL

BACKEND_GOOGLE = "google"
BACKEND_LOCAL_API = "local_api"
BACKEND_REDIS = "redis"

DATA_BACKENDS = (BACKEND_GOOGLE, BACKEND_LOCAL_API, BACKEND_REDIS)


def resolve_data_backend(value: Optional[str]) -> str:
    """Unknown or missing names fall back to Google Sheets."""
    if value in DATA_BACKENDS:
        return value
    return BACKEND_GOOGLE


def create_adapter(backend: Optional[str] = None) -> StoreAdapter:
    selected = resolve_data_backend(backend or DATA_BACKEND)

    if selected == BACKEND_LOCAL_API:
        return RestApiAdapter(base_url=LOCAL_API_BASE_URL)
    if selected == BACKEND_REDIS:
        return RedisStoreAdapter()
    return GoogleSheetsAdapter()
