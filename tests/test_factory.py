"""Tests for backend selection."""

import pytest

from being_better.adapters.factory import (
    BACKEND_GOOGLE,
    BACKEND_LOCAL_API,
    BACKEND_REDIS,
    create_adapter,
    resolve_data_backend,
)
from being_better.adapters.google_sheets import GoogleSheetsAdapter
from being_better.adapters.redis_store import RedisStoreAdapter
from being_better.adapters.rest_api import RestApiAdapter


@pytest.mark.parametrize("value,expected", [
    ("google", BACKEND_GOOGLE),
    ("local_api", BACKEND_LOCAL_API),
    ("redis", BACKEND_REDIS),
    ("indexeddb", BACKEND_GOOGLE),
    ("", BACKEND_GOOGLE),
    (None, BACKEND_GOOGLE),
])
def test_resolve_data_backend(value, expected):
    assert resolve_data_backend(value) == expected


@pytest.mark.parametrize("backend,cls", [
    (BACKEND_GOOGLE, GoogleSheetsAdapter),
    (BACKEND_LOCAL_API, RestApiAdapter),
    (BACKEND_REDIS, RedisStoreAdapter),
])
def test_create_adapter(backend, cls):
    assert isinstance(create_adapter(backend), cls)


def test_create_adapter_uses_configured_default():
    assert isinstance(create_adapter(), (GoogleSheetsAdapter, RestApiAdapter, RedisStoreAdapter))
