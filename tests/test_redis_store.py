"""Tests for the Redis embedded store adapter (fakeredis)."""

import pytest

from being_better.adapters.base import AuthState, SettingsCapable, SignInCapable, StoreAdapter
from being_better.adapters.redis_store import RedisStoreAdapter
from being_better.errors import NotConnectedError, StorageError
from being_better.models.entries import RatingsRange

WEEK = RatingsRange(from_iso="2024-05-01T00:00:00+00:00", to_iso="2024-05-07T23:59:59+00:00")


@pytest.fixture
async def store(r):
    adapter = RedisStoreAdapter(r=r, prefix="test")
    await adapter.init()
    return adapter


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_init_connects_and_writes_schema_marker(self, r):
        adapter = RedisStoreAdapter(r=r, prefix="test")
        assert adapter.get_auth_state() is AuthState.INITIALIZING
        await adapter.init()
        assert adapter.is_ready()
        assert adapter.get_auth_state() is AuthState.CONNECTED
        assert r.get("test:schema") == "1"

    @pytest.mark.asyncio
    async def test_init_failure_raises_storage_error(self, down_redis):
        adapter = RedisStoreAdapter(r=down_redis)
        with pytest.raises(StorageError):
            await adapter.init()
        assert not adapter.is_ready()
        assert adapter.get_auth_state() is AuthState.NEEDS_LOGIN

    @pytest.mark.asyncio
    async def test_operations_before_init_raise(self, r, make_rating):
        adapter = RedisStoreAdapter(r=r)
        with pytest.raises(NotConnectedError):
            await adapter.append_rating(make_rating())
        with pytest.raises(NotConnectedError):
            await adapter.list_check_ins(WEEK)

    def test_capabilities(self, r):
        adapter = RedisStoreAdapter(r=r)
        assert isinstance(adapter, StoreAdapter)
        assert isinstance(adapter, SettingsCapable)
        assert not isinstance(adapter, SignInCapable)


class TestEntries:
    @pytest.mark.asyncio
    async def test_range_is_inclusive(self, store, make_rating):
        await store.append_rating(make_rating(3, days_ago=6, hour=0))   # 05-01 00:00, on the bound
        await store.append_rating(make_rating(4, days_ago=7))          # 04-30, outside
        await store.append_rating(make_rating(9, days_ago=0))
        ratings = await store.list_ratings(WEEK)
        assert sorted(e.rating for e in ratings) == [3, 9]

    @pytest.mark.asyncio
    async def test_identical_entries_do_not_collapse(self, store, make_rating):
        entry = make_rating(5)
        await store.append_rating(entry)
        await store.append_rating(entry)
        assert await store.list_ratings(WEEK) == [entry, entry]

    @pytest.mark.asyncio
    async def test_check_in_round_trip(self, store, make_check_in):
        entry = make_check_in(
            words=("calm", "tired"),
            intensity={"energy": 6, "joy": 8},
            context_tags=("work",),
            suggested_words_used=("calm",),
        )
        await store.append_check_in(entry)
        assert await store.list_check_ins(WEEK) == [entry]

    @pytest.mark.asyncio
    async def test_corrupt_members_are_skipped(self, store, r, make_rating):
        await store.append_rating(make_rating(7))
        r.zadd("test:ratings", {"{not json": 1715083200})
        r.zadd("test:ratings", {'{"timestamp": "2024-05-07T12:00:00+00:00", "rating": 99}': 1715083200})
        ratings = await store.list_ratings(WEEK)
        assert [e.rating for e in ratings] == [7]


class TestSettings:
    @pytest.mark.asyncio
    async def test_empty_by_default(self, store):
        assert await store.load_settings() == {}

    @pytest.mark.asyncio
    async def test_upsert_keeps_unknown_keys(self, store):
        await store.save_settings({"locale": "pl", "custom": "x"})
        await store.save_settings({"locale": "en", "reminder_time": "21:00"})
        assert await store.load_settings() == {"locale": "en", "custom": "x", "reminder_time": "21:00"}

    @pytest.mark.asyncio
    async def test_save_of_loaded_settings_is_idempotent(self, store):
        await store.save_settings({"locale": "pl", "reminder_enabled": "1"})
        before = await store.load_settings()
        await store.save_settings(before)
        assert await store.load_settings() == before
