"""Tests for the REST adapter, run against the real FastAPI app in-process."""

import httpx
import pytest

from being_better.adapters.base import AuthState, SettingsCapable, SignInCapable
from being_better.adapters.rest_api import RestApiAdapter
from being_better.errors import NotConnectedError, StorageError
from being_better.models.entries import RatingsRange

WEEK = RatingsRange(from_iso="2024-05-01T00:00:00+00:00", to_iso="2024-05-07T23:59:59+00:00")


@pytest.fixture
async def adapter(asgi_transport):
    rest = RestApiAdapter(base_url="http://test/", transport=asgi_transport)
    await rest.init()
    return rest


def _mock_adapter(handler):
    return RestApiAdapter(base_url="http://test", transport=httpx.MockTransport(handler))


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_init_connects(self, adapter):
        assert adapter.is_ready()
        assert adapter.get_auth_state() is AuthState.CONNECTED

    def test_trailing_slash_stripped(self):
        assert RestApiAdapter(base_url="http://localhost:8787/").base_url == "http://localhost:8787"

    @pytest.mark.asyncio
    async def test_unhealthy_backend(self):
        rest = _mock_adapter(lambda request: httpx.Response(503, json={"status": "degraded"}))
        with pytest.raises(StorageError):
            await rest.init()
        assert not rest.is_ready()
        assert rest.get_auth_state() is AuthState.NEEDS_LOGIN

    @pytest.mark.asyncio
    async def test_unreachable_backend(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        rest = _mock_adapter(refuse)
        with pytest.raises(StorageError):
            await rest.init()
        assert rest.get_auth_state() is AuthState.NEEDS_LOGIN

    @pytest.mark.asyncio
    async def test_operations_before_init_raise(self, asgi_transport, make_rating):
        rest = RestApiAdapter(base_url="http://test", transport=asgi_transport)
        with pytest.raises(NotConnectedError):
            await rest.append_rating(make_rating())

    def test_capabilities(self):
        rest = RestApiAdapter()
        assert isinstance(rest, SettingsCapable)
        assert not isinstance(rest, SignInCapable)


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_ratings(self, adapter, make_rating):
        inside = make_rating(7, days_ago=1)
        await adapter.append_rating(inside)
        await adapter.append_rating(make_rating(2, days_ago=10))
        assert await adapter.list_ratings(WEEK) == [inside]

    @pytest.mark.asyncio
    async def test_check_ins(self, adapter, make_check_in):
        entry = make_check_in(
            words=("calm", "calm"),
            intensity={"stress": 4},
            context_tags=("work", "sleep"),
            suggested_words_used=("calm",),
        )
        await adapter.append_check_in(entry)
        assert await adapter.list_check_ins(WEEK) == [entry]

    @pytest.mark.asyncio
    async def test_settings_upsert(self, adapter):
        await adapter.save_settings({"locale": "pl", "theme_preference": "dark"})
        await adapter.save_settings({"locale": "en"})
        assert await adapter.load_settings() == {"locale": "en", "theme_preference": "dark"}

    @pytest.mark.asyncio
    async def test_settings_round_trip_is_idempotent(self, adapter):
        await adapter.save_settings({"reminder_enabled": "1"})
        loaded = await adapter.load_settings()
        await adapter.save_settings(loaded)
        assert await adapter.load_settings() == loaded


class TestMalformedResponses:
    @pytest.mark.asyncio
    async def test_bad_items_are_dropped(self):
        def handler(request):
            if request.url.path == "/api/health":
                return httpx.Response(200, json={"status": "ok"})
            return httpx.Response(200, json={"items": [
                {"timestamp": "bad", "rating": 3},
                {"timestamp": "2024-05-07T10:00:00+00:00", "rating": 42},
                {"timestamp": "2024-05-07T10:00:00+00:00", "rating": 3},
            ]})

        rest = _mock_adapter(handler)
        await rest.init()
        ratings = await rest.list_ratings(WEEK)
        assert [e.rating for e in ratings] == [3]

    @pytest.mark.asyncio
    async def test_server_error_on_append(self, make_rating):
        def handler(request):
            if request.url.path == "/api/health":
                return httpx.Response(200, json={"status": "ok"})
            return httpx.Response(500)

        rest = _mock_adapter(handler)
        await rest.init()
        with pytest.raises(StorageError):
            await rest.append_rating(make_rating())

    @pytest.mark.asyncio
    async def test_range_sent_as_query_params(self):
        seen = {}

        def handler(request):
            if request.url.path == "/api/checkins":
                seen.update(request.url.params)
            return httpx.Response(200, json={"status": "ok", "items": []})

        rest = _mock_adapter(handler)
        await rest.init()
        await rest.list_check_ins(WEEK)
        assert seen == {"from": WEEK.from_iso, "to": WEEK.to_iso}
