import json

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from macai.errors import ProviderError
from tests.fakes import FakeProviderClient, FakeSearchClient, content_event, search_turn


def parse_lines(text: str):
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@pytest.mark.asyncio
async def test_ping(client):
    res = await client.get("/ping")
    assert res.status_code == 200
    assert res.json() == {"ok": True}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"messages": []}])
async def test_chat_rejects_missing_messages(client, body):
    res = await client.post("/api/chat", json=body)
    assert res.status_code == 400
    assert res.json()["detail"] == "messages array required"
    assert client.fake_provider.calls == []


@pytest.mark.asyncio
async def test_chat_rejects_missing_api_key(app_factory):
    app, provider, _ = app_factory(cerebras_api_key=None)
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
            assert res.status_code == 500
            assert res.json()["detail"] == "CEREBRAS_API_KEY not set"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_chat_streams_ndjson_events(app_factory):
    provider = FakeProviderClient(turns=[search_turn("latest news"), [content_event("Here "), content_event("it is.")]])
    app, _, search = app_factory(fake_provider=provider)
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.post(
                "/api/chat",
                json={"messages": [{"role": "user", "content": "news?"}], "search": True},
            )
            assert res.status_code == 200
            assert res.headers["content-type"].startswith("application/x-ndjson")
            assert res.headers["cache-control"] == "no-cache"
            assert res.headers["x-accel-buffering"] == "no"
            events = parse_lines(res.text)

    assert [ev["type"] for ev in events] == ["search", "chunk", "chunk", "sources", "done"]
    assert events[0]["query"] == "latest news"
    assert events[1]["text"] + events[2]["text"] == "Here it is."
    assert len(events[3]["sources"]) == 2
    assert isinstance(events[4]["elapsed_ms"], int)
    assert provider.calls[0]["tool_choice"] == "required"
    assert search.calls[0]["count"] == 20


@pytest.mark.asyncio
async def test_chat_accepts_no_search_flag(app_factory):
    provider = FakeProviderClient()
    app, _, _ = app_factory(fake_provider=provider)
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.post(
                "/api/chat",
                json={"messages": [{"role": "user", "content": "hello"}], "search": True, "noSearch": True},
            )
            assert res.status_code == 200
    assert "tools" not in provider.calls[0]


@pytest.mark.asyncio
async def test_provider_error_ends_stream_with_error_event(app_factory):
    provider = FakeProviderClient(error=ProviderError("Invalid API key", 401))
    app, _, _ = app_factory(fake_provider=provider)
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
            assert res.status_code == 200
            events = parse_lines(res.text)
    assert events == [{"type": "error", "message": "Invalid API key"}]


@pytest.mark.asyncio
async def test_search_health_reports_unreachable(app_factory):
    app, _, _ = app_factory(fake_search=FakeSearchClient(healthy=False))
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.get("/api/search-health")
            assert res.status_code == 503
            assert res.json()["ok"] is False


@pytest.mark.asyncio
async def test_clients_closed_on_shutdown(app_factory):
    app, provider, search = app_factory()
    async with LifespanManager(app):
        pass
    assert provider.closed
    assert search.closed


@pytest.mark.asyncio
async def test_search_health_non_success_status_is_not_503(app_factory):
    app, _, _ = app_factory(fake_search=FakeSearchClient(health_status_code=500))
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.get("/api/search-health")
            assert res.status_code == 200
            assert res.json() == {"ok": False, "status_code": 500, "searxng": "http://search.test"}
