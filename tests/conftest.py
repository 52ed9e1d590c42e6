import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from macai.config import AppSettings
from macai.main import create_app
from tests.fakes import FakeProviderClient, FakeSearchClient


def make_settings(**overrides) -> AppSettings:
    settings = AppSettings(
        cerebras_api_key="test-key",
        provider_base_url="http://provider.test/v1",
        model="test-model",
        searxng_url="http://search.test",
        search_timeout_s=1.0,
        max_tool_turns=10,
        host="127.0.0.1",
        port=3000,
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
def app_factory():
    def _factory(
        *,
        fake_provider: FakeProviderClient | None = None,
        fake_search: FakeSearchClient | None = None,
        **settings_overrides,
    ):
        settings = make_settings(**settings_overrides)
        provider = fake_provider or FakeProviderClient()
        search = fake_search or FakeSearchClient()
        app = create_app(settings, provider_client=provider, search_client=search)
        return app, provider, search

    return _factory


@pytest.fixture
async def client(app_factory):
    app, provider, search = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.fake_provider = provider  # type: ignore[attr-defined]
            http_client.fake_search = search  # type: ignore[attr-defined]
            yield http_client
