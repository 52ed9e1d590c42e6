import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .config import AppSettings, load_settings
from .errors import ClientInputError, ConfigurationError
from .llm import CerebrasClient
from .modes import policy_from_flags
from .orchestrator import ChatOrchestrator
from .relay import ClientRelay
from .schemas import ChatRequest
from .search import SearxngClient

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_provider_client(request: Request) -> CerebrasClient:
    return request.app.state.provider_client


def get_search_client(request: Request) -> SearxngClient:
    return request.app.state.search_client


def validate_chat_request(payload: ChatRequest, settings: AppSettings) -> None:
    if not payload.messages:
        raise ClientInputError("messages array required")
    if not settings.cerebras_api_key:
        raise ConfigurationError("CEREBRAS_API_KEY not set")


@router.get("/ping")
async def ping():
    return {"ok": True}


@router.get("/api/search-health")
async def search_health(search: SearxngClient = Depends(get_search_client)):
    status = await search.health(timeout_s=5.0)
    if not status.get("error"):
        return status
    return JSONResponse(status_code=503, content=status)


@router.post("/api/chat")
async def chat(
    payload: ChatRequest,
    settings: AppSettings = Depends(get_settings),
    provider: CerebrasClient = Depends(get_provider_client),
    search: SearxngClient = Depends(get_search_client),
):
    try:
        validate_chat_request(payload, settings)
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    policy = policy_from_flags(
        search=payload.search,
        think=payload.think,
        fast=payload.fast,
        no_search=payload.no_search,
    )
    orchestrator = ChatOrchestrator(provider, search, settings.model, max_turns=settings.max_tool_turns)
    messages = [message.to_provider() for message in payload.messages]
    return ClientRelay(orchestrator.run(messages, policy)).response()


async def _check_search(search: Any) -> None:
    status = await search.health(timeout_s=3.0)
    if status.get("ok"):
        logger.info("SearXNG reachable at %s", status.get("searxng"))
    elif status.get("error"):
        logger.warning("SearXNG not reachable at %s (run: docker compose up -d)", status.get("searxng"))
    else:
        logger.warning("SearXNG returned HTTP %s at %s", status.get("status_code"), status.get("searxng"))


def create_app(
    settings: AppSettings,
    *,
    provider_client: Optional[CerebrasClient] = None,
    search_client: Optional[SearxngClient] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Listening on http://%s:%s", app.state.settings.host, app.state.settings.port)
        logger.debug("Settings: %s", app.state.settings.to_safe_dict())
        if not app.state.settings.cerebras_api_key:
            logger.warning("CEREBRAS_API_KEY not set")
        await _check_search(app.state.search_client)
        try:
            yield
        finally:
            await app.state.provider_client.close()
            await app.state.search_client.close()

    app = FastAPI(title="MacAI Chat Relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.provider_client = provider_client or CerebrasClient(
        settings.provider_base_url, settings.cerebras_api_key
    )
    app.state.search_client = search_client or SearxngClient(
        settings.searxng_url, timeout_s=settings.search_timeout_s
    )
    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    try:
        uvicorn.run(app, host=settings.host, port=settings.port)
    except KeyboardInterrupt:
        pass
