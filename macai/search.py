import asyncio
import logging
from typing import Any, Dict, List

import httpx

from .errors import ToolExecutionError
from .schemas import SearchOutcome, SearchResult

logger = logging.getLogger("uvicorn.error")

USER_AGENT = "MacAI/1.0"


class SearxngClient:
    def __init__(self, base_url: str, timeout_s: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.client = httpx.AsyncClient(
            timeout=timeout_s,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    async def search(self, query: str, count: int = 5) -> SearchOutcome:
        """Run one search; failures come back as `SearchOutcome.error`, never raised."""
        try:
            hits = await asyncio.wait_for(self._fetch(query), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            message = f"Search timed out after {self.timeout_s:g}s"
            logger.warning("SearXNG search error: %s", message)
            logger.warning("  -> Request timed out. Is SearXNG running? Check: docker compose up -d")
            return SearchOutcome(error=message)
        except httpx.TimeoutException as exc:
            message = str(exc) or "Search request timed out"
            logger.warning("SearXNG search error: %s", message)
            logger.warning("  -> Request timed out. Is SearXNG running? Check: docker compose up -d")
            return SearchOutcome(error=message)
        except httpx.ConnectError as exc:
            logger.warning("SearXNG search error: %s", exc)
            logger.warning("  -> Connection refused at %s. Start SearXNG: docker compose up -d", self.base_url)
            return SearchOutcome(error=str(exc) or "Connection failed")
        except (httpx.RequestError, ToolExecutionError) as exc:
            logger.warning("SearXNG search error: %s", exc)
            return SearchOutcome(error=str(exc))
        return SearchOutcome(results=[_to_result(hit) for hit in hits[: max(count, 0)]])

    async def _fetch(self, query: str) -> List[Dict[str, Any]]:
        params = {"q": query, "format": "json", "safesearch": "0"}
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        resp = await self.client.get(f"{self.base_url}/search", params=params, headers=headers)
        if resp.status_code >= 400:
            raise ToolExecutionError(f"SearXNG HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ToolExecutionError(f"SearXNG returned invalid JSON: {exc}") from exc
        results = data.get("results") if isinstance(data, dict) else None
        return [hit for hit in results or [] if isinstance(hit, dict)]

    async def health(self, timeout_s: float = 5.0) -> Dict[str, Any]:
        try:
            resp = await self.client.get(f"{self.base_url}/healthz", timeout=timeout_s)
        except httpx.RequestError as exc:
            return {"ok": False, "error": str(exc) or exc.__class__.__name__, "searxng": self.base_url}
        return {"ok": resp.is_success, "status_code": resp.status_code, "searxng": self.base_url}

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


def _to_result(hit: Dict[str, Any]) -> SearchResult:
    return SearchResult(
        title=str(hit.get("title") or ""),
        url=str(hit.get("url") or ""),
        desc=str(hit.get("content") or ""),
    )
