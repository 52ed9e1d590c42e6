import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .errors import ProviderError
from .streaming import iter_events, iter_lines

logger = logging.getLogger("uvicorn.error")

WEB_SEARCH_TOOL_NAME = "web_search"
WEB_SEARCH_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": WEB_SEARCH_TOOL_NAME,
        "strict": True,
        "description": (
            "Search the web for current information, recent events, or specific facts. Use this tool "
            "whenever the question requires up-to-date data beyond your training knowledge."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query to look up on the web.",
                },
            },
            "required": ["query"],
            "additionalProperties": False,
        },
    },
}


def build_chat_payload(
    model: str,
    messages: List[Dict[str, Any]],
    max_tokens: int,
    tools: Optional[List[Dict[str, Any]]] = None,
    tool_choice: Optional[str] = None,
    reasoning_format: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "stream": True,
    }
    if tools:
        payload["tools"] = tools
        if tool_choice:
            payload["tool_choice"] = tool_choice
    if reasoning_format:
        payload["reasoning_format"] = reasoning_format
    return payload


def _error_message(body: bytes, status_code: int) -> str:
    try:
        data = json.loads(body.decode("utf-8", errors="replace"))
    except ValueError:
        data = None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"].strip():
            return error["message"]
        if isinstance(error, str) and error.strip():
            return error
        message = data.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return f"HTTP {status_code}"


class CerebrasClient:
    """Streaming chat-completions client for an OpenAI-compatible provider."""

    def __init__(self, base_url: str, api_key: Optional[str]):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        # The stream body has no read deadline; it ends with the provider's sentinel.
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=10.0),
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key or ''}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    async def stream_chat(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """Yield parsed stream events for one completion request.

        Raises ProviderError before the first event when the provider answers
        with a non-success status.
        """
        url = f"{self.base_url}/chat/completions"
        try:
            async with self.client.stream("POST", url, json=payload, headers=self._headers()) as resp:
                if resp.status_code >= 400:
                    body = await resp.aread()
                    message = _error_message(body, resp.status_code)
                    logger.error("Provider HTTP %s: %s", resp.status_code, message)
                    raise ProviderError(message, resp.status_code)
                async for event in iter_events(iter_lines(resp.aiter_bytes())):
                    yield event
        except httpx.RequestError as exc:
            logger.error("Provider request failed: %s", exc)
            raise ProviderError(f"Provider request failed: {exc}") from exc

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
