import codecs
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Dict

from .errors import StreamParseError

logger = logging.getLogger("uvicorn.error")

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


async def iter_lines(chunks: AsyncIterable[bytes], encoding: str = "utf-8") -> AsyncIterator[str]:
    """Split a byte stream into complete text lines.

    Bytes are decoded incrementally so a multi-byte character split across two
    reads still decodes. A trailing line without a newline at end of stream is
    dropped.
    """
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    buffer = ""
    async for chunk in chunks:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            yield line[:-1] if line.endswith("\r") else line


def parse_event_payload(payload: str) -> Dict[str, Any]:
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise StreamParseError(payload, str(exc)) from exc
    if not isinstance(data, dict):
        raise StreamParseError(payload, "expected a JSON object")
    return data


async def iter_events(lines: AsyncIterable[str]) -> AsyncIterator[Dict[str, Any]]:
    """Yield JSON payloads from `data:` lines until the `[DONE]` sentinel."""
    async for line in lines:
        if not line.startswith(DATA_PREFIX):
            continue
        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            return
        if not payload:
            continue
        try:
            yield parse_event_payload(payload)
        except StreamParseError as exc:
            logger.warning("Dropping stream payload: %s", exc)
