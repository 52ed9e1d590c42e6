import logging
from typing import AsyncGenerator, AsyncIterator, Dict, Optional

from fastapi.responses import StreamingResponse

from .errors import ProviderError
from .schemas import ErrorEvent, OutboundEvent

logger = logging.getLogger("uvicorn.error")

NDJSON_MEDIA_TYPE = "application/x-ndjson"
STREAM_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ClientRelay:
    """Owns one outbound event stream: one JSON object per line, closed once."""

    def __init__(self, events: AsyncGenerator[OutboundEvent, None]):
        self._events = events
        self._started = False
        self.closed = False

    @staticmethod
    def emit(event: OutboundEvent) -> str:
        return event.model_dump_json() + "\n"

    async def frames(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("relay stream already consumed")
        self._started = True
        error: Optional[ErrorEvent] = None
        try:
            async for event in self._events:
                yield self.emit(event)
        except ProviderError as exc:
            logger.error("Provider error: %s", exc.message)
            error = ErrorEvent(message=exc.message)
        except Exception as exc:
            logger.exception("Chat orchestration failed")
            error = ErrorEvent(message=str(exc) or exc.__class__.__name__)
        finally:
            # Runs on client disconnect too, releasing any open provider stream.
            await self._events.aclose()
        if error is not None:
            yield self.emit(error)
        self.closed = True

    def response(self) -> StreamingResponse:
        return StreamingResponse(self.frames(), media_type=NDJSON_MEDIA_TYPE, headers=dict(STREAM_HEADERS))
