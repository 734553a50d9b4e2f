"""Render remote results in the transport the caller asked for."""
import enum
import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx
from fastapi.responses import JSONResponse, StreamingResponse

from mcp_bridge.errors import StreamError

logger = logging.getLogger(__name__)

EVENT_STREAM = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def format_event(data: Any) -> str:
    """Frame a JSON value as a single SSE ``data:`` event."""
    return f"data: {json.dumps(data)}\n\n"


class OutputMode(enum.Enum):
    JSON = "json"
    BUFFERED_SSE = "buffered_sse"
    LIVE_SSE = "live_sse"

    @classmethod
    def from_accept(
        cls, accept: Optional[str], stream_upstream: bool = False
    ) -> "OutputMode":
        if not accept or EVENT_STREAM not in accept:
            return cls.JSON
        return cls.LIVE_SSE if stream_upstream else cls.BUFFERED_SSE

    @property
    def is_sse(self) -> bool:
        return self is not OutputMode.JSON


def json_response(value: Any) -> JSONResponse:
    return JSONResponse(value)


def buffered_sse_response(value: Any) -> StreamingResponse:
    async def events() -> AsyncIterator[str]:
        yield format_event(value)

    return StreamingResponse(events(), media_type=EVENT_STREAM, headers=SSE_HEADERS)


async def relay_chunks(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """
    Yield upstream chunks verbatim until the stream ends.

    A broken stream ends with one ``data: {"error": ...}`` event. The
    upstream response is closed however the relay ends, including when the
    caller disconnects and the generator is cancelled.
    """
    try:
        async for chunk in upstream.aiter_bytes():
            logger.debug("Streaming chunk: %r", chunk[:100])
            yield chunk
        logger.info("Stream ended gracefully")
    except (httpx.HTTPError, httpx.StreamError) as e:
        error = StreamError(f"Upstream stream failed: {e!r}")
        logger.error("Stream error: %s", error)
        yield format_event({"error": str(error)}).encode("utf-8")
    finally:
        await upstream.aclose()


def relay_sse_response(upstream: httpx.Response) -> StreamingResponse:
    return StreamingResponse(
        relay_chunks(upstream), media_type=EVENT_STREAM, headers=SSE_HEADERS
    )
