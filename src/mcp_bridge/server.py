import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from mcp.types import Implementation

from mcp_bridge.dispatcher import RemoteDispatcher
from mcp_bridge.errors import NO_DETAILS, BridgeError, PayloadTooLargeError
from mcp_bridge.normalizer import normalize_request, parse_body
from mcp_bridge.sessions import InMemorySessionStore, SessionStore
from mcp_bridge.settings import Settings, settings
from mcp_bridge.transcoder import (
    OutputMode,
    buffered_sse_response,
    json_response,
    relay_sse_response,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(levelname)s:%(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BRIDGE_PATH = "/bridge"


async def read_body(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(int(declared), limit)
    body = await request.body()
    if len(body) > limit:
        raise PayloadTooLargeError(len(body), limit)
    return body


def create_app(
    config: Optional[Settings] = None,
    sessions: Optional[SessionStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the bridge application.

    Args:
        config: Settings to use (defaults to the environment-loaded settings)
        sessions: Session token store (defaults to an in-memory store)
        transport: Optional httpx transport for the upstream client
    """
    config = config or settings
    sessions = sessions if sessions is not None else InMemorySessionStore()
    client_info = Implementation(name=config.client_name, version=config.client_version)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with httpx.AsyncClient(transport=transport) as client:
            app.state.dispatcher = RemoteDispatcher(client, sessions, config)
            yield

    app = FastAPI(title="MCP Bridge", lifespan=lifespan)
    app.state.sessions = sessions

    @app.exception_handler(BridgeError)
    async def handle_bridge_error(request: Request, exc: BridgeError):
        logger.error("Bridge error: %s", exc)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse({"error": str(exc), "details": NO_DETAILS}, status_code=500)

    @app.get("/")
    async def health():
        return {"status": "Bridge is running", "endpoint": BRIDGE_PATH}

    @app.post(BRIDGE_PATH)
    async def bridge(request: Request) -> Response:
        payload = parse_body(await read_body(request, config.max_body_bytes))
        logger.debug("Received payload: %s", json.dumps(payload))

        normalized = normalize_request(payload, config.protocol_version, client_info)
        logger.info("Normalized request  method=%s  id=%r", normalized.method, normalized.id)

        mode = OutputMode.from_accept(
            request.headers.get("accept"), config.stream_upstream
        )
        dispatcher: RemoteDispatcher = request.app.state.dispatcher

        if mode is OutputMode.LIVE_SSE:
            upstream = await dispatcher.open_stream(normalized)
            return relay_sse_response(upstream)

        result = await dispatcher.dispatch(normalized)
        if mode is OutputMode.BUFFERED_SSE:
            return buffered_sse_response(result)
        return json_response(result)

    return app


app = create_app()


def main() -> None:
    """Entry point for the bridge server."""
    logger.info("MCP Bridge is running")
    logger.info("Local: http://localhost:%d", settings.port)
    logger.info("Endpoint: %s (POST requests)", BRIDGE_PATH)
    logger.info("Upstream target: %s", settings.upstream_url)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
