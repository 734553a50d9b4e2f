import json
import logging
from typing import Any, Optional

import anyio
import httpx
from httpx_sse import EventSource, SSEError
from mcp.types import Implementation

from mcp_bridge.errors import SSEDecodeError, UpstreamError
from mcp_bridge.normalizer import INITIALIZE, JSONRPC_VERSION, NormalizedRequest, initialize_params
from mcp_bridge.sessions import SessionStore
from mcp_bridge.settings import Settings

logger = logging.getLogger(__name__)

ACCEPT = "application/json, text/event-stream"
EVENT_STREAM = "text/event-stream"
SSE_FIELDS = ("event:", "data:", "id:", "retry:", ":")


def _is_event_stream(response: httpx.Response) -> bool:
    if EVENT_STREAM in response.headers.get("content-type", ""):
        return True
    # SSE-framed bodies are sometimes labelled as JSON or plain text
    return response.text.lstrip().startswith(SSE_FIELDS)


def decode_sse_payload(response: httpx.Response) -> Any:
    """Return the JSON value carried by the first data event of an SSE body."""
    if EVENT_STREAM not in response.headers.get("content-type", ""):
        response = httpx.Response(
            response.status_code,
            headers={"content-type": EVENT_STREAM},
            content=response.content,
        )
    try:
        for sse in EventSource(response).iter_sse():
            if sse.data:
                return json.loads(sse.data)
    except SSEError as e:
        raise SSEDecodeError(f"Malformed SSE body: {e}", raw=response.text) from e
    except json.JSONDecodeError as e:
        raise SSEDecodeError(f"Invalid JSON in SSE data: {e}", raw=response.text) from e
    raise SSEDecodeError("SSE body carries no data", raw=response.text)


def decode_response(response: httpx.Response) -> Any:
    """Turn a buffered remote response into a JSON value, or its raw text."""
    if _is_event_stream(response):
        try:
            value = decode_sse_payload(response)
        except SSEDecodeError as e:
            logger.warning("Failed to parse SSE data: %s", e)
            return response.text
        logger.debug("Parsed SSE data: %s", value)
        return value
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
    except httpx.ResponseNotRead:
        return None


class RemoteDispatcher:
    """Sends normalized requests to the remote endpoint, keeping a live session."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        sessions: SessionStore,
        config: Settings,
    ):
        self._client = client
        self._sessions = sessions
        self._config = config
        self._client_info = Implementation(
            name=config.client_name, version=config.client_version
        )

    @property
    def session_key(self) -> str:
        return self._config.session_key

    async def dispatch(self, request: NormalizedRequest) -> Any:
        response = await self._round_trip(
            request, self._config.request_timeout, stream=False
        )
        logger.debug("Upstream response data: %s", response.text)
        return decode_response(response)

    async def open_stream(self, request: NormalizedRequest) -> httpx.Response:
        """
        Start a streamed round-trip.

        The status is checked before returning, so failures still surface as
        UpstreamError. The caller owns the response and must close it.
        """
        logger.info("Opening SSE stream to %s", self._config.upstream_url)
        return await self._round_trip(
            request, self._config.stream_timeout, stream=True
        )

    async def _round_trip(
        self, request: NormalizedRequest, timeout: float, stream: bool
    ) -> httpx.Response:
        key = self.session_key
        if request.is_initialize:
            async with self._sessions.lock(key):
                self._sessions.invalidate(key)
                response = await self._send(
                    request.to_dict(), self._headers(), timeout, stream
                )
                self._capture_token(response)
            return response

        headers = await self._session_headers()
        return await self._send(request.to_dict(), headers, timeout, stream)

    async def _session_headers(self) -> dict:
        key = self.session_key
        async with self._sessions.lock(key):
            token = self._sessions.get(key)
            if token is None:
                logger.info("Auto-initializing to get session token")
                response = await self._send(
                    self._handshake_payload(),
                    self._headers(),
                    self._config.request_timeout,
                    stream=False,
                )
                token = self._capture_token(response)

        headers = self._headers()
        if token:
            headers[self._config.session_header] = token
            logger.debug("Using session token for key=%r", key)
        return headers

    def _handshake_payload(self) -> dict:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "method": INITIALIZE,
            "params": initialize_params(
                self._config.protocol_version, self._client_info
            ),
            "id": 0,
        }

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "Accept": ACCEPT}

    def _capture_token(self, response: httpx.Response) -> Optional[str]:
        token = response.headers.get(self._config.session_header)
        if token:
            self._sessions.set(self.session_key, token)
        return token

    async def _send(
        self, payload: dict, headers: dict, timeout: float, stream: bool
    ) -> httpx.Response:
        url = self._config.upstream_url
        logger.info("Sending %s to %s", payload.get("method"), url)
        request = self._client.build_request(
            "POST", url, json=payload, headers=headers, timeout=timeout
        )
        try:
            # httpx timeouts are per phase; bound the whole exchange too
            with anyio.fail_after(timeout):
                response = await self._client.send(request, stream=stream)
        except (httpx.TimeoutException, TimeoutError) as e:
            logger.error("Upstream request timeout after %gs: %r", timeout, e)
            raise UpstreamError(f"Upstream request timeout after {timeout:g}s") from e
        except httpx.HTTPError as e:
            logger.error("Upstream request failed: %r", e)
            raise UpstreamError(f"Upstream request failed: {e!r}") from e

        logger.info("Upstream response status: %d", response.status_code)
        if response.is_success:
            return response

        if stream:
            try:
                await response.aread()
            except httpx.HTTPError:
                logger.exception("Failed to read upstream error body")
            finally:
                await response.aclose()
        body = _error_body(response)
        logger.error("Upstream error status=%d body=%s", response.status_code, body)
        raise UpstreamError(
            f"Upstream returned HTTP {response.status_code}",
            upstream_status=response.status_code,
            body=body,
        )
