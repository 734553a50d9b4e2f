"""Reshape arbitrary inbound payloads into JSON-RPC 2.0 requests."""
import json
import time
from dataclasses import dataclass, field
from typing import Any

from mcp.types import ClientCapabilities, Implementation, InitializeRequestParams

from mcp_bridge.errors import ParseError

JSONRPC_VERSION = "2.0"
INITIALIZE = "initialize"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"
DEFAULT_CLIENT = Implementation(name="openai-mcp", version="1.0.0")


@dataclass(frozen=True)
class NormalizedRequest:
    method: str
    id: Any
    params: Any = field(default_factory=dict)
    jsonrpc: str = JSONRPC_VERSION

    @property
    def is_initialize(self) -> bool:
        return self.method == INITIALIZE

    def to_dict(self) -> dict:
        return {
            "jsonrpc": self.jsonrpc,
            "method": self.method,
            "params": self.params,
            "id": self.id,
        }


def parse_body(raw: bytes) -> dict:
    """Decode an inbound body that is a JSON object or a JSON-encoded string."""
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
        if isinstance(payload, str):
            payload = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"Invalid JSON body: {e}") from e
    if not isinstance(payload, dict):
        raise ParseError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )
    return payload


def initialize_params(
    protocol_version: str = DEFAULT_PROTOCOL_VERSION,
    client: Implementation = DEFAULT_CLIENT,
) -> dict:
    """Default ``initialize`` params identifying the bridge itself."""
    params = InitializeRequestParams(
        protocolVersion=protocol_version,
        capabilities=ClientCapabilities(),
        clientInfo=client,
    )
    return params.model_dump(mode="json", by_alias=True, exclude_none=True)


def _is_set(value: Any) -> bool:
    # empty objects and lists count as set; null, 0, false and "" do not
    if isinstance(value, (dict, list)):
        return True
    return value not in (None, 0, "")


def _fill_initialize_params(params: dict, defaults: dict) -> dict:
    # caller values win, including keys the defaults know nothing about
    if params.get("protocolVersion") and params.get("clientInfo"):
        return params
    filled = dict(defaults)
    filled.update({k: v for k, v in params.items() if v not in (None, "")})
    return filled


def normalize_request(
    payload: dict,
    protocol_version: str = DEFAULT_PROTOCOL_VERSION,
    client: Implementation = DEFAULT_CLIENT,
) -> NormalizedRequest:
    method = payload.get("method") or payload.get("action") or "unknown"

    params: Any = {}
    for key in ("params", "body", "data"):
        if _is_set(payload.get(key)):
            params = payload[key]
            break

    if "id" in payload:
        request_id = payload["id"]
    else:
        request_id = int(time.time() * 1000)

    if method == INITIALIZE:
        defaults = initialize_params(protocol_version, client)
        if isinstance(params, dict):
            params = _fill_initialize_params(params, defaults)
        else:
            params = defaults

    return NormalizedRequest(
        jsonrpc=payload.get("jsonrpc") or JSONRPC_VERSION,
        method=method,
        params=params,
        id=request_id,
    )
