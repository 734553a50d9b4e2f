"""Error kinds raised while bridging a request."""

from typing import Any, Optional

NO_DETAILS = "No additional info"


class BridgeError(Exception):
    """Base exception for the bridge, rendered as ``{error, details}``."""

    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict:
        details = self.details if self.details is not None else NO_DETAILS
        return {"error": str(self), "details": details}


class ParseError(BridgeError):
    """Inbound body is not a JSON object."""

    pass


class PayloadTooLargeError(ParseError):
    """Inbound body exceeds the configured size limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Request body of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class UpstreamError(BridgeError):
    """
    The remote call failed.

    ``upstream_status`` is the remote HTTP status, or None when the request
    never got a response (transport failure or timeout).
    """

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        body: Any = None,
    ):
        super().__init__(message, details=body)
        self.upstream_status = upstream_status
        self.body = body


class StreamError(BridgeError):
    """A live relay from the remote broke after headers were sent."""

    pass


class SSEDecodeError(BridgeError):
    """SSE data from the remote could not be decoded as JSON."""

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw
