import logging
from typing import Optional, Protocol

import anyio

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Keyed storage for session tokens issued by the remote endpoint."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, token: str) -> None: ...

    def invalidate(self, key: str) -> None: ...

    def lock(self, key: str) -> anyio.Lock: ...


class InMemorySessionStore:
    """Process-local session tokens, one live token per key."""

    def __init__(self):
        self._tokens: dict[str, str] = {}
        self._locks: dict[str, anyio.Lock] = {}

    def get(self, key: str) -> Optional[str]:
        return self._tokens.get(key)

    def set(self, key: str, token: str) -> None:
        self._tokens[key] = token
        logger.info("Session token stored  key=%r", key)

    def invalidate(self, key: str) -> None:
        if self._tokens.pop(key, None) is not None:
            logger.info("Cleared existing session  key=%r", key)

    def lock(self, key: str) -> anyio.Lock:
        # held while a session for the key is being established
        if key not in self._locks:
            self._locks[key] = anyio.Lock()
        return self._locks[key]
