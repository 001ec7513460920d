"""
Session provider: the acting identity plus its connection status.

Stands in for a wallet connection. The lifecycle controller races every
external call against `wait_lost()` so a dropped session fails in-flight
operations instead of leaving them suspended.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from cryptowill.utils.logging import get_logger

log = get_logger(__name__)


class Session:
    """Mutable connection state for one identity at a time."""

    def __init__(self, identity: Optional[str] = None) -> None:
        self._identity: Optional[str] = None
        self._lost = asyncio.Event()
        if identity:
            self.connect(identity)
        else:
            self._lost.set()

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def connected(self) -> bool:
        return self._identity is not None

    def connect(self, identity: str) -> None:
        if not identity:
            raise ValueError("identity must be non-empty")
        self._identity = identity
        self._lost.clear()
        log.info("[SESSION CONNECTED]", extra={"identity": identity})

    def disconnect(self) -> None:
        previous, self._identity = self._identity, None
        self._lost.set()
        if previous is not None:
            log.info("[SESSION LOST]", extra={"identity": previous})

    async def wait_lost(self) -> None:
        """Return once the session is disconnected."""
        await self._lost.wait()


__all__ = ["Session"]
