"""Cooperative cancellation flag shared between a transport and the publisher."""

from __future__ import annotations

import asyncio
from typing import Optional


class AbortSignal:
    """Set once by the caller; checked between upstream events."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str = "aborted") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()
