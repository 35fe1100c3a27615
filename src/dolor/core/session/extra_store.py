"""Per-session side record (linked athlete id and similar small values)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ...infra.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class SessionExtraStore:
    """JSON object stored next to the session history under its own key."""

    KEY_PREFIX = "agent-session-extra:"
    DEFAULT_TTL_SECONDS = 600

    def __init__(self, kv: KeyValueStore, *, ttl_seconds: Optional[int] = DEFAULT_TTL_SECONDS):
        self._kv = kv
        self.ttl_seconds = ttl_seconds

    def key_for(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        value = await self._kv.get(self.key_for(session_id))
        if value is None:
            return None
        if not isinstance(value, dict):
            logger.warning("Ignoring non-object session extra for %s", session_id)
            return None
        return value

    async def set(self, session_id: str, extra: Dict[str, Any]) -> None:
        await self._kv.set(self.key_for(session_id), dict(extra), ttl_seconds=self.ttl_seconds)

    async def merge(self, session_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge *updates* into the stored object and return the result."""
        merged = {**(await self.get(session_id) or {}), **updates}
        await self.set(session_id, merged)
        return merged

    async def delete(self, session_id: str) -> None:
        await self._kv.delete(self.key_for(session_id))
