"""Session persistence: bounded, repaired history in the TTL key-value store."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from .history import DEFAULT_MAX_ITEMS, apply_retention, ensure_tool_pairing, repair_tool_outputs
from .items import ConversationItem
from .sanitizer import HistorySanitizer
from .session_data import SessionRecord
from ...infra.errors import InvariantViolation
from ...infra.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class SessionStore:
    """Per-session conversation history.

    Every read and write runs the same pipeline: sanitize, keep the last
    ``max_items``, drop orphaned tool outputs. Writes are whole-record
    read-modify-write with no cross-process lock, so at most one writer per
    session is assumed.

    Backing store errors propagate as ``BackingStoreUnavailable``.
    """

    KEY_PREFIX = "agent-session:"

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        max_items: int = DEFAULT_MAX_ITEMS,
        ttl_seconds: Optional[int] = None,
        sanitizer: Optional[HistorySanitizer] = None,
    ):
        self._kv = kv
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self.sanitizer = sanitizer or HistorySanitizer()

    def key_for(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    def pipeline(self, items: List[ConversationItem]) -> List[ConversationItem]:
        """sanitize → retain → repair"""
        sanitized = self.sanitizer.sanitize(items)
        return repair_tool_outputs(apply_retention(sanitized, self.max_items))

    async def _load_raw(self, session_id: str) -> List[ConversationItem]:
        raw: Any = await self._kv.get(self.key_for(session_id))
        try:
            record = SessionRecord.from_stored(session_id, raw)
        except ValueError as e:
            logger.error("Discarding unreadable session record %s: %s", session_id, e)
            return []
        return record.items

    async def _write(self, session_id: str, items: List[ConversationItem]) -> None:
        key = self.key_for(session_id)
        if not items:
            await self._kv.delete(key)
            return
        record = SessionRecord(session_id=session_id, items=items, ttl=self.ttl_seconds)
        await self._kv.set(key, record.to_dict(), ttl_seconds=self.ttl_seconds)

    async def get(self, session_id: str, limit: Optional[int] = None) -> List[ConversationItem]:
        """Load sanitized, bounded, repaired history. Never writes."""
        raw_items = await self._load_raw(session_id)
        try:
            ensure_tool_pairing(raw_items, context=f"session {session_id}")
        except InvariantViolation as e:
            logger.error("Stored history violates tool pairing, serving repaired copy: %s", e)
        items = self.pipeline(raw_items)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    async def append(self, session_id: str, new_items: List[ConversationItem]) -> None:
        if not new_items:
            return
        existing = await self._load_raw(session_id)
        items = self.pipeline(existing + list(new_items))
        await self._write(session_id, items)
        logger.debug("Session %s now holds %d items", session_id, len(items))

    async def pop_last(self, session_id: str) -> Optional[ConversationItem]:
        """Remove and return the newest item, or None when the session is empty."""
        items = self.pipeline(await self._load_raw(session_id))
        if not items:
            return None
        last = items.pop()
        await self._write(session_id, items)
        return last

    async def clear(self, session_id: str) -> None:
        await self._kv.delete(self.key_for(session_id))
        logger.info("Session cleared: %s", session_id)
