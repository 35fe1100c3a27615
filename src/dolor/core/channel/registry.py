"""In-process cache of chat session handles."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .session_resolver import ChannelSessionResolver
from ..session.persistence import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TTL_SECONDS = 600.0


def _telegram_session_id(chat_key: str) -> str:
    return ChannelSessionResolver.resolve("telegram", chat_key)


@dataclass
class ChatSessionHandle:
    """Cached per-chat state. Losing it only costs a resent instruction."""

    chat_key: str
    session_id: str
    idle_expires_at: float
    last_instruction_fingerprint: Optional[str] = None
    subject_id: Optional[Any] = None


class ChatSessionRegistry:
    """Maps chat keys to session handles with a sliding idle expiry.

    Purely advisory: the session id is derived deterministically from the chat
    key, so an evicted or expired handle re-resolves to the same history.
    Expired handles are swept from ``resolve`` at most once per idle TTL.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        idle_ttl_seconds: float = DEFAULT_IDLE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        session_id_factory: Callable[[str], str] = _telegram_session_id,
    ):
        self._store = store
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._session_id_factory = session_id_factory
        self._handles: Dict[str, ChatSessionHandle] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, chat_key: str) -> bool:
        return chat_key in self._handles

    def _new_handle(self, chat_key: str, now: float) -> ChatSessionHandle:
        handle = ChatSessionHandle(
            chat_key=chat_key,
            session_id=self._session_id_factory(chat_key),
            idle_expires_at=now + self.idle_ttl_seconds,
        )
        self._handles[chat_key] = handle
        return handle

    def resolve(self, chat_key: str) -> ChatSessionHandle:
        now = self._clock()
        if now - self._last_sweep >= self.idle_ttl_seconds:
            self.prune()
        handle = self._handles.get(chat_key)
        if handle is not None and handle.idle_expires_at > now:
            handle.idle_expires_at = now + self.idle_ttl_seconds
            return handle
        if handle is not None:
            logger.debug("Chat session handle for %s idled out", chat_key)
        return self._new_handle(chat_key, now)

    async def reset(self, chat_key: str) -> ChatSessionHandle:
        """Discard the cached handle and the stored history; return a fresh handle."""
        self._handles.pop(chat_key, None)
        session_id = self._session_id_factory(chat_key)
        await self._store.clear(session_id)
        return self._new_handle(chat_key, self._clock())

    def invalidate_instruction_fingerprint(self, chat_key: str) -> None:
        handle = self._handles.get(chat_key)
        if handle is not None:
            handle.last_instruction_fingerprint = None

    def bind_subject(self, chat_key: str, subject_id: Optional[Any]) -> ChatSessionHandle:
        """Record the conversation's bound subject; a change forces the instruction to be resent."""
        handle = self.resolve(chat_key)
        if handle.subject_id != subject_id:
            handle.subject_id = subject_id
            handle.last_instruction_fingerprint = None
        return handle

    def evict(self, chat_key: str) -> None:
        self._handles.pop(chat_key, None)

    def prune(self) -> int:
        """Drop idle-expired handles; returns how many were removed."""
        now = self._clock()
        self._last_sweep = now
        expired = [k for k, h in self._handles.items() if h.idle_expires_at <= now]
        for key in expired:
            del self._handles[key]
        if expired:
            logger.debug("Pruned %d idle chat session handles", len(expired))
        return len(expired)
