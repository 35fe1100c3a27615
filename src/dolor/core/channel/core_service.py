"""Transport-agnostic message processing core.

Any channel (web SSE, Telegram webhook, …) reuses the same
resolve → instruct → load → append → run → publish → persist pipeline.
Transports supply an ``OutputSink`` and turn the framed stream into their
own wire format.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .dedupe import UpdateDedupeGuard
from .registry import ChatSessionHandle, ChatSessionRegistry
from .session_resolver import ChannelSessionResolver
from ..agent.factory import build_intervals_instruction
from ..runtime.abort import AbortSignal
from ..runtime.ports import AgentRuntime, OutputSink
from ..runtime.stream_publisher import PublishResult, StreamingResponsePublisher
from ..session.extra_store import SessionExtraStore
from ..session.items import ConversationItem, Message, assistant_message, system_message, user_message
from ..session.persistence import SessionStore
from ..session.sanitizer import HistorySanitizer
from ..session.session_ids import instruction_fingerprint
from ...infra.config import CoreSettings
from ...infra.errors import UpstreamRunFailure
from ...infra.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class ChannelCoreService:
    """Transport-agnostic 消息处理核心。

    One instance per channel type; instances may share the SessionStore and
    the dedupe guard.
    """

    def __init__(
        self,
        store: SessionStore,
        registry: ChatSessionRegistry,
        runtime: AgentRuntime,
        *,
        dedupe: Optional[UpdateDedupeGuard] = None,
        extra_store: Optional[SessionExtraStore] = None,
        instruction_builder: Optional[Callable[[Any], str]] = build_intervals_instruction,
        heartbeat_interval_ms: int = 5000,
    ) -> None:
        self.store = store
        self.registry = registry
        self.runtime = runtime
        self.dedupe = dedupe
        self.extra_store = extra_store
        self.instruction_builder = instruction_builder
        self.heartbeat_interval_ms = heartbeat_interval_ms

    @classmethod
    def from_settings(
        cls,
        settings: CoreSettings,
        kv: KeyValueStore,
        runtime: AgentRuntime,
        *,
        channel_type: str = "telegram",
        store: Optional[SessionStore] = None,
        **kwargs: Any,
    ) -> "ChannelCoreService":
        """Wire a core for *channel_type* from settings over one backing store."""
        if store is None:
            store = SessionStore(
                kv,
                max_items=settings.max_items,
                ttl_seconds=settings.session_ttl_seconds,
                sanitizer=HistorySanitizer(settings.large_tools),
            )
        registry = ChatSessionRegistry(
            store,
            idle_ttl_seconds=settings.idle_cache_ttl_seconds,
            session_id_factory=lambda chat_key: ChannelSessionResolver.resolve(channel_type, chat_key),
        )
        kwargs.setdefault("dedupe", UpdateDedupeGuard(kv, ttl_seconds=settings.dedupe_ttl_seconds))
        kwargs.setdefault("extra_store", SessionExtraStore(kv))
        kwargs.setdefault("heartbeat_interval_ms", settings.heartbeat_interval_ms)
        return cls(store, registry, runtime, **kwargs)

    # ── inbound dedupe ───────────────────────────────────────────

    async def claim_update(self, update_id: Any) -> bool:
        if self.dedupe is None:
            return True
        return await self.dedupe.claim(update_id)

    # ── session lifecycle ────────────────────────────────────────

    def resolve(self, chat_key: str) -> ChatSessionHandle:
        return self.registry.resolve(chat_key)

    async def reset(self, chat_key: str) -> ChatSessionHandle:
        handle = await self.registry.reset(chat_key)
        if self.extra_store is not None:
            await self.extra_store.delete(handle.session_id)
        return handle

    async def history(self, chat_key: str, limit: Optional[int] = None) -> List[ConversationItem]:
        handle = self.registry.resolve(chat_key)
        return await self.store.get(handle.session_id, limit=limit)

    async def _bind_subject(self, handle: ChatSessionHandle, subject_id: Any) -> None:
        if subject_id is None or handle.subject_id == subject_id:
            return
        self.registry.bind_subject(handle.chat_key, subject_id)
        if self.extra_store is not None:
            await self.extra_store.merge(handle.session_id, {"athleteId": subject_id})
        logger.info("Session %s bound to subject %s", handle.session_id, subject_id)

    def _instruction_items(self, handle: ChatSessionHandle, force: bool) -> List[ConversationItem]:
        if self.instruction_builder is None:
            return []
        fingerprint = instruction_fingerprint(handle.subject_id)
        if not force and handle.last_instruction_fingerprint == fingerprint:
            return []
        return [system_message(self.instruction_builder(handle.subject_id))]

    # ── turn execution ───────────────────────────────────────────

    async def run_turn(
        self,
        chat_key: str,
        text: str,
        sink: OutputSink,
        *,
        abort: Optional[AbortSignal] = None,
        subject_id: Any = None,
        correlation: Optional[Dict[str, Any]] = None,
        force_instruction: bool = False,
    ) -> PublishResult:
        """Run one user turn and stream it to *sink*.

        ``BackingStoreUnavailable`` raised before streaming starts propagates
        to the caller; nothing has been written to the sink at that point.
        """
        handle = self.registry.resolve(chat_key)
        await self._bind_subject(handle, subject_id)
        session_id = handle.session_id

        history = await self.store.get(session_id)
        instruction = self._instruction_items(handle, force_instruction)
        user_item = user_message(text)
        turn_items: List[ConversationItem] = [*instruction, user_item]
        await self.store.append(session_id, turn_items)
        if instruction:
            handle.last_instruction_fingerprint = instruction_fingerprint(handle.subject_id)
        logger.debug("Turn started for %s (history=%d items)", session_id, len(history))

        try:
            run = self.runtime.run(history, turn_items, session_id=session_id)
        except Exception as e:
            await self._rollback_user_item(session_id, user_item)
            raise UpstreamRunFailure(f"Agent runtime failed to start: {e}") from e

        async def _persist(answer: str) -> None:
            produced = list(run.new_items or [])
            if not produced and answer.strip():
                produced = [assistant_message(answer)]
            await self.store.append(session_id, produced)

        correlation = dict(correlation or {})
        publisher = StreamingResponsePublisher(
            self.store,
            session_id,
            user_message_id=correlation.get("user_message_id"),
            assistant_message_id=correlation.get("assistant_message_id"),
            created_at=correlation.get("created_at"),
            heartbeat_interval_ms=self.heartbeat_interval_ms,
        )
        result = await publisher.publish(run.stream_events(), sink, abort=abort, on_complete=_persist)

        if isinstance(result.error, UpstreamRunFailure) and not result.text.strip():
            await self._rollback_user_item(session_id, user_item)
        return result

    async def _rollback_user_item(self, session_id: str, user_item: Message) -> None:
        """Remove the turn's user message when the run produced nothing."""
        try:
            tail = await self.store.get(session_id, limit=1)
            if tail and tail[0] == user_item:
                await self.store.pop_last(session_id)
                logger.info("Rolled back unanswered user message in %s", session_id)
        except Exception as e:
            logger.warning("Failed to roll back user message in %s: %s", session_id, e)
