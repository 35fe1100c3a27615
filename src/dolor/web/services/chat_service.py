"""
Chat Service

Bridges HTTP streaming requests to the channel core: one background turn
task per request writes SSE frames into a queue that the response drains.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from ...core.channel.core_service import ChannelCoreService
from ...core.runtime.abort import AbortSignal
from ...core.runtime.stream_publisher import sse_frame
from ...core.session.items import items_to_wire
from ...core.session.session_ids import build_chat_key
from ...infra.errors import BackingStoreUnavailable, UpstreamRunFailure

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE_MESSAGE = "Conversation storage is unavailable. Please try again in a moment."


class QueueSink:
    """OutputSink backed by an asyncio queue; ``None`` marks end of stream."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, frame: str) -> None:
        if self._closed:
            raise ConnectionError("stream closed")
        await self._queue.put(frame)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


class ChatService:
    """Service for streaming web chat turns."""

    def __init__(self, core: ChannelCoreService):
        self.core = core
        # Turn tasks outlive a disconnected client until they notice the abort.
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def chat_key(conversation_id: str, thread_id: Optional[str] = None) -> str:
        return build_chat_key(conversation_id, thread_id)

    async def stream_message(
        self,
        conversation_id: str,
        text: str,
        *,
        thread_id: Optional[str] = None,
        subject_id: Any = None,
    ) -> AsyncIterator[str]:
        """Yield SSE frames for one turn. Closing the iterator aborts the turn."""
        chat_key = self.chat_key(conversation_id, thread_id)
        sink = QueueSink()
        abort = AbortSignal()
        correlation = {
            "user_message_id": uuid.uuid4().hex,
            "assistant_message_id": uuid.uuid4().hex,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        async def _turn() -> None:
            try:
                await self.core.run_turn(
                    chat_key, text, sink,
                    abort=abort, subject_id=subject_id, correlation=correlation,
                )
            except BackingStoreUnavailable as e:
                logger.error("Store unavailable for chat %s: %s", chat_key, e)
                await self._write_error(sink, STORE_UNAVAILABLE_MESSAGE)
            except UpstreamRunFailure as e:
                logger.error("Turn failed to start for chat %s: %s", chat_key, e)
                await self._write_error(sink, str(e))
            except Exception as e:
                logger.error("Unexpected turn failure for chat %s: %s", chat_key, e, exc_info=True)
                await self._write_error(sink, "Unexpected server error.")
            finally:
                await sink.close()

        task = asyncio.create_task(_turn())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        try:
            async for frame in sink.frames():
                yield frame
        finally:
            if not task.done():
                logger.info("Client went away from chat %s; aborting turn", chat_key)
                abort.abort("client disconnected")
            await sink.close()

    @staticmethod
    async def _write_error(sink: QueueSink, message: str) -> None:
        if not sink.closed:
            await sink.write(sse_frame("error", {"message": message}))

    async def get_history(self, conversation_id: str, thread_id: Optional[str] = None) -> List[Dict[str, Any]]:
        items = await self.core.history(self.chat_key(conversation_id, thread_id))
        return items_to_wire(items)

    async def reset(self, conversation_id: str, thread_id: Optional[str] = None) -> str:
        handle = await self.core.reset(self.chat_key(conversation_id, thread_id))
        return handle.session_id
