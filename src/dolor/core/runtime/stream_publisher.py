"""
Streaming response publisher

Republishes a live agent run as server-sent-event frames:

    start → (token | progress)* → done | error

with ``: keep-alive`` comments between frames while the run is idle. Exactly
one terminal frame is written per stream, and never after a heartbeat that
follows it. Partial answers are persisted as interrupted assistant messages
when the run fails or the caller goes away.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from .abort import AbortSignal
from .ports import OutputSink
from .run_events import RunEventKind, normalize_event, progress_for
from ..session.items import assistant_message
from ..session.persistence import SessionStore
from ...infra.errors import UpstreamRunFailure

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ": keep-alive\n\n"
DEFAULT_HEARTBEAT_INTERVAL_MS = 5000
INTERRUPTED_MESSAGE = "Response interrupted."


class StreamState(str, Enum):
    STARTED = "started"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"
    ABORTED = "aborted"


@dataclass
class StreamEnvelope:
    """One framed event on the output stream."""

    event: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        return sse_frame(self.event, self.data)


def sse_frame(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


@dataclass
class PublishResult:
    state: StreamState
    text: str = ""
    session_id: str = ""
    assistant_message_id: str = ""
    error: Optional[BaseException] = None
    partial_persisted: bool = False

    @property
    def ok(self) -> bool:
        return self.state == StreamState.DONE


class _Channel:
    """Serialises writes to the sink and remembers when it went away."""

    def __init__(self, sink: OutputSink):
        self.sink = sink
        self.open = not sink.closed
        self._lock = asyncio.Lock()

    async def send(self, frame: str) -> bool:
        if not self.open or self.sink.closed:
            self.open = False
            return False
        async with self._lock:
            try:
                await self.sink.write(frame)
            except Exception as e:
                logger.debug("Output channel closed during write: %s", e)
                self.open = False
                return False
        return True


class StreamingResponsePublisher:
    """Consumes one run-event generator and writes it to one sink."""

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        *,
        user_message_id: Optional[str] = None,
        assistant_message_id: Optional[str] = None,
        created_at: Optional[str] = None,
        heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS,
    ):
        self._store = store
        self.session_id = session_id
        self.user_message_id = user_message_id
        self.assistant_message_id = assistant_message_id or uuid.uuid4().hex
        self.created_at = created_at or datetime.now(timezone.utc).isoformat()
        self.heartbeat_interval_ms = heartbeat_interval_ms
        self.state = StreamState.STARTED

    def start_envelope(self) -> StreamEnvelope:
        return StreamEnvelope("start", {
            "user_message_id": self.user_message_id,
            "assistant_message_id": self.assistant_message_id,
            "created_at": self.created_at,
            "session_id": self.session_id,
        })

    async def publish(
        self,
        run_events: AsyncIterator[Any],
        sink: OutputSink,
        *,
        abort: Optional[AbortSignal] = None,
        on_complete: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> PublishResult:
        channel = _Channel(sink)
        text_parts: List[str] = []
        upstream_error: Optional[BaseException] = None
        aborted = False
        cancelled = False

        await channel.send(self.start_envelope().to_sse())
        heartbeat = self._start_heartbeat(channel)
        self.state = StreamState.STREAMING

        try:
            async for raw_event in run_events:
                event = normalize_event(raw_event)
                if event.kind == RunEventKind.TEXT_DELTA:
                    if event.delta:
                        text_parts.append(event.delta)
                        await channel.send(sse_frame("token", {"delta": event.delta}))
                else:
                    progress = progress_for(event)
                    if progress is not None:
                        await channel.send(sse_frame("progress", progress))

                if (abort is not None and abort.aborted) or not channel.open or sink.closed:
                    aborted = True
                    break
        except asyncio.CancelledError:
            aborted = True
            cancelled = True
        except Exception as e:
            logger.error("Upstream run failed for session %s: %s", self.session_id, e, exc_info=True)
            upstream_error = e
        finally:
            await self._stop_heartbeat(heartbeat)
            await self._close_upstream(run_events)

        text = "".join(text_parts)
        result = PublishResult(
            state=self.state,
            text=text,
            session_id=self.session_id,
            assistant_message_id=self.assistant_message_id,
        )

        if aborted:
            self.state = StreamState.ABORTED
            result.partial_persisted = await self._persist_partial(text)
            if channel.open:
                await channel.send(sse_frame("error", {"message": INTERRUPTED_MESSAGE, "aborted": True}))
            logger.info("Stream aborted for session %s", self.session_id)
        elif upstream_error is not None:
            self.state = StreamState.ERROR
            failure = UpstreamRunFailure(str(upstream_error) or type(upstream_error).__name__)
            failure.__cause__ = upstream_error
            result.error = failure
            result.partial_persisted = await self._persist_partial(text)
            await channel.send(sse_frame("error", {"message": str(failure)}))
        else:
            try:
                if on_complete is not None:
                    await on_complete(text)
            except Exception as e:
                logger.error("Failed to finalize turn for session %s: %s", self.session_id, e)
                self.state = StreamState.ERROR
                result.error = e
                await channel.send(sse_frame("error", {"message": str(e) or type(e).__name__}))
            else:
                self.state = StreamState.DONE
                await channel.send(sse_frame("done", {
                    "assistant_message_id": self.assistant_message_id,
                    "session_id": self.session_id,
                }))

        result.state = self.state
        if cancelled:
            raise asyncio.CancelledError()
        return result

    # ── helpers ──────────────────────────────────────────────────

    def _start_heartbeat(self, channel: _Channel) -> Optional[asyncio.Task]:
        if self.heartbeat_interval_ms <= 0:
            return None
        return asyncio.create_task(self._heartbeat_loop(channel))

    async def _heartbeat_loop(self, channel: _Channel) -> None:
        interval = self.heartbeat_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            if not await channel.send(HEARTBEAT_FRAME):
                return

    @staticmethod
    async def _stop_heartbeat(task: Optional[asyncio.Task]) -> None:
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @staticmethod
    async def _close_upstream(run_events: Any) -> None:
        aclose = getattr(run_events, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug("Closing upstream run failed: %s", e)

    async def _persist_partial(self, text: str) -> bool:
        if not text.strip():
            return False
        try:
            await self._store.append(self.session_id, [assistant_message(text, interrupted=True)])
        except Exception as e:
            logger.warning("Failed to persist partial answer for session %s: %s", self.session_id, e)
            return False
        return True
