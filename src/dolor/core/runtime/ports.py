"""Protocol interfaces for the runtime module boundaries.

The agent runtime (LLM + tools) and the transport an answer is streamed to
are both external; these are the structural contracts the core relies on.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, List, Protocol, runtime_checkable

from ..session.items import ConversationItem


@runtime_checkable
class AgentRun(Protocol):
    """One in-flight agent turn."""

    def stream_events(self) -> AsyncIterator[Any]:
        """Upstream run events, in the shapes understood by ``normalize_event``."""
        ...

    @property
    def new_items(self) -> List[ConversationItem]:
        """Items the turn produced (assistant messages, tool calls/outputs, reasoning).

        Only meaningful once ``stream_events`` has been fully consumed.
        """
        ...


@runtime_checkable
class AgentRuntime(Protocol):
    """Starts agent turns over a conversation history."""

    def run(
        self,
        history: List[ConversationItem],
        new_items: List[ConversationItem],
        *,
        session_id: str,
    ) -> AgentRun: ...


@runtime_checkable
class OutputSink(Protocol):
    """Ordered byte channel back to the caller (an SSE response, a buffer, ...)."""

    @property
    def closed(self) -> bool: ...

    async def write(self, frame: str) -> None:
        """Write one frame. Raises once the channel is gone."""
        ...

    async def close(self) -> None: ...


class BufferSink:
    """In-memory sink; used by non-streaming channels to collect a full answer."""

    def __init__(self) -> None:
        self.frames: List[str] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, frame: str) -> None:
        if self._closed:
            raise ConnectionError("sink is closed")
        self.frames.append(frame)

    async def close(self) -> None:
        self._closed = True

