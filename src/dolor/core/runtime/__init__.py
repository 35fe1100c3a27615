"""Core runtime helpers."""

from .abort import AbortSignal
from .ports import AgentRun, AgentRuntime, BufferSink, OutputSink
from .run_events import (
    TOOL_LABELS,
    RunEvent,
    RunEventKind,
    normalize_event,
    progress_for,
    tool_label,
)
from .stream_publisher import (
    HEARTBEAT_FRAME,
    PublishResult,
    StreamEnvelope,
    StreamingResponsePublisher,
    StreamState,
    sse_frame,
)

__all__ = [
    "AbortSignal",
    "AgentRun",
    "AgentRuntime",
    "BufferSink",
    "HEARTBEAT_FRAME",
    "OutputSink",
    "PublishResult",
    "RunEvent",
    "RunEventKind",
    "StreamEnvelope",
    "StreamState",
    "StreamingResponsePublisher",
    "TOOL_LABELS",
    "normalize_event",
    "progress_for",
    "sse_frame",
    "tool_label",
]
