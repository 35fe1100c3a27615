"""Test doubles shared across unit and web tests."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

from src.dolor.core.runtime.stream_publisher import HEARTBEAT_FRAME
from src.dolor.infra.errors import BackingStoreUnavailable


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class UnavailableKeyValueStore:
    """Every call fails the way RedisKeyValueStore does during an outage."""

    def __init__(self):
        self.calls: List[str] = []

    async def get(self, key):
        self.calls.append(f"get {key}")
        raise BackingStoreUnavailable(f"GET {key} failed: connection refused")

    async def set(self, key, value, *, ttl_seconds=None, only_if_absent=False):
        self.calls.append(f"set {key}")
        raise BackingStoreUnavailable(f"SET {key} failed: connection refused")

    async def delete(self, key):
        self.calls.append(f"delete {key}")
        raise BackingStoreUnavailable(f"DEL {key} failed: connection refused")


class RecordingSink:
    """OutputSink that keeps every frame; can be closed to simulate a gone client."""

    def __init__(self):
        self.frames: List[str] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, frame: str) -> None:
        if self._closed:
            raise ConnectionError("client went away")
        self.frames.append(frame)

    async def close(self) -> None:
        self._closed = True

    def events(self) -> List[Tuple[str, Dict[str, Any]]]:
        return parse_sse("".join(self.frames))

    def heartbeat_positions(self) -> List[int]:
        return [i for i, f in enumerate(self.frames) if f == HEARTBEAT_FRAME]


def parse_sse(body: str) -> List[Tuple[str, Dict[str, Any]]]:
    """Parse ``event:``/``data:`` frames, skipping comment frames."""
    parsed = []
    for block in body.split("\n\n"):
        if not block.strip() or block.startswith(":"):
            continue
        event, data = "", {}
        for line in block.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        parsed.append((event, data))
    return parsed


# ---------------------------------------------------------------------------
# Upstream run events in the OpenAI Agents dict shape
# ---------------------------------------------------------------------------

def text_delta(delta: str) -> dict:
    return {"type": "raw_model_stream_event", "data": {"type": "output_text_delta", "delta": delta}}


def tool_called(name: str) -> dict:
    return {"type": "run_item_stream_event", "name": "tool_called", "item": {"raw_item": {"name": name}}}


def tool_output(name: str) -> dict:
    return {"type": "run_item_stream_event", "name": "tool_output", "item": {"raw_item": {"name": name}}}


def reasoning_created() -> dict:
    return {"type": "run_item_stream_event", "name": "reasoning_item_created", "item": {}}


async def event_stream(events: List[Any], error: Optional[BaseException] = None):
    for event in events:
        yield event
    if error is not None:
        raise error


class ScriptedRun:
    """AgentRun double replaying a fixed event list."""

    def __init__(self, events: List[Any], *, error: Optional[BaseException] = None, new_items=None):
        self._events = events
        self._error = error
        self._new_items = list(new_items or [])

    def stream_events(self):
        return event_stream(self._events, self._error)

    @property
    def new_items(self):
        return self._new_items


class ScriptedRuntime:
    """AgentRuntime double; hands out the queued runs in order and records calls."""

    def __init__(self, *runs: ScriptedRun):
        self._runs = list(runs)
        self.calls: List[SimpleNamespace] = []

    def queue(self, run: ScriptedRun) -> None:
        self._runs.append(run)

    def run(self, history, new_items, *, session_id):
        self.calls.append(SimpleNamespace(history=list(history), new_items=list(new_items), session_id=session_id))
        return self._runs.pop(0)


def scripted_runtime_factory(section):
    """``module:callable`` target for config-driven runtime loading."""
    return ScriptedRuntime()
