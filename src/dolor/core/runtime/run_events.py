"""Run-event normalisation.

Upstream agent runtimes stream events in the OpenAI Agents shape, either as
plain dicts or as SDK objects::

    {"type": "raw_model_stream_event", "data": {"type": "output_text_delta", "delta": "Hi"}}
    {"type": "run_item_stream_event", "name": "tool_called", "item": {"raw_item": {"name": "..."}}}
    {"type": "agent_updated_stream_event", "new_agent": {"name": "Coach"}}

This module folds them onto a small closed set of kinds and derives the
user-facing progress labels.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class RunEventKind(str, Enum):
    TEXT_DELTA = "text_delta"
    TOOL_CALLED = "tool_called"
    TOOL_OUTPUT = "tool_output"
    REASONING = "reasoning"
    REFLECTION = "reflection"
    AGENT_UPDATED = "agent_updated"
    OTHER = "other"


@dataclass
class RunEvent:
    """Normalised upstream event."""

    kind: RunEventKind
    delta: str = ""
    tool_name: str = ""
    agent_name: str = ""
    raw: Any = None


# userCall / userDone per tool. An empty string means "no custom label", so the
# generic fallback is shown instead.
TOOL_LABELS: Dict[str, Dict[str, str]] = {
    "get_current_time": {"called": "", "done": ""},
    "list_intervals_activities": {
        "called": "Fetching your recent activities…",
        "done": "Activities ready.",
    },
    "get_intervals_activity_intervals": {
        "called": "Pulling detailed interval data…",
        "done": "Interval details ready.",
    },
    "list_intervals_chat_messages": {
        "called": "Loading your chat history…",
        "done": "Chat history loaded.",
    },
    "add_intervals_activity_comment": {
        "called": "Posting your note to the activity…",
        "done": "Note posted.",
    },
    "get_intervals_activity": {
        "called": "Loading the full activity details…",
        "done": "Activity details ready.",
    },
    "get_intervals_wellness_record": {
        "called": "Reviewing the wellness record for that day…",
        "done": "Wellness record ready.",
    },
    "list_intervals_wellness_records": {
        "called": "Fetching those wellness records…",
        "done": "Wellness history ready.",
    },
    "get_local_weather_forecast": {
        "called": "Checking the local weather forecast…",
        "done": "Forecast ready.",
    },
}

REASONING_LABEL = "Analyzing your request..."
REFLECTION_LABEL = "Refining the recommendation..."


def _field(obj: Any, *names: str) -> Any:
    """First present attribute / key among *names* (dict or object)."""
    if obj is None:
        return None
    for name in names:
        if isinstance(obj, dict):
            if name in obj:
                return obj[name]
        elif hasattr(obj, name):
            return getattr(obj, name)
    return None


def _tool_name(item: Any) -> str:
    raw_item = _field(item, "raw_item", "rawItem")
    name = _field(raw_item, "name")
    if not isinstance(name, str):
        name = _field(item, "name", "tool_name")
    return name if isinstance(name, str) and name else "tool"


def normalize_event(event: Any) -> RunEvent:
    """Map one upstream event onto a RunEvent. Unknown shapes become OTHER."""
    event_type = _field(event, "type")

    if event_type == "raw_model_stream_event":
        data = _field(event, "data")
        data_type = _field(data, "type")
        delta = _field(data, "delta")
        if isinstance(data_type, str) and isinstance(delta, str):
            if "output_text" in data_type:
                return RunEvent(RunEventKind.TEXT_DELTA, delta=delta, raw=event)
            if "reflection" in data_type:
                return RunEvent(RunEventKind.REFLECTION, raw=event)
        return RunEvent(RunEventKind.OTHER, raw=event)

    if event_type == "run_item_stream_event":
        name = _field(event, "name")
        item = _field(event, "item")
        if name == "tool_called":
            return RunEvent(RunEventKind.TOOL_CALLED, tool_name=_tool_name(item), raw=event)
        if name == "tool_output":
            return RunEvent(RunEventKind.TOOL_OUTPUT, tool_name=_tool_name(item), raw=event)
        if name == "reasoning_item_created":
            return RunEvent(RunEventKind.REASONING, raw=event)
        return RunEvent(RunEventKind.OTHER, raw=event)

    if event_type == "agent_updated_stream_event":
        agent = _field(event, "new_agent", "agent")
        agent_name = _field(agent, "name")
        return RunEvent(
            RunEventKind.AGENT_UPDATED,
            agent_name=agent_name if isinstance(agent_name, str) and agent_name else "assistant",
            raw=event,
        )

    return RunEvent(RunEventKind.OTHER, raw=event)


def tool_label(tool_name: str, phase: str) -> str:
    """User-facing label for a tool call ("called") or tool output ("done")."""
    label = TOOL_LABELS.get(tool_name, {}).get(phase, "").strip()
    if label:
        return label
    readable = tool_name.replace("_", " ")
    if phase == "done":
        return f"Finished {readable}."
    return f"Running {readable}..."


def progress_for(event: RunEvent) -> Optional[Dict[str, Any]]:
    """Progress envelope payload for *event*, or None when it is not user-visible."""
    if event.kind == RunEventKind.TOOL_CALLED:
        return {"phase": "called", "label": tool_label(event.tool_name, "called"), "tool": event.tool_name}
    if event.kind == RunEventKind.TOOL_OUTPUT:
        return {"phase": "done", "label": tool_label(event.tool_name, "done"), "tool": event.tool_name}
    if event.kind == RunEventKind.REASONING:
        return {"phase": "called", "label": REASONING_LABEL}
    if event.kind == RunEventKind.REFLECTION:
        return {"phase": "called", "label": REFLECTION_LABEL}
    if event.kind == RunEventKind.AGENT_UPDATED:
        return {"phase": "called", "label": f"Using {event.agent_name}..."}
    return None
