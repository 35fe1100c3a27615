"""
History retention and tool-pairing repair
"""

from __future__ import annotations

from typing import List, Optional, Set

from .items import ConversationItem, ToolCall, ToolOutput
from ...infra.errors import InvariantViolation

DEFAULT_MAX_ITEMS = 120


def apply_retention(items: List[ConversationItem], max_items: int = DEFAULT_MAX_ITEMS) -> List[ConversationItem]:
    """Keep only the most recent ``max_items`` items."""
    if max_items <= 0:
        return []
    if len(items) <= max_items:
        return list(items)
    return list(items[-max_items:])


def repair_tool_outputs(items: List[ConversationItem]) -> List[ConversationItem]:
    """Drop tool outputs whose call was not introduced earlier in the window.

    Single forward scan; the window cut by retention is the only place such
    orphans come from.
    """
    seen_calls: Set[str] = set()
    repaired: List[ConversationItem] = []
    for item in items:
        if isinstance(item, ToolCall):
            if item.id:
                seen_calls.add(item.id)
            if item.call_id:
                seen_calls.add(item.call_id)
        elif isinstance(item, ToolOutput) and item.call_id not in seen_calls:
            continue
        repaired.append(item)
    return repaired


def find_orphaned_output(items: List[ConversationItem]) -> Optional[ToolOutput]:
    """Return the first tool output with no preceding call, or None."""
    seen_calls: Set[str] = set()
    for item in items:
        if isinstance(item, ToolCall):
            seen_calls.update(x for x in (item.id, item.call_id) if x)
        elif isinstance(item, ToolOutput) and item.call_id not in seen_calls:
            return item
    return None


def validate_tool_pairing(items: List[ConversationItem]) -> bool:
    return find_orphaned_output(items) is None


def ensure_tool_pairing(items: List[ConversationItem], *, context: str = "") -> None:
    """Raise InvariantViolation when a tool output has no preceding call."""
    orphan = find_orphaned_output(items)
    if orphan is not None:
        where = f" in {context}" if context else ""
        raise InvariantViolation(f"Tool output {orphan.call_id!r} has no matching call{where}")
