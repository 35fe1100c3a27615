"""History sanitizer.

Deterministic clean-up applied to every history read and write:

1. drop items that reference a large-payload tool anywhere in their payload
   (those outputs are refetched on demand instead of replayed every turn);
2. drop reasoning items that are not immediately followed by a message;
3. strip reasoning cross-references (any key containing ``reasoning``) from
   what remains, and drop message ids.

The transform is pure and idempotent.
"""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .items import ConversationItem, Message, Reasoning
from ...infra.config import DEFAULT_LARGE_TOOLS

_CONTAINERS = (dict, list, tuple, set, frozenset)


def payload_mentions(value: Any, names: FrozenSet[str]) -> bool:
    """Return True if any string reachable from *value* is one of *names*.

    Walks dicts (values only), lists, tuples and sets with an explicit stack.
    Containers are visited once, keyed by identity, so self-referencing
    payloads terminate.
    """
    if not names:
        return False
    seen: set[int] = set()
    stack: List[Any] = [value]
    while stack:
        current = stack.pop()
        if isinstance(current, str):
            if current in names:
                return True
            continue
        if not isinstance(current, _CONTAINERS):
            continue
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, dict):
            stack.extend(current.values())
        else:
            stack.extend(current)
    return False


def strip_reasoning_keys(value: Any, _memo: Optional[Dict[int, Any]] = None) -> Any:
    """Deep-copy *value* without any dict key whose lowercase form contains ``reasoning``."""
    memo = {} if _memo is None else _memo
    if isinstance(value, dict):
        if id(value) in memo:
            return memo[id(value)]
        out: Dict[Any, Any] = {}
        memo[id(value)] = out
        for key, nested in value.items():
            if isinstance(key, str) and "reasoning" in key.lower():
                continue
            out[key] = strip_reasoning_keys(nested, memo)
        return out
    if isinstance(value, list):
        if id(value) in memo:
            return memo[id(value)]
        out_list: List[Any] = []
        memo[id(value)] = out_list
        out_list.extend(strip_reasoning_keys(nested, memo) for nested in value)
        return out_list
    if isinstance(value, tuple):
        return tuple(strip_reasoning_keys(nested, memo) for nested in value)
    return value


class HistorySanitizer:
    """Stateless history filter parameterised by the large-tool identifier set."""

    def __init__(self, large_tools: Optional[Iterable[str]] = None):
        self.large_tools: FrozenSet[str] = frozenset(
            DEFAULT_LARGE_TOOLS if large_tools is None else large_tools
        )

    def sanitize(self, items: List[ConversationItem]) -> List[ConversationItem]:
        without_large = self.drop_large_payloads(items)
        anchored = self.drop_dangling_reasoning(without_large)
        return [self._strip_references(item) for item in anchored]

    __call__ = sanitize

    @staticmethod
    def _strip_references(item: ConversationItem) -> ConversationItem:
        cleaned = item.map_payload(strip_reasoning_keys)
        if isinstance(cleaned, Message):
            # Message ids may point at reasoning items (rs_*) that were trimmed away.
            cleaned.extra.pop("id", None)
        return cleaned

    def drop_large_payloads(self, items: List[ConversationItem]) -> List[ConversationItem]:
        return [item for item in items if not payload_mentions(item.payload(), self.large_tools)]

    @staticmethod
    def drop_dangling_reasoning(items: List[ConversationItem]) -> List[ConversationItem]:
        """Keep a reasoning item only when the very next item is a message."""
        kept: List[ConversationItem] = []
        for index, item in enumerate(items):
            if isinstance(item, Reasoning):
                following = items[index + 1] if index + 1 < len(items) else None
                if not isinstance(following, Message):
                    continue
            kept.append(item)
        return kept
