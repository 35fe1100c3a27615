"""Session persistence, sanitizing and retention."""

from .extra_store import SessionExtraStore
from .history import apply_retention, ensure_tool_pairing, repair_tool_outputs, validate_tool_pairing
from .items import (
    ConversationItem,
    Message,
    Reasoning,
    ToolCall,
    ToolOutput,
    assistant_message,
    item_from_dict,
    items_to_wire,
    system_message,
    user_message,
)
from .persistence import SessionStore
from .sanitizer import HistorySanitizer
from .session_data import SessionRecord
from .session_ids import build_chat_key, instruction_fingerprint, split_chat_key

__all__ = [
    "ConversationItem",
    "HistorySanitizer",
    "Message",
    "Reasoning",
    "SessionExtraStore",
    "SessionRecord",
    "SessionStore",
    "ToolCall",
    "ToolOutput",
    "apply_retention",
    "assistant_message",
    "build_chat_key",
    "ensure_tool_pairing",
    "instruction_fingerprint",
    "item_from_dict",
    "items_to_wire",
    "repair_tool_outputs",
    "split_chat_key",
    "system_message",
    "user_message",
    "validate_tool_pairing",
]
