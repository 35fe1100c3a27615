"""Pure chat-key and fingerprint helpers.

Kept apart from the registry so channels can derive keys without importing
the session cache.
"""

from typing import Any, Optional


def build_chat_key(chat_id: Any, thread_id: Any = None) -> str:
    """``<chat_id>`` or ``<chat_id>:<thread_id>`` for threaded chats."""
    if thread_id is None or thread_id == "":
        return str(chat_id)
    return f"{chat_id}:{thread_id}"


def split_chat_key(chat_key: str) -> tuple[str, Optional[str]]:
    """Inverse of ``build_chat_key``."""
    chat_id, sep, thread_id = str(chat_key).partition(":")
    return chat_id, (thread_id if sep else None)


def instruction_fingerprint(subject_id: Optional[Any]) -> str:
    """Identity of the system instruction last sent for a conversation."""
    if subject_id is None or subject_id == "":
        return "athlete:none"
    return f"athlete:{subject_id}"
