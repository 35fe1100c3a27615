"""Channel abstraction layer: session resolution, dedupe, and the turn pipeline."""

from .core_service import ChannelCoreService
from .dedupe import UpdateDedupeGuard
from .registry import ChatSessionHandle, ChatSessionRegistry
from .session_resolver import ChannelSessionResolver

__all__ = [
    "ChannelCoreService",
    "ChannelSessionResolver",
    "ChatSessionHandle",
    "ChatSessionRegistry",
    "UpdateDedupeGuard",
]
