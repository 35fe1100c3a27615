"""
Dolor - conversational coaching backend

Session history persistence, inbound update dedupe, and streamed agent turns.
"""

__version__ = "0.1.0"

from .core.channel.core_service import ChannelCoreService
from .core.channel.dedupe import UpdateDedupeGuard
from .core.channel.registry import ChatSessionRegistry
from .core.runtime.stream_publisher import StreamingResponsePublisher
from .core.session.persistence import SessionStore
from .core.session.sanitizer import HistorySanitizer
from .infra.config import CoreSettings

__all__ = [
    "ChannelCoreService",
    "ChatSessionRegistry",
    "CoreSettings",
    "HistorySanitizer",
    "SessionStore",
    "StreamingResponsePublisher",
    "UpdateDedupeGuard",
]
