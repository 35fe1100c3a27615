"""
Dolor Web Services

Business logic layer for web application.
"""

from .chat_service import ChatService, QueueSink

__all__ = ["ChatService", "QueueSink"]
