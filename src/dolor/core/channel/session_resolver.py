"""Channel session ID resolver."""

from __future__ import annotations


class ChannelSessionResolver:
    """Channel chat key -> Dolor session ID mapping.

    Format: ``{prefix}{chat_key}``
    Example: ``tg_session_12345:7`` for Telegram chat 12345, thread 7.

    The mapping is deterministic, so a session handle evicted from the
    in-process cache always resolves back to the same stored history.
    """

    _PREFIX_MAP = {
        "web": "web_session_",
        "telegram": "tg_session_",
    }

    @classmethod
    def prefix_for(cls, channel_type: str) -> str:
        return cls._PREFIX_MAP.get(channel_type, f"{channel_type}_session_")

    @classmethod
    def resolve(cls, channel_type: str, channel_session_id: str) -> str:
        """Map a channel-side chat key to a Dolor session_id.

        Args:
            channel_type: Channel type (``"web"``, ``"telegram"``, …).
            channel_session_id: Channel-internal chat key.
                - web: conversation id, optionally ``<conversation>:<thread>``.
                - telegram: ``<chat_id>`` or ``<chat_id>:<message_thread_id>``.

        Returns:
            Session id, e.g. ``"tg_session_12345"``.
        """
        if not channel_session_id:
            raise ValueError("channel_session_id must not be empty")
        return f"{cls.prefix_for(channel_type)}{channel_session_id}"

