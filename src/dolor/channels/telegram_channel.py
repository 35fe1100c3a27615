"""TelegramChannel: webhook-driven chat with Dolor.

Updates arrive through the Bot API webhook. Each update is claimed once
through the dedupe guard, acknowledged immediately, and processed in the
background; the finished answer is sent back in one or more messages.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

import httpx

from ..core.agent.factory import GREETING_PROMPT
from ..core.channel.core_service import ChannelCoreService
from ..core.runtime.ports import BufferSink
from ..core.session.session_ids import build_chat_key
from ..infra.errors import BackingStoreUnavailable, UpstreamRunFailure

logger = logging.getLogger(__name__)

TELEGRAM_MSG_LIMIT = 4096

ERROR_REPLY = "Dolor hit an error. Please try again in a moment."
TEXT_ONLY_REPLY = "Dolor can only read text messages for now."
RESET_REPLY = "Cleared Dolor's memory for this chat. Start fresh!"
START_FOLLOWUP = "Run /help to see all commands."
HELP_REPLY = "\n".join([
    "Available commands:",
    "/start - receive Dolor's greeting and current context",
    "/reset - drop the current chat history",
    "/help - show this help",
])

SubjectResolver = Callable[[Dict[str, Any]], Awaitable[Optional[str]]]


class WebhookReply(NamedTuple):
    status: int
    body: str
    accepted: bool = False


def parse_command(text: str) -> Optional[tuple[str, List[str]]]:
    """``"/Start@DolorBot a b"`` -> ``("/start", ["a", "b"])``; None for plain text."""
    if not text.startswith("/"):
        return None
    parts = text.strip().split()
    if not parts:
        return None
    command = parts[0].split("@")[0].lower()
    if not command or command == "/":
        return None
    return command, parts[1:]


class TelegramChannel:
    """Telegram Bot channel (webhook, batch reply)."""

    channel_type = "telegram"

    def __init__(
        self,
        bot_token: str,
        core: ChannelCoreService,
        *,
        secret_token: str = "",
        client: Optional[httpx.AsyncClient] = None,
        subject_resolver: Optional[SubjectResolver] = None,
        max_send_retries: int = 3,
    ) -> None:
        self._bot_token = bot_token
        self._base_url = f"https://api.telegram.org/bot{bot_token}"
        self._core = core
        self._secret_token = secret_token
        self._client = client
        self._owns_client = client is None
        self._subject_resolver = subject_resolver
        self._max_send_retries = max(1, max_send_retries)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
        logger.info("TelegramChannel started")

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info("TelegramChannel stopped")

    # ------------------------------------------------------------------
    # Webhook entry
    # ------------------------------------------------------------------

    async def handle_webhook(self, update: Any, secret: Optional[str]) -> WebhookReply:
        """Validate and claim one update. ``accepted`` means: process it now."""
        if self._secret_token and not secrets.compare_digest(secret or "", self._secret_token):
            return WebhookReply(401, "Unauthorized")
        if not isinstance(update, dict) or update.get("update_id") is None:
            return WebhookReply(400, "Bad Request")

        update_id = update["update_id"]
        if not await self._core.claim_update(update_id):
            return WebhookReply(200, "Duplicate update")
        if not (update.get("message") or update.get("edited_message")):
            return WebhookReply(200, "No message to process")
        logger.debug("Accepted update %s", update_id)
        return WebhookReply(200, "Queued", accepted=True)

    async def process_update(self, update: Dict[str, Any]) -> None:
        update_id = update.get("update_id")
        msg = update.get("message") or update.get("edited_message")
        if not msg:
            logger.info("Update %s has no message payload; skipping", update_id)
            return

        chat = msg.get("chat") or {}
        chat_id = chat.get("id")
        if chat_id is None:
            return
        message_id = msg.get("message_id")
        text = (msg.get("text") or "").strip()
        if not text:
            await self._send_text(chat_id, TEXT_ONLY_REPLY, reply_to=message_id)
            return

        chat_key = build_chat_key(chat_id, msg.get("message_thread_id"))
        parsed = parse_command(text)
        if parsed is not None:
            handled = await self._handle_command(chat_id, chat_key, parsed[0], msg)
            if handled:
                logger.info("Update %s handled via command %s", update_id, parsed[0])
                return

        await self._handle_message(chat_id, chat_key, text, msg)
        logger.info("Finished update %s", update_id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _handle_command(self, chat_id: Any, chat_key: str, command: str, msg: dict) -> bool:
        if command == "/start":
            await self._cmd_start(chat_id, chat_key, msg)
            return True
        if command == "/help":
            await self._send_text(chat_id, HELP_REPLY, reply_to=msg.get("message_id"))
            return True
        if command == "/reset":
            await self._cmd_reset(chat_id, chat_key, msg)
            return True
        logger.info("Command %s not handled; falling back to regular message flow", command)
        return False

    async def _cmd_start(self, chat_id: Any, chat_key: str, msg: dict) -> None:
        reply = await self._run_turn(chat_key, GREETING_PROMPT, msg, force_instruction=True)
        await self._send_text(chat_id, reply or ERROR_REPLY, reply_to=msg.get("message_id"))
        await self._send_text(chat_id, START_FOLLOWUP)

    async def _cmd_reset(self, chat_id: Any, chat_key: str, msg: dict) -> None:
        try:
            await self._core.reset(chat_key)
        except BackingStoreUnavailable as e:
            logger.error("Reset failed for chat %s: %s", chat_key, e)
            await self._send_text(chat_id, ERROR_REPLY, reply_to=msg.get("message_id"))
            return
        await self._send_text(chat_id, RESET_REPLY, reply_to=msg.get("message_id"))

    # ------------------------------------------------------------------
    # Chat message handling
    # ------------------------------------------------------------------

    async def _handle_message(self, chat_id: Any, chat_key: str, text: str, msg: dict) -> None:
        typing_task = asyncio.create_task(self._typing_loop(chat_id))
        try:
            reply = await self._run_turn(chat_key, text, msg)
        finally:
            typing_task.cancel()
            try:
                await typing_task
            except asyncio.CancelledError:
                pass

        if reply is None:
            await self._send_text(chat_id, ERROR_REPLY, reply_to=msg.get("message_id"))
        elif reply:
            await self._send_text(chat_id, reply, reply_to=msg.get("message_id"))

    async def _run_turn(
        self,
        chat_key: str,
        text: str,
        msg: dict,
        *,
        force_instruction: bool = False,
    ) -> Optional[str]:
        """Run one turn; returns the answer text, or None when the turn failed."""
        subject_id = await self._resolve_subject(msg)
        try:
            result = await self._core.run_turn(
                chat_key, text, BufferSink(),
                subject_id=subject_id, force_instruction=force_instruction,
            )
        except (BackingStoreUnavailable, UpstreamRunFailure) as e:
            logger.error("Dolor Telegram run failed for chat %s: %s", chat_key, e)
            return None
        if not result.ok:
            logger.error("Dolor Telegram run failed for chat %s: %s", chat_key, result.error)
            return None
        return result.text.strip()

    async def _resolve_subject(self, msg: dict) -> Optional[str]:
        if self._subject_resolver is None:
            return None
        sender = msg.get("from") or {}
        if not sender.get("id"):
            return None
        try:
            return await self._subject_resolver(sender)
        except Exception as exc:
            logger.warning("Subject lookup failed for Telegram user %s: %s", sender.get("id"), exc)
            return None

    # ------------------------------------------------------------------
    # Typing indicator
    # ------------------------------------------------------------------

    async def _typing_loop(self, chat_id: Any) -> None:
        """Send typing action every 4 seconds until cancelled."""
        try:
            while True:
                await self._send_chat_action(chat_id, "typing")
                await asyncio.sleep(4)
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Telegram API helpers
    # ------------------------------------------------------------------

    async def _send_text(self, chat_id: Any, text: str, reply_to: Optional[int] = None) -> bool:
        """Send *text* split into Telegram-sized chunks; only the first chunk replies."""
        sent_all = True
        for part in self._split_message(text.strip()):
            ok = await self._send_message(chat_id, part, reply_to=reply_to)
            sent_all = sent_all and ok
            reply_to = None
        return sent_all

    async def _send_message(self, chat_id: Any, text: str, reply_to: Optional[int] = None) -> bool:
        """POST sendMessage with retry. Returns True if delivered."""
        if not text:
            return True
        if self._client is None:
            await self.start()

        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if reply_to is not None:
            payload["reply_to_message_id"] = reply_to

        for attempt in range(self._max_send_retries):
            try:
                resp = await self._client.post(f"{self._base_url}/sendMessage", json=payload)
                data = resp.json()
                if data.get("ok"):
                    return True
                logger.warning(
                    "sendMessage failed for chat %s (attempt %d/%d): %s",
                    chat_id, attempt + 1, self._max_send_retries,
                    data.get("description", "unknown"),
                )
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning(
                    "sendMessage exception for chat %s (attempt %d/%d): %s",
                    chat_id, attempt + 1, self._max_send_retries, exc,
                )
            if attempt < self._max_send_retries - 1:
                await asyncio.sleep(2 ** attempt)

        logger.error("Failed to send Telegram message to %s after %d retries", chat_id, self._max_send_retries)
        return False

    async def _send_chat_action(self, chat_id: Any, action: str = "typing") -> None:
        if self._client is None:
            return
        try:
            await self._client.post(
                f"{self._base_url}/sendChatAction",
                json={"chat_id": chat_id, "action": action},
            )
        except httpx.HTTPError:
            logger.debug("sendChatAction failed for chat %s", chat_id)

    # ------------------------------------------------------------------
    # Message splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_message(text: str, limit: int = TELEGRAM_MSG_LIMIT) -> List[str]:
        """Split long text into Telegram-safe chunks.

        Strategy: split by paragraph (``\\n\\n``), then by line (``\\n``) if a
        paragraph still exceeds the limit; a single overlong line is cut hard.
        """
        if not text:
            return []
        if len(text) <= limit:
            return [text]

        parts: List[str] = []
        current = ""

        for paragraph in text.split("\n\n"):
            candidate = f"{current}\n\n{paragraph}" if current else paragraph
            if len(candidate) <= limit:
                current = candidate
                continue
            if current:
                parts.append(current)
                current = ""
            if len(paragraph) <= limit:
                current = paragraph
                continue
            for line in paragraph.split("\n"):
                candidate = f"{current}\n{line}" if current else line
                if len(candidate) <= limit:
                    current = candidate
                    continue
                if current:
                    parts.append(current)
                while len(line) > limit:
                    parts.append(line[:limit])
                    line = line[limit:]
                current = line

        if current:
            parts.append(current)
        return parts
