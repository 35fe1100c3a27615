"""
Dolor Web API

- SSE chat streaming for the web UI
- conversation history / reset
- Telegram webhook endpoint
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import BackgroundTasks, Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from .auth import make_api_key_dependency
from .services import ChatService
from ..channels.telegram_channel import TelegramChannel
from ..core.agent.factory import AgentFactory
from ..core.channel.core_service import ChannelCoreService
from ..infra.config import CoreSettings
from ..infra.errors import BackingStoreUnavailable
from ..infra.kv_store import KeyValueStore, RedisKeyValueStore, create_kv_store

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

WebSubjectResolver = Callable[[Request], Awaitable[Optional[str]]]


def create_app(
    core: ChannelCoreService,
    telegram_channel: Optional[TelegramChannel] = None,
    *,
    api_key: Optional[str] = None,
    kv: Optional[KeyValueStore] = None,
    subject_resolver: Optional[WebSubjectResolver] = None,
) -> FastAPI:
    """Build the FastAPI app around a web-channel core (and optionally Telegram).

    *kv* is closed on shutdown when it holds a connection pool.

    *subject_resolver* maps a request to its athlete id server-side. Without
    one, the request body's ``athlete_id`` is trusted as sent; any holder of
    the API key can then bind any athlete to a conversation.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if telegram_channel is not None:
            await telegram_channel.start()
        try:
            yield
        finally:
            if telegram_channel is not None:
                await telegram_channel.stop()
            if isinstance(kv, RedisKeyValueStore):
                await kv.aclose()

    app = FastAPI(title="Dolor", lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    chat_service = ChatService(core)
    app.state.chat_service = chat_service
    auth = [Depends(make_api_key_dependency(api_key))]

    # ========================================================================
    # Chat Routes
    # ========================================================================

    @app.post("/api/chats/{conversation_id}/messages/stream", dependencies=auth)
    async def api_stream_message(
        conversation_id: str,
        request: Request,
        payload: Dict[str, Any] = Body(...),
        thread_id: Optional[str] = None,
    ):
        """Run one turn and stream it as server-sent events."""
        text = payload.get("text")
        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise HTTPException(status_code=400, detail="Message text is required.")
        if subject_resolver is not None:
            subject_id = await subject_resolver(request)
        else:
            subject_id = payload.get("athlete_id")
        return StreamingResponse(
            chat_service.stream_message(conversation_id, text, thread_id=thread_id, subject_id=subject_id),
            media_type="text/event-stream; charset=utf-8",
            headers=SSE_HEADERS,
        )

    @app.get("/api/chats/{conversation_id}/history", dependencies=auth)
    async def api_history(conversation_id: str, thread_id: Optional[str] = None):
        try:
            items = await chat_service.get_history(conversation_id, thread_id)
        except BackingStoreUnavailable as e:
            logger.error("History load failed for %s: %s", conversation_id, e)
            return JSONResponse({"error": "Conversation storage is unavailable."}, status_code=503)
        return {"conversation_id": conversation_id, "thread_id": thread_id, "items": items}

    @app.post("/api/chats/{conversation_id}/reset", dependencies=auth)
    async def api_reset(conversation_id: str, thread_id: Optional[str] = None):
        try:
            session_id = await chat_service.reset(conversation_id, thread_id)
        except BackingStoreUnavailable as e:
            logger.error("Reset failed for %s: %s", conversation_id, e)
            return JSONResponse({"error": "Conversation storage is unavailable."}, status_code=503)
        logger.info("Conversation reset: %s", session_id)
        return {"status": "ok", "session_id": session_id}

    # ========================================================================
    # Telegram webhook
    # ========================================================================

    if telegram_channel is not None:

        @app.get("/api/telegram")
        async def telegram_probe():
            return PlainTextResponse(
                "Dolor Telegram webhook is up. Configure Telegram to POST updates to this URL."
            )

        @app.post("/api/telegram")
        async def telegram_webhook(request: Request, background_tasks: BackgroundTasks):
            try:
                update = await request.json()
            except ValueError:
                logger.error("Failed to parse Telegram payload")
                return PlainTextResponse("Bad Request", status_code=400)

            secret = request.headers.get("x-telegram-bot-api-secret-token")
            reply = await telegram_channel.handle_webhook(update, secret)
            if reply.accepted:
                background_tasks.add_task(telegram_channel.process_update, update)
            return PlainTextResponse(reply.body, status_code=reply.status)

    return app


def build_app(config: Dict[str, Any]) -> FastAPI:
    """Assemble stores, cores and channels from a loaded config dict."""
    settings = CoreSettings.from_config(config)
    section = config.get("dolor", {}) or {}
    kv = create_kv_store(settings.redis_url)
    runtime = AgentFactory(config).create_runtime()

    web_core = ChannelCoreService.from_settings(settings, kv, runtime, channel_type="web")

    telegram_channel = None
    telegram_cfg = section.get("telegram", {}) or {}
    bot_token = str(telegram_cfg.get("bot_token") or "")
    if bot_token:
        telegram_core = ChannelCoreService.from_settings(
            settings, kv, runtime, channel_type="telegram", store=web_core.store,
        )
        telegram_channel = TelegramChannel(
            bot_token,
            telegram_core,
            secret_token=str(telegram_cfg.get("secret_token") or ""),
        )
    else:
        logger.info("No Telegram bot token configured; webhook endpoint disabled")

    api_key = str((section.get("web", {}) or {}).get("api_key") or "")
    return create_app(web_core, telegram_channel, api_key=api_key, kv=kv)
