"""Web API fixtures: a FastAPI app over the in-process store and a scripted runtime."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.dolor.channels.telegram_channel import TelegramChannel
from src.dolor.core.channel.core_service import ChannelCoreService
from src.dolor.infra.config import CoreSettings
from src.dolor.web.app import create_app
from tests.fakes import ScriptedRuntime


@pytest.fixture
def settings():
    return CoreSettings(heartbeat_interval_ms=0)


@pytest.fixture
def runtime():
    return ScriptedRuntime()


@pytest.fixture
def web_core(settings, kv, runtime):
    return ChannelCoreService.from_settings(settings, kv, runtime, channel_type="web")


@pytest.fixture
def telegram_channel(settings, kv, runtime, web_core):
    core = ChannelCoreService.from_settings(settings, kv, runtime, channel_type="telegram", store=web_core.store)
    channel = TelegramChannel("123:abc", core, secret_token="hook-secret", client=AsyncMock())
    channel._send_message = AsyncMock(return_value=True)
    channel._send_chat_action = AsyncMock()
    return channel


@pytest.fixture
def client(web_core):
    app = create_app(web_core, api_key="")
    with TestClient(app) as c:
        yield c


@pytest.fixture
def telegram_client(web_core, telegram_channel):
    app = create_app(web_core, telegram_channel, api_key="")
    with TestClient(app) as c:
        yield c
