"""Tests for ChatService streaming bridge."""

import asyncio

import pytest

from src.dolor.core.channel.core_service import ChannelCoreService
from src.dolor.infra.config import CoreSettings
from src.dolor.web.services.chat_service import ChatService, QueueSink
from tests.fakes import ScriptedRun, ScriptedRuntime, parse_sse, text_delta


@pytest.fixture
def runtime():
    return ScriptedRuntime()


@pytest.fixture
def service(kv, runtime):
    core = ChannelCoreService.from_settings(
        CoreSettings(heartbeat_interval_ms=0), kv, runtime, channel_type="web", instruction_builder=None,
    )
    return ChatService(core)


class TestQueueSink:

    @pytest.mark.asyncio
    async def test_frames_until_close(self):
        sink = QueueSink()
        await sink.write("a")
        await sink.write("b")
        await sink.close()
        await sink.close()
        assert [f async for f in sink.frames()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_write_after_close_raises(self):
        sink = QueueSink()
        await sink.close()
        with pytest.raises(ConnectionError):
            await sink.write("x")


class TestStreamMessage:

    @pytest.mark.asyncio
    async def test_full_stream(self, service, runtime):
        runtime.queue(ScriptedRun([text_delta("hi")]))
        frames = [f async for f in service.stream_message("c1", "hello")]
        assert [e for e, _ in parse_sse("".join(frames))] == ["start", "token", "done"]

    @pytest.mark.asyncio
    async def test_disconnect_aborts_turn_and_keeps_partial(self, service, runtime):
        async def slow():
            for word in ("one ", "two ", "three"):
                yield text_delta(word)
                await asyncio.sleep(0.02)

        run = ScriptedRun([])
        run.stream_events = slow
        runtime.queue(run)

        stream = service.stream_message("c1", "count")
        first = await stream.__anext__()
        assert first.startswith("event: start")
        await stream.aclose()
        await asyncio.gather(*list(service._tasks))

        items = await service.core.history("c1")
        assert [i.content for i in items][0] == "count"
        assert items[-1].is_interrupted
        assert "three" not in items[-1].content

    @pytest.mark.asyncio
    async def test_history_and_reset(self, service, runtime):
        runtime.queue(ScriptedRun([text_delta("ok")]))
        [f async for f in service.stream_message("c1", "hello", thread_id="t")]

        history = await service.get_history("c1", "t")
        assert history == [
            {"type": "message", "role": "user", "content": "hello"},
            {"type": "message", "role": "assistant", "content": "ok"},
        ]
        assert await service.reset("c1", "t") == "web_session_c1:t"
        assert await service.get_history("c1", "t") == []
