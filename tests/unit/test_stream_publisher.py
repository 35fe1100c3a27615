"""Tests for StreamingResponsePublisher framing, heartbeats and terminal handling."""

import asyncio

import pytest

from src.dolor.core.runtime.abort import AbortSignal
from src.dolor.core.runtime.stream_publisher import (
    HEARTBEAT_FRAME,
    INTERRUPTED_MESSAGE,
    StreamingResponsePublisher,
    StreamState,
)
from src.dolor.infra.errors import UpstreamRunFailure
from tests.fakes import RecordingSink, event_stream, text_delta, tool_called, tool_output


def _publisher(store, **kwargs):
    kwargs.setdefault("heartbeat_interval_ms", 0)
    return StreamingResponsePublisher(store, "web_session_c1", assistant_message_id="a1", **kwargs)


def _terminal_events(sink):
    return [e for e, _ in sink.events() if e in ("done", "error")]


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_frame_order(self, store):
        sink = RecordingSink()
        completed = []

        async def on_complete(text):
            completed.append(text)

        result = await _publisher(store, user_message_id="u1").publish(
            event_stream([tool_called("get_current_time"), text_delta("Hel"), tool_output("get_current_time"), text_delta("lo")]),
            sink,
            on_complete=on_complete,
        )

        events = sink.events()
        assert [e for e, _ in events] == ["start", "progress", "token", "progress", "token", "done"]
        assert events[0][1]["user_message_id"] == "u1"
        assert events[0][1]["assistant_message_id"] == "a1"
        assert events[-1][1] == {"assistant_message_id": "a1", "session_id": "web_session_c1"}
        assert result.ok
        assert result.text == "Hello"
        assert completed == ["Hello"]

    @pytest.mark.asyncio
    async def test_empty_deltas_not_framed(self, store):
        sink = RecordingSink()
        await _publisher(store).publish(event_stream([text_delta(""), text_delta("x")]), sink)
        assert [e for e, _ in sink.events()] == ["start", "token", "done"]

    @pytest.mark.asyncio
    async def test_generated_message_id(self, store):
        publisher = StreamingResponsePublisher(store, "s")
        assert publisher.assistant_message_id
        assert publisher.start_envelope().data["created_at"]


class TestHeartbeat:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", ["success", "failure", "abort"])
    async def test_heartbeats_only_before_terminal(self, store, outcome):
        abort = AbortSignal()

        async def slow():
            yield text_delta("a")
            await asyncio.sleep(0.08)
            if outcome == "failure":
                raise RuntimeError("model overloaded")
            if outcome == "abort":
                abort.abort("client stop")
            yield text_delta("b")

        sink = RecordingSink()
        await _publisher(store, heartbeat_interval_ms=10).publish(slow(), sink, abort=abort)
        await asyncio.sleep(0.05)

        beats = sink.heartbeat_positions()
        assert beats
        terminals = [i for i, f in enumerate(sink.frames) if f.startswith(("event: done", "event: error"))]
        assert len(terminals) == 1
        expected = "event: done" if outcome == "success" else "event: error"
        assert sink.frames[terminals[0]].startswith(expected)
        assert terminals[0] == len(sink.frames) - 1
        assert all(i < terminals[0] for i in beats)
        assert sink.frames[0].startswith("event: start")

    @pytest.mark.asyncio
    async def test_heartbeats_stop_before_error_on_cancellation(self, store):
        async def stalled():
            yield text_delta("half")
            await asyncio.Event().wait()

        sink = RecordingSink()
        task = asyncio.create_task(_publisher(store, heartbeat_interval_ms=10).publish(stalled(), sink))
        await asyncio.sleep(0.06)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.05)

        beats = sink.heartbeat_positions()
        assert beats
        assert _terminal_events(sink) == ["error"]
        assert sink.frames[-1].startswith("event: error")
        assert all(i < len(sink.frames) - 1 for i in beats)


class TestUpstreamFailure:

    @pytest.mark.asyncio
    async def test_error_frame_and_partial_persisted(self, store):
        sink = RecordingSink()
        completed = []

        async def on_complete(text):
            completed.append(text)

        result = await _publisher(store).publish(
            event_stream([text_delta("Half an ans")], error=RuntimeError("model overloaded")),
            sink,
            on_complete=on_complete,
        )

        assert _terminal_events(sink) == ["error"]
        assert sink.events()[-1][1] == {"message": "model overloaded"}
        assert result.state == StreamState.ERROR
        assert isinstance(result.error, UpstreamRunFailure)
        assert result.partial_persisted
        assert completed == []
        items = await store.get("web_session_c1")
        assert items[-1].content == "Half an ans"
        assert items[-1].is_interrupted

    @pytest.mark.asyncio
    async def test_no_partial_when_nothing_streamed(self, store):
        sink = RecordingSink()
        result = await _publisher(store).publish(event_stream([], error=RuntimeError("boom")), sink)
        assert not result.partial_persisted
        assert await store.get("web_session_c1") == []

    @pytest.mark.asyncio
    async def test_on_complete_failure_sends_error(self, store):
        sink = RecordingSink()

        async def on_complete(text):
            raise RuntimeError("store write failed")

        result = await _publisher(store).publish(event_stream([text_delta("x")]), sink, on_complete=on_complete)
        assert _terminal_events(sink) == ["error"]
        assert result.state == StreamState.ERROR
        assert not result.ok


class TestAbort:

    @pytest.mark.asyncio
    async def test_abort_signal_stops_stream(self, store):
        abort = AbortSignal()
        pulled = []

        async def events():
            pulled.append(1)
            yield text_delta("par")
            abort.abort("client stop")
            pulled.append(2)
            yield text_delta("tial")
            pulled.append(3)
            yield text_delta("never")

        sink = RecordingSink()
        result = await _publisher(store).publish(events(), sink, abort=abort)

        assert pulled == [1, 2]
        assert result.state == StreamState.ABORTED
        assert result.text == "partial"
        assert sink.events()[-1] == ("error", {"message": INTERRUPTED_MESSAGE, "aborted": True})
        assert _terminal_events(sink) == ["error"]
        items = await store.get("web_session_c1")
        assert items[-1].content == "partial"
        assert items[-1].is_interrupted

    @pytest.mark.asyncio
    async def test_closed_sink_treated_as_abort(self, store):
        sink = RecordingSink()

        async def events():
            yield text_delta("a")
            await sink.close()
            yield text_delta("b")
            yield text_delta("c")

        completed = []

        async def on_complete(text):
            completed.append(text)

        result = await _publisher(store).publish(events(), sink, on_complete=on_complete)

        assert result.state == StreamState.ABORTED
        assert result.text == "ab"
        assert completed == []
        assert [e for e, _ in sink.events()] == ["start", "token"]
        items = await store.get("web_session_c1")
        assert items[-1].content == "ab"

    @pytest.mark.asyncio
    async def test_cancellation_persists_partial_and_propagates(self, store):
        async def stalled():
            yield text_delta("half")
            await asyncio.Event().wait()

        sink = RecordingSink()
        task = asyncio.create_task(_publisher(store).publish(stalled(), sink))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        items = await store.get("web_session_c1")
        assert items[-1].content == "half"
        assert _terminal_events(sink) == ["error"]

    @pytest.mark.asyncio
    async def test_abort_without_text_persists_nothing(self, store):
        abort = AbortSignal()
        abort.abort()
        sink = RecordingSink()
        result = await _publisher(store).publish(event_stream([tool_called("get_current_time")]), sink, abort=abort)
        assert result.state == StreamState.ABORTED
        assert not result.partial_persisted
        assert await store.get("web_session_c1") == []

    @pytest.mark.asyncio
    async def test_closed_sink_stops_consuming_silent_events(self, store):
        sink = RecordingSink()
        pulled = []

        async def events():
            yield text_delta("a")
            await sink.close()
            for i in range(3):
                pulled.append(i)
                yield {"type": "raw_response_event"}

        result = await _publisher(store).publish(events(), sink)

        assert pulled == [0]
        assert result.state == StreamState.ABORTED
        assert result.text == "a"
