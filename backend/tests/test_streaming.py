"""Tests for the SSE streaming relay.

Frames are checked on the wire format produced by serialize_frame().
"""

import asyncio
import json

import pytest

from streaming import DONE, Delta, ErrorFrame, relay_stream, serialize_frame


async def _chunks(*items, fail_at=None):
    for i, item in enumerate(items, 1):
        if fail_at == i:
            raise ConnectionError("upstream reset")
        yield item


async def _collect(source, on_complete=None, finalize=None) -> list[str]:
    return [frame async for frame in relay_stream(source, on_complete, finalize)]


class Recorder:
    def __init__(self):
        self.calls: list[str] = []

    async def __call__(self, text: str) -> None:
        self.calls.append(text)


# ─── Serializer ───────────────────────────────────────────────────────────

class TestSerializeFrame:
    def test_delta(self):
        assert serialize_frame(Delta("Hi")) == 'data: {"content": "Hi"}\n\n'

    def test_delta_json_escaped(self):
        frame = serialize_frame(Delta('say "hi"\nnow'))
        payload = json.loads(frame[len("data: "):].strip())
        assert payload == {"content": 'say "hi"\nnow'}

    def test_error(self):
        frame = serialize_frame(ErrorFrame())
        assert json.loads(frame[len("data: "):].strip()) == {"error": "An error occurred during streaming"}

    def test_done(self):
        assert serialize_frame(DONE) == "data: [DONE]\n\n"

    def test_rejects_other_values(self):
        with pytest.raises(TypeError):
            serialize_frame("data: nope")


# ─── Relay ────────────────────────────────────────────────────────────────

class TestRelayStream:
    @pytest.mark.asyncio
    async def test_happy_path_persists_then_done(self):
        recorder = Recorder()
        frames = await _collect(_chunks("Hel", "lo", "!"), recorder)

        assert frames == [
            serialize_frame(Delta("Hel")),
            serialize_frame(Delta("lo")),
            serialize_frame(Delta("!")),
            "data: [DONE]\n\n",
        ]
        assert recorder.calls == ["Hello!"]

    @pytest.mark.asyncio
    async def test_done_emitted_after_on_complete(self):
        order: list[str] = []

        async def on_complete(text):
            order.append("persist")

        async for frame in relay_stream(_chunks("a"), on_complete):
            order.append(frame)

        assert order[-2:] == ["persist", "data: [DONE]\n\n"]

    @pytest.mark.asyncio
    async def test_empty_chunks_skipped(self):
        frames = await _collect(_chunks("a", "", None, "b"))
        assert frames == [serialize_frame(Delta("a")), serialize_frame(Delta("b")), "data: [DONE]\n\n"]

    @pytest.mark.asyncio
    async def test_failure_on_third_chunk(self):
        recorder = Recorder()
        frames = await _collect(_chunks("one", "two", "three", fail_at=3), recorder)

        assert frames == [
            serialize_frame(Delta("one")),
            serialize_frame(Delta("two")),
            serialize_frame(ErrorFrame()),
            "data: [DONE]\n\n",
        ]
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_finalize_appends_one_delta_and_persists_it(self):
        recorder = Recorder()
        frames = await _collect(_chunks("a", "b"), recorder, finalize=lambda text: text + "!")

        assert frames == [
            serialize_frame(Delta("a")),
            serialize_frame(Delta("b")),
            serialize_frame(Delta("!")),
            "data: [DONE]\n\n",
        ]
        assert recorder.calls == ["ab!"]

    @pytest.mark.asyncio
    async def test_finalize_rewrite_is_stored_not_resent(self):
        recorder = Recorder()
        frames = await _collect(_chunks("a", "b"), recorder, finalize=str.upper)

        assert frames == [serialize_frame(Delta("a")), serialize_frame(Delta("b")), "data: [DONE]\n\n"]
        assert recorder.calls == ["AB"]

    @pytest.mark.asyncio
    async def test_finalize_skipped_on_failure(self):
        seen = []
        await _collect(_chunks("a", "b", fail_at=2), Recorder(), finalize=lambda t: seen.append(t) or t)
        assert seen == []

    @pytest.mark.asyncio
    async def test_plain_string_is_one_delta(self):
        recorder = Recorder()
        frames = await _collect("Canned answer", recorder)
        assert frames == [serialize_frame(Delta("Canned answer")), "data: [DONE]\n\n"]
        assert recorder.calls == ["Canned answer"]

    @pytest.mark.asyncio
    async def test_client_disconnect_skips_persistence(self):
        recorder = Recorder()
        relay = relay_stream(_chunks("a", "b", "c"), recorder)

        first = await relay.__anext__()
        assert first == serialize_frame(Delta("a"))
        await relay.aclose()

        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_client_disconnect_closes_upstream(self):
        closed = []

        async def upstream():
            try:
                yield "a"
                yield "b"
            finally:
                closed.append(True)

        relay = relay_stream(upstream(), Recorder())
        await relay.__anext__()
        await relay.aclose()

        assert closed == [True]

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        recorder = Recorder()

        async def slow():
            yield "a"
            await asyncio.sleep(10)
            yield "b"

        async def consume():
            async for _ in relay_stream(slow(), recorder):
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert recorder.calls == []
