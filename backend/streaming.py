"""Streaming relay: provider deltas to Server-Sent Events.

Three frame types cross the wire, each serialized by ``serialize_frame``::

    data: {"content": "<delta>"}\\n\\n     Delta
    data: {"error": "<reason>"}\\n\\n      ErrorFrame
    data: [DONE]\\n\\n                      Done

``relay_stream`` accumulates the deltas it forwards and, once the upstream
iterator is exhausted, passes the text through ``finalize`` and awaits
``on_complete(full_text)`` before emitting ``Done``.  An upstream failure ends the stream with one error frame and
``Done``; the partial text is dropped and ``on_complete`` never runs.  If
the client goes away the generator is closed (or its task cancelled) and
persistence is skipped as well.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from errors import StreamInterrupted

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "An error occurred during streaming"


@dataclass(frozen=True)
class Delta:
    text: str


@dataclass(frozen=True)
class ErrorFrame:
    reason: str = STREAM_ERROR_MESSAGE


@dataclass(frozen=True)
class Done:
    pass


DONE = Done()

Frame = Union[Delta, ErrorFrame, Done]
OnComplete = Callable[[str], Awaitable[None]]
Finalize = Callable[[str], str]


def serialize_frame(frame: Frame) -> str:
    """Render one frame as an SSE ``data:`` event."""
    if isinstance(frame, Delta):
        return f"data: {json.dumps({'content': frame.text})}\n\n"
    if isinstance(frame, ErrorFrame):
        return f"data: {json.dumps({'error': frame.reason})}\n\n"
    if isinstance(frame, Done):
        return "data: [DONE]\n\n"
    raise TypeError(f"Not a stream frame: {frame!r}")


async def _single(text: str) -> AsyncIterator[str]:
    yield text


async def _close_source(chunks) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.warning(f"Closing the upstream stream failed: {e}")


async def relay_frames(
    source: Union[str, AsyncIterator[str]],
    on_complete: Optional[OnComplete] = None,
    finalize: Optional[Finalize] = None,
) -> AsyncIterator[Frame]:
    """Yield typed frames for ``source``; a plain string is one delta.

    ``finalize`` maps the full text to the text that is kept.  When it only
    appends, the addition goes out as one more delta so the client and the
    stored copy agree.

    The upstream iterator is closed however the relay ends, so a client
    disconnect also releases the provider's HTTP response.
    """
    chunks = _single(source) if isinstance(source, str) else source
    collected: list[str] = []
    failure: Optional[StreamInterrupted] = None

    try:
        async for text in chunks:
            if not text:
                continue
            collected.append(text)
            yield Delta(text)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        failure = StreamInterrupted(str(e))
    finally:
        await _close_source(chunks)

    if failure is not None:
        logger.error(f"Stream interrupted after {len(collected)} chunks: {failure}")
        yield ErrorFrame()
        yield DONE
        return

    full_text = "".join(collected)
    if finalize is not None:
        final_text = finalize(full_text)
        if final_text.startswith(full_text):
            if len(final_text) > len(full_text):
                yield Delta(final_text[len(full_text):])
        else:
            logger.info("Streamed answer rewritten after delivery; storing the rewritten text")
        full_text = final_text
    if on_complete is not None:
        await on_complete(full_text)
    logger.info(f"Stream complete ({len(collected)} chunks, {len(full_text)} chars)")
    yield DONE


async def relay_stream(
    source: Union[str, AsyncIterator[str]],
    on_complete: Optional[OnComplete] = None,
    finalize: Optional[Finalize] = None,
) -> AsyncIterator[str]:
    """SSE text for ``source``, suitable for ``StreamingResponse``."""
    frames = relay_frames(source, on_complete, finalize)
    try:
        async for frame in frames:
            yield serialize_frame(frame)
    finally:
        await frames.aclose()
