from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any


logger = logging.getLogger(__name__)

SSE_PING = ": ping\n\n"


class _End:
    __slots__ = ("error",)

    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error


class ChannelClosed(Exception):
    pass


class TextChannel:
    """Ordered text chunks from one producer to one consumer.

    The producer calls `push()` per chunk and `end()` once (optionally with an error).
    The consumer iterates (or `pull()`s) until the end marker. `close()` is the
    consumer walking away: it cancels the producer task, if one is attached, and
    makes further pushes no-ops.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | _End] = asyncio.Queue()
        self._ended = False
        self._closed = False
        self.producer: asyncio.Task[Any] | None = None
        self.response_id: str | None = None
        self.chunks: list[str] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def text(self) -> str:
        """Everything pushed so far, concatenated."""

        return "".join(self.chunks)

    def push(self, chunk: str) -> None:
        if self._ended or self._closed or not chunk:
            return
        self.chunks.append(chunk)
        self._queue.put_nowait(chunk)

    def end(self, error: BaseException | None = None) -> None:
        if self._ended:
            return
        self._ended = True
        self._queue.put_nowait(_End(error))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.producer is not None and not self.producer.done():
            self.producer.cancel()
        self.end()

    async def pull(self, timeout: float | None = None) -> str | None:
        """Next chunk, or None at end of stream.

        Raises TimeoutError when nothing arrived within `timeout`; the channel stays usable.
        Re-raises the producer's error if it ended with one.
        """

        item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        if isinstance(item, _End):
            # Leave the marker for any later pull.
            self._queue.put_nowait(item)
            if item.error is not None:
                raise item.error
            return None
        return item

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[str]:
        while True:
            chunk = await self.pull()
            if chunk is None:
                return
            yield chunk


def sse_event(payload: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(dict(payload), ensure_ascii=False)}\n\n"


async def sse_from_channel(channel: TextChannel, *, heartbeat_s: float = 15.0) -> AsyncIterator[str]:
    """Render a channel as server-sent events.

    Emits a delta event per chunk, a `: ping` comment whenever nothing arrived for
    `heartbeat_s`, then a done event. Producer errors become an error event. If the
    client goes away the generator is closed and the channel (and its producer) with it.
    """

    try:
        while True:
            try:
                chunk = await channel.pull(timeout=heartbeat_s)
            except TimeoutError:
                yield SSE_PING
                continue
            except Exception as e:
                logger.warning("stream producer failed: %s", e)
                yield sse_event({"type": "error", "error": str(e)})
                return
            if chunk is None:
                break
            yield sse_event({"type": "delta", "content": chunk})
        yield sse_event({"type": "done"})
    finally:
        channel.close()
