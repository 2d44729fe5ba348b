from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, AsyncIterator, Sequence

from .errors import classify_error
from .models import FileValidationWarning, StreamChunk
from .sse import DONE_FRAME, KEEP_ALIVE_FRAME, chunk_event, error_event, format_sse


logger = logging.getLogger(__name__)

_CHUNK = "chunk"
_PING = "ping"
_ERROR = "error"
_END = "end"


class StreamMultiplexer:
    """Relays one adapter stream as SSE frames with keep-alives in idle gaps.

    A pump task moves adapter chunks into a queue and a heartbeat task adds
    keep-alive markers to the same queue; ``events`` drains it in order. The
    heartbeat reads the time of the last forwarded frame, which only
    ``events`` writes. Exactly one ``[DONE]`` frame ends every stream.
    """

    def __init__(
        self,
        chunks: AsyncIterator[StreamChunk],
        *,
        warnings: Sequence[FileValidationWarning] = (),
        heartbeat_interval: float = 20.0,
        request_id: str = "",
    ) -> None:
        self._chunks = chunks
        self._warnings = list(warnings)
        self._interval = heartbeat_interval
        self._request_id = request_id
        self._queue: asyncio.Queue[tuple[str, object]] = asyncio.Queue()
        self._last_emit = 0.0
        self._finished = False
        self.error: BaseException | None = None
        self.done_sent = False

    async def _pump(self) -> None:
        try:
            async for chunk in self._chunks:
                await self._queue.put((_CHUNK, chunk))
                if chunk.is_complete:
                    break
        except Exception as exc:
            logger.warning("stream %s failed upstream: %s", self._request_id, exc)
            await self._queue.put((_ERROR, exc))
        else:
            await self._queue.put((_END, None))

    async def _heartbeat(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._finished:
            idle = loop.time() - self._last_emit
            if idle >= self._interval:
                await self._queue.put((_PING, None))
                await asyncio.sleep(self._interval)
            else:
                await asyncio.sleep(self._interval - idle)

    def _take_warnings(self) -> list[FileValidationWarning]:
        warnings, self._warnings = self._warnings, []
        return warnings

    async def events(self) -> AsyncGenerator[str, None]:
        loop = asyncio.get_running_loop()
        self._last_emit = loop.time()
        pump = asyncio.create_task(self._pump())
        heartbeat = asyncio.create_task(self._heartbeat())

        try:
            while True:
                kind, payload = await self._queue.get()
                done = False
                if kind == _PING:
                    frame = KEEP_ALIVE_FRAME
                elif kind == _CHUNK:
                    frame = format_sse(chunk_event(payload, self._take_warnings()))
                    done = payload.is_complete
                elif kind == _ERROR:
                    self.error = payload
                    message = classify_error(payload).message
                    frame = format_sse(error_event(message, self._take_warnings()))
                    done = True
                else:
                    frame = format_sse(
                        chunk_event(StreamChunk(is_complete=True), self._take_warnings())
                    )
                    done = True

                yield frame
                self._last_emit = loop.time()
                if done:
                    break

            self._finished = True
            yield DONE_FRAME
            self.done_sent = True
            logger.debug("stream %s finished", self._request_id)
        finally:
            self._finished = True
            heartbeat.cancel()
            pump.cancel()
            await asyncio.gather(heartbeat, pump, return_exceptions=True)
            aclose = getattr(self._chunks, "aclose", None)
            if aclose is not None:
                await aclose()
