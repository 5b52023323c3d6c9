"""Streaming report generation.

A single producer task reads model fragments, buffers them and pushes
``ReportChunk`` objects onto a bounded queue that the consumer iterates.
Flushing follows :func:`should_flush`: the buffer is emitted once it
exceeds the byte threshold or ends on a paragraph boundary. Exactly one
final ``is_complete=True`` chunk ends every stream, whether the model
finished, the deadline passed or the consumer called :meth:`ReportStream.cancel`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from collections.abc import AsyncIterator

from patentrag.llm.base import PredictResponse
from patentrag.reports.schemas import ReportChunk

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_BYTES = 1024

_HEADING_LINE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)


def should_flush(buffer: str, threshold: int = DEFAULT_FLUSH_BYTES) -> bool:
    """True when ``buffer`` is larger than ``threshold`` bytes or ends in a blank line."""
    if not buffer:
        return False
    return len(buffer.encode("utf-8")) > threshold or buffer.endswith("\n\n")


def detect_section_hint(text: str) -> str | None:
    """Return the last Markdown heading in ``text``, if any."""
    headings = _HEADING_LINE.findall(text)
    if not headings:
        return None
    return headings[-1].strip()


def response_text(response: PredictResponse) -> str:
    raw = response.outputs.get("text") or response.outputs.get("output") or b""
    return raw.decode("utf-8", errors="replace")


class ReportStream:
    """Async iterator of ``ReportChunk`` fed by a background producer task.

    Usage::

        stream = await generator.generate_report_stream(request)
        async for chunk in stream:
            ...
            if enough:
                stream.cancel()   # iteration still ends with the final chunk
    """

    def __init__(
        self,
        source: AsyncIterator[PredictResponse],
        flush_bytes: int = DEFAULT_FLUSH_BYTES,
        queue_size: int = 64,
        deadline_seconds: float | None = None,
    ):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(queue_size, 1))
        self._cancel = asyncio.Event()
        self._flush_bytes = flush_bytes
        self._buffer = ""
        self._index = 0
        self._hint = ""
        self._final: ReportChunk | None = None
        self._final_queued = False
        self._finished = False

        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + deadline_seconds if deadline_seconds is not None else None
        self._task = asyncio.create_task(self._produce(source))

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def __aiter__(self) -> ReportStream:
        return self

    async def __anext__(self) -> ReportChunk:
        # A producer killed before it could queue the final chunk leaves nothing to wait for.
        if self._finished or (self._task.done() and self._queue.empty()):
            self._finished = True
            raise StopAsyncIteration
        chunk = await self._queue.get()
        if chunk.is_complete:
            self._finished = True
        return chunk

    def cancel(self) -> None:
        """Ask the producer to stop; the stream then ends with its final chunk."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    async def collect(self) -> list[ReportChunk]:
        return [chunk async for chunk in self]

    async def aclose(self) -> None:
        """Cancel and drain the stream, waiting for the producer to exit."""
        self.cancel()
        while not self._finished and not (self._task.done() and self._queue.empty()):
            try:
                await self.__anext__()
            except StopAsyncIteration:
                break
        if not self._task.done():
            await self._task

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def _produce(self, source: AsyncIterator[PredictResponse]) -> None:
        try:
            try:
                await self._pump(source)
            except Exception as exc:  # noqa: BLE001 - a broken model stream ends the report stream
                logger.warning("Model stream failed after %d chunks: %s", self._index, exc)
            finally:
                aclose = getattr(source, "aclose", None)
                if aclose is not None:
                    try:
                        await aclose()
                    except Exception as exc:  # noqa: BLE001
                        logger.debug("Closing model stream failed: %s", exc)

            if await self._put(self._final_chunk()):
                self._final_queued = True
            else:
                self._finish_nowait()
        except asyncio.CancelledError:
            self._finish_nowait()
            raise

    async def _put(self, chunk: ReportChunk) -> bool:
        """Queue ``chunk``; False if the stream was cancelled while the queue was full."""
        if not self._queue.full():
            self._queue.put_nowait(chunk)
            return True

        put = asyncio.ensure_future(self._queue.put(chunk))
        cancel_wait = asyncio.ensure_future(self._cancel.wait())
        try:
            done, _ = await asyncio.wait({put, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
            put.cancel()
        return put in done

    async def _pump(self, source: AsyncIterator[PredictResponse]) -> None:
        iterator = aiter(source)
        loop = asyncio.get_running_loop()

        while not self._cancel.is_set():
            timeout = None
            if self._deadline is not None:
                timeout = self._deadline - loop.time()
                if timeout <= 0:
                    logger.info("Report stream deadline exceeded after %d chunks", self._index)
                    return

            next_item = asyncio.ensure_future(anext(iterator))
            cancel_wait = asyncio.ensure_future(self._cancel.wait())
            try:
                done, _ = await asyncio.wait(
                    {next_item, cancel_wait},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            except asyncio.CancelledError:
                # Settle the pending read so the source can be closed.
                next_item.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await next_item
                raise
            finally:
                cancel_wait.cancel()

            if next_item not in done:
                next_item.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await next_item
                if not self._cancel.is_set():
                    logger.info("Report stream deadline exceeded after %d chunks", self._index)
                return

            try:
                response = next_item.result()
            except StopAsyncIteration:
                return

            text = response_text(response)
            if not text:
                continue
            self._buffer += text
            self._hint = detect_section_hint(self._buffer) or self._hint

            if should_flush(self._buffer, self._flush_bytes):
                chunk = ReportChunk(
                    chunk_index=self._index,
                    content=self._buffer,
                    section_hint=self._hint,
                )
                # Cancelled while the consumer is not reading: the text stays
                # buffered for the final chunk.
                if not await self._put(chunk):
                    return
                self._index += 1
                self._buffer = ""

    def _final_chunk(self) -> ReportChunk:
        if self._final is None:
            self._final = ReportChunk(
                chunk_index=self._index,
                content=self._buffer,
                section_hint=self._hint,
                is_complete=True,
            )
            self._buffer = ""
            self._index += 1
        return self._final

    def _finish_nowait(self) -> None:
        """Queue the final chunk without waiting, dropping unread chunks if the queue is full."""
        if self._final_queued:
            return
        dropped = 0
        while self._queue.full():
            self._queue.get_nowait()
            dropped += 1
        if dropped:
            logger.info("Dropped %d unread chunks to end the cancelled report stream", dropped)
        self._queue.put_nowait(self._final_chunk())
        self._final_queued = True
