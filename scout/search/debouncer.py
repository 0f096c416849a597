#!/usr/bin/env python3
"""Query debouncer: turns a keystroke stream into committed queries"""

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Optional

logger = logging.getLogger(__name__)

_CLOSED = object()
_UNSET = object()


class QueryDebouncer:
    """
    Bounded queue plus a quiescence timer.

    A value is committed once no new input arrived for `window_s`. Values are
    stripped and consecutive duplicate commits are suppressed. An empty value
    commits at once as "" and means "clear results". End of input flushes the
    pending value.
    """

    def __init__(self, window_s: float = 0.3, maxsize: int = 64):
        self.window_s = window_s
        self.maxsize = maxsize
        self._queue: Optional[asyncio.Queue] = None

    def _ensure_queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        return self._queue

    def push(self, text: str) -> None:
        """Feed one keystroke value; drops the oldest queued one when full"""
        queue = self._ensure_queue()
        if queue.full():
            dropped = queue.get_nowait()
            logger.debug(f"Debounce queue full, dropped {dropped!r}")
        queue.put_nowait(text)

    def close(self) -> None:
        """Signal end of input"""
        queue = self._ensure_queue()
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(_CLOSED)

    async def _feed(self, source: AsyncIterable[str]) -> None:
        queue = self._ensure_queue()
        try:
            async for text in source:
                await queue.put(text)
        finally:
            await queue.put(_CLOSED)

    async def commits(self, source: Optional[AsyncIterable[str]] = None) -> AsyncIterator[str]:
        """
        Committed queries, lazily.

        With a source the debouncer drains it itself into a fresh queue;
        without one it reads values given to push() until close().
        """
        feeder = None
        if source is not None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
            feeder = asyncio.create_task(self._feed(source))
        queue = self._ensure_queue()

        pending = None
        last_committed = _UNSET
        try:
            while True:
                try:
                    if pending is None:
                        value = await queue.get()
                    else:
                        value = await asyncio.wait_for(queue.get(), timeout=self.window_s)
                except asyncio.TimeoutError:
                    # Quiescence window elapsed
                    if pending != last_committed:
                        last_committed = pending
                        yield pending
                    pending = None
                    continue

                if value is _CLOSED:
                    if pending is not None and pending != last_committed:
                        yield pending
                    return

                text = (value if isinstance(value, str) else str(value)).strip()
                if not text:
                    pending = None
                    if last_committed != "":
                        last_committed = ""
                        yield ""
                    continue

                pending = text
        finally:
            if feeder is not None and not feeder.done():
                feeder.cancel()
