"""Outbound message queue: many producers, one consumer."""

from __future__ import annotations

import asyncio

from parrot.events import OutboundMessage


class MessageQueue:
    """Unbounded FIFO of outbound messages.

    ``put`` never blocks and may be called from the owning event loop or from
    any other thread. ``get`` is awaited by exactly one consumer.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach the loop the consumer runs on; puts from other threads are handed to it."""
        self._loop = loop

    def put(self, msg: OutboundMessage) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None or running is self._loop:
            self._queue.put_nowait(msg)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, msg)

    async def get(self) -> OutboundMessage:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return await self._queue.get()

    def task_done(self) -> None:
        """Mark the last message from get() as handled."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued message has been handled by the consumer."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()
