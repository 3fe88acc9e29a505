"""Tests for the outbound MessageQueue."""

from __future__ import annotations

import asyncio
import threading

import pytest

from parrot.events import OutboundMessage
from parrot.gateway.queue import MessageQueue


def _msg(i: int, target: str = "news") -> OutboundMessage:
    return OutboundMessage(target, f"m{i}".encode())


class TestMessageQueue:
    @pytest.mark.asyncio
    async def test_fifo_order(self):
        queue = MessageQueue()
        for i in range(5):
            queue.put(_msg(i))

        got = [await queue.get() for _ in range(5)]

        assert got == [_msg(i) for i in range(5)]

    @pytest.mark.asyncio
    async def test_get_waits_for_put(self):
        queue = MessageQueue()
        getter = asyncio.create_task(queue.get())
        await asyncio.sleep(0)
        assert not getter.done()

        queue.put(_msg(1))

        assert await asyncio.wait_for(getter, timeout=1) == _msg(1)

    @pytest.mark.asyncio
    async def test_put_never_blocks_and_never_drops(self):
        queue = MessageQueue()
        for i in range(10_000):
            queue.put(_msg(i))
        assert queue.qsize() == 10_000

    @pytest.mark.asyncio
    async def test_join_waits_for_task_done(self):
        queue = MessageQueue()
        queue.put(_msg(1))
        await queue.get()
        joiner = asyncio.create_task(queue.join())
        await asyncio.sleep(0)
        assert not joiner.done()

        queue.task_done()

        await asyncio.wait_for(joiner, timeout=1)

    @pytest.mark.asyncio
    async def test_puts_from_many_threads_preserve_per_producer_order(self):
        queue = MessageQueue()
        queue.bind(asyncio.get_running_loop())
        producers, per_producer = 8, 200

        def produce(p: int) -> None:
            for i in range(per_producer):
                queue.put(OutboundMessage(f"p{p}", str(i).encode()))

        threads = [threading.Thread(target=produce, args=(p,)) for p in range(producers)]
        for t in threads:
            t.start()
        await asyncio.get_running_loop().run_in_executor(None, lambda: [t.join() for t in threads])

        received = [await asyncio.wait_for(queue.get(), timeout=2) for _ in range(producers * per_producer)]

        for p in range(producers):
            mine = [int(m.payload) for m in received if m.target == f"p{p}"]
            assert mine == list(range(per_producer))
