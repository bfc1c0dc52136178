"""Bounded hand-off between the producer tasks and the dispatcher."""

import asyncio
from dataclasses import dataclass


@dataclass(frozen=True)
class InboundMessage:
    """One chat message as the dispatcher sees it."""

    update_id: int
    sender_id: int
    chat_id: int
    text: str
    username: str = ""


class BufferedStream:
    """Bounded FIFO between one producer task and the dispatcher.

    ``put`` blocks while the buffer is full. After ``close`` the consumer
    still drains what is buffered, then ``get`` returns None.
    """

    def __init__(self, maxsize):
        self.queue = asyncio.Queue(maxsize)
        self.closed = asyncio.Event()

    async def put(self, item):
        await self.queue.put(item)

    def close(self):
        self.closed.set()

    async def get(self):
        while True:
            if self.queue.empty() and self.closed.is_set():
                return None
            getter = asyncio.ensure_future(self.queue.get())
            closer = asyncio.ensure_future(self.closed.wait())
            try:
                await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()
            if getter.done() and not getter.cancelled():
                return getter.result()

    async def __aiter__(self):
        while (item := await self.get()) is not None:
            yield item
