"""Bounded delivery channel between transport callbacks and forwarding loops."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class ChannelClosed(Exception):
    """Raised by ``receive`` once the channel is closed and drained."""


class DeliveryChannel(Generic[T]):
    """FIFO channel with a fixed capacity and an explicit close.

    ``send`` waits while the buffer is full and returns ``False`` without
    writing if the channel is, or becomes, closed. Items buffered before
    ``close`` are still handed to the receiver; only after the buffer is
    empty does iteration stop.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._buffer: deque[T] = deque()
        self._closed = False
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._buffer)

    async def send(self, item: T) -> bool:
        while not self._closed and len(self._buffer) >= self._capacity:
            self._writable.clear()
            await self._writable.wait()
        if self._closed:
            return False
        self._buffer.append(item)
        self._readable.set()
        return True

    async def receive(self) -> T:
        while not self._buffer:
            if self._closed:
                raise ChannelClosed()
            self._readable.clear()
            await self._readable.wait()
        item = self._buffer.popleft()
        self._writable.set()
        return item

    def close(self) -> None:
        self._closed = True
        self._readable.set()
        self._writable.set()

    def __aiter__(self) -> DeliveryChannel[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosed:
            raise StopAsyncIteration from None
