#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Non-blocking fan-out broadcast

One Source, many Sinks. Every message sent to the Source is offered once to
each attached Sink; a Sink whose inbox is full simply misses that message.
The sender never waits for a slow consumer.

Example:
    source: Source[Update] = Source()
    with source.new_sink() as sink:
        async for update in sink:
            ...
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from typing import Dict, Generic, Optional, TypeVar

from .constants import SINK_BUFFER_SIZE

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Sink(Generic[T]):
    """
    Receiving end attached to a Source

    Iterate with `async for`; iteration ends once the sink is closed and the
    messages buffered before close are consumed
    """

    def __init__(self, source: "Source[T]", capacity: int = SINK_BUFFER_SIZE) -> None:
        self.id = str(uuid.uuid4())
        self._source = source
        self._capacity = capacity
        # Unbounded queue with a manual bound so the close marker always fits
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, msg: T) -> bool:
        """Enqueue without waiting, returns False when the message was dropped"""
        if self._closed or self._inbox.qsize() >= self._capacity:
            return False
        self._inbox.put_nowait(msg)
        return True

    def close(self) -> None:
        if self._closed:
            raise RuntimeError(f"sink {self.id} already closed")
        self._source._remove(self)
        self._closed = True
        self._inbox.put_nowait(_CLOSED)

    async def receive(self) -> Optional[T]:
        """Next message, or None once the sink is closed and drained"""
        if self._drained:
            return None
        msg = await self._inbox.get()
        if msg is _CLOSED:
            self._drained = True
            return None
        return msg

    def __aiter__(self) -> "Sink[T]":
        return self

    async def __anext__(self) -> T:
        msg = await self.receive()
        if msg is None:
            raise StopAsyncIteration
        return msg

    def __enter__(self) -> "Sink[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._closed:
            self.close()

    def __repr__(self) -> str:
        return f"Sink(id={self.id!r}, closed={self._closed})"


class Source(Generic[T]):
    """
    Sending end of the broadcast

    Registration, removal and send share one lock; the lock is never held
    across an await
    """

    def __init__(self, sink_capacity: int = SINK_BUFFER_SIZE) -> None:
        self._lock = threading.Lock()
        self._sinks: Dict[str, Sink[T]] = {}
        self._sink_capacity = sink_capacity

    @property
    def sink_count(self) -> int:
        with self._lock:
            return len(self._sinks)

    def new_sink(self) -> Sink[T]:
        sink: Sink[T] = Sink(self, capacity=self._sink_capacity)
        with self._lock:
            self._sinks[sink.id] = sink
        return sink

    def _remove(self, sink: Sink[T]) -> None:
        with self._lock:
            self._sinks.pop(sink.id, None)

    def send_message(self, msg: T) -> None:
        with self._lock:
            for sink in self._sinks.values():
                if not sink.offer(msg):
                    logger.debug("Channel blocked: sink=%s dropped message=%r", sink.id, msg)
