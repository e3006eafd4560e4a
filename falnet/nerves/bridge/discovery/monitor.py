#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Tuple

from ...lib.constants import SSDP_MULTICAST_ADDR, SSDP_PORT
from .ssdp import KIND_SEARCH, SsdpMessage, build_search, open_multicast_listener, parse_message, strip_location_scheme

logger = logging.getLogger(__name__)


class MonitorHandler(ABC):
    """
    Receives discovery events for the allowed SSDP types

    Calls are made one at a time from the monitor's receive loop, so a
    handler must not block indefinitely
    """

    @abstractmethod
    async def alive(self, type_: str, usn: str, location: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def going_away(self, usn: str) -> None:
        raise NotImplementedError


class _DatagramQueue(asyncio.DatagramProtocol):
    def __init__(self, queue: "asyncio.Queue[Tuple[bytes, Tuple[str, int]]]") -> None:
        self._queue = queue

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self._queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        logger.warning("SSDP socket error: %r", exc)


class Monitor:
    """
    Listens for SSDP alive/byebye traffic and forwards it to a handler

    Example:
        monitor = Monitor(handler, types=[BRIDGE_TYPE_HEADER])
        await monitor.run(stop_event)
    """

    def __init__(
        self,
        handler: MonitorHandler,
        types: Iterable[str],
        *,
        log_nonregistered_types: bool = False,
        search_on_start: bool = True,
    ) -> None:
        self._handler = handler
        self._types = set(types)
        self._log_nonregistered = log_nonregistered_types
        self._search_on_start = search_on_start

    @property
    def types(self) -> frozenset:
        return frozenset(self._types)

    async def dispatch(self, msg: SsdpMessage) -> None:
        if msg.kind == KIND_SEARCH:
            return

        type_ = msg.type
        if type_ not in self._types:
            if self._log_nonregistered:
                logger.debug("Ignoring non-registered SSDP type %r from usn=%r", type_, msg.usn)
            return

        if msg.is_alive:
            await self._handler.alive(type_, msg.usn, strip_location_scheme(msg.location))
        elif msg.is_byebye:
            await self._handler.going_away(msg.usn)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        sock = open_multicast_listener()
        transport, _ = await loop.create_datagram_endpoint(lambda: _DatagramQueue(queue), sock=sock)
        logger.info("SSDP monitor listening for types=%s", sorted(self._types))

        stop_task = asyncio.create_task(stop.wait())
        get_task: Optional[asyncio.Task] = None
        try:
            if self._search_on_start:
                for type_ in sorted(self._types):
                    transport.sendto(build_search(type_), (SSDP_MULTICAST_ADDR, SSDP_PORT))

            while True:
                get_task = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
                if get_task not in done:
                    get_task.cancel()
                    break

                data, addr = get_task.result()
                msg = parse_message(data)
                if msg is None:
                    continue
                try:
                    await self.dispatch(msg)
                except Exception as e:
                    logger.error("SSDP handler failed for %s from %s: %r", msg.usn, addr[0], e)
        finally:
            stop_task.cancel()
            if get_task is not None and not get_task.done():
                get_task.cancel()
            transport.close()
            logger.info("SSDP monitor stopped")
