#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from ...lib.constants import (
    ADVERTISE_INTERVAL,
    BRIDGE_TYPE_HEADER,
    SSDP_ALL,
    SSDP_MAX_AGE,
    SSDP_MULTICAST_ADDR,
    SSDP_PORT,
    SSDP_SERVER_HEADER,
)
from .ssdp import (
    KIND_SEARCH,
    SsdpMessage,
    bridge_usn,
    build_alive,
    build_byebye,
    build_search_response,
    is_unspecified_host,
    make_location,
    open_multicast_listener,
    open_sender,
    parse_message,
    primary_unicast_address,
)

logger = logging.getLogger(__name__)


class _SearchResponder(asyncio.DatagramProtocol):
    def __init__(self, advertiser: "Advertiser") -> None:
        self._advertiser = advertiser
        self._transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        msg = parse_message(data)
        if msg is None:
            return
        response = self._advertiser.search_response(msg)
        if response is not None and self._transport is not None:
            logger.debug("Answering M-SEARCH st=%r from %s", msg.type, addr[0])
            self._transport.sendto(response, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("SSDP responder socket error: %r", exc)


class Advertiser:
    """
    Announces one bridge on the local network and answers liveness pings

    Lifecycle:
      - ssdp:alive on start and then every `interval` seconds
      - unicast answer to M-SEARCH for our type or ssdp:all
      - one ssdp:byebye when `stop` fires

    The advertised host falls back to the primary unicast address when the
    RPC server listens on a wildcard address
    """

    def __init__(
        self,
        bridge_id: str,
        host: str,
        port: int,
        *,
        nt: str = BRIDGE_TYPE_HEADER,
        interval: float = ADVERTISE_INTERVAL,
        max_age: int = SSDP_MAX_AGE,
        server: str = SSDP_SERVER_HEADER,
        answer_searches: bool = True,
        sender: Optional[asyncio.DatagramTransport] = None,
    ) -> None:
        self._bridge_id = bridge_id
        self._host = host
        self._port = port
        self._nt = nt
        self._interval = interval
        self._max_age = max_age
        self._server = server
        self._answer_searches = answer_searches
        self._sender = sender
        self._location: Optional[str] = None

    @property
    def usn(self) -> str:
        return bridge_usn(self._bridge_id)

    @property
    def location(self) -> str:
        if self._location is None:
            host = self._host
            if is_unspecified_host(host):
                host = primary_unicast_address()
                logger.info("Advertising on %s instead of wildcard address %r", host, self._host)
            self._location = make_location(host, self._port)
        return self._location

    def alive_packet(self) -> bytes:
        return build_alive(self._nt, self.usn, self.location, server=self._server, max_age=self._max_age)

    def byebye_packet(self) -> bytes:
        return build_byebye(self._nt, self.usn)

    def search_response(self, msg: SsdpMessage) -> Optional[bytes]:
        if msg.kind != KIND_SEARCH or msg.type not in (self._nt, SSDP_ALL):
            return None
        return build_search_response(self._nt, self.usn, self.location, server=self._server, max_age=self._max_age)

    async def ping(self) -> Dict[str, Any]:
        return {}

    def _send(self, data: bytes) -> None:
        if self._sender is None:
            raise RuntimeError("advertiser is not running")
        self._sender.sendto(data, (SSDP_MULTICAST_ADDR, SSDP_PORT))

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        loop = asyncio.get_running_loop()

        own_sender = self._sender is None
        responder: Optional[asyncio.BaseTransport] = None
        if own_sender:
            self._sender, _ = await loop.create_datagram_endpoint(asyncio.DatagramProtocol, sock=open_sender())
        try:
            if self._answer_searches:
                responder, _ = await loop.create_datagram_endpoint(
                    lambda: _SearchResponder(self), sock=open_multicast_listener()
                )

            logger.info("Advertising %s as %s at %s", self._nt, self.usn, self.location)
            while not stop.is_set():
                try:
                    self._send(self.alive_packet())
                except OSError as e:
                    logger.warning("Failed to send ssdp:alive: %r", e)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            try:
                self._send(self.byebye_packet())
                logger.info("Sent ssdp:byebye for %s", self.usn)
            except (OSError, RuntimeError) as e:
                logger.warning("Failed to send ssdp:byebye: %r", e)
            if responder is not None:
                responder.close()
            if own_sender and self._sender is not None:
                self._sender.close()
                self._sender = None
