#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, Optional

from ..lib.constants import BRIDGE_TYPE_HEADER, DEFAULT_RPC_TIMEOUT
from .base import BridgeClient
from .discovery.monitor import MonitorHandler
from .discovery.ssdp import usn_to_bridge_id
from .errors import BridgeNotFoundError
from .hub import Hub
from .rpc.client import RemoteBridgeClient

logger = logging.getLogger(__name__)

Dialer = Callable[[str], Awaitable[BridgeClient]]


class HubMonitor(MonitorHandler):
    """
    Turns discovery events into Hub attach/detach calls

    Owns one client connection per discovered bridge:
      - alive for a new bridge: dial and add it to the hub
      - alive for a known bridge: ping; re-add if the hub dropped it,
        re-dial if the ping fails
      - going away: remove from the hub and close the connection

    Advertisements of other types and of the hub itself are ignored
    """

    def __init__(
        self,
        hub: Hub,
        own_bridge_id: str,
        *,
        types: Iterable[str] = (BRIDGE_TYPE_HEADER,),
        dial: Optional[Dialer] = None,
        ping_timeout: float = DEFAULT_RPC_TIMEOUT,
    ) -> None:
        self._hub = hub
        self._own_id = own_bridge_id
        self._types = set(types)
        self._dial = dial or self._dial_remote
        self._ping_timeout = ping_timeout
        self._conns: Dict[str, BridgeClient] = {}
        self._lock = asyncio.Lock()

    async def _dial_remote(self, conn_str: str) -> BridgeClient:
        return await RemoteBridgeClient.dial(conn_str, timeout=self._ping_timeout)

    @property
    def connected_ids(self) -> frozenset:
        return frozenset(self._conns)

    async def alive(self, type_: str, usn: str, location: str) -> None:
        if type_ not in self._types:
            return
        bridge_id = usn_to_bridge_id(usn)
        if not bridge_id or bridge_id == self._own_id:
            return

        async with self._lock:
            client = self._conns.get(bridge_id)
            if client is not None:
                try:
                    await asyncio.wait_for(client.ping(), timeout=self._ping_timeout)
                except Exception as e:
                    logger.warning("Bridge %s did not answer ping, reconnecting: %r", bridge_id, e)
                    del self._conns[bridge_id]
                    await self._close(bridge_id, client)
                    # The stale entry would make the re-dialled add fail
                    try:
                        await self._hub.remove_bridge(bridge_id)
                    except BridgeNotFoundError:
                        pass
                else:
                    if not await self._hub.has_bridge(bridge_id):
                        logger.info("Bridge %s is alive but not attached, adding it back", bridge_id)
                        try:
                            await self._hub.add_bridge(client)
                        except Exception as e:
                            logger.warning("Failed to re-add bridge %s: %r", bridge_id, e)
                    return

            logger.info("Discovered bridge %s at %s", bridge_id, location)
            try:
                client = await self._dial(location)
            except Exception as e:
                logger.warning("Failed to connect to bridge %s at %s: %r", bridge_id, location, e)
                return

            try:
                await self._hub.add_bridge(client)
            except Exception as e:
                logger.warning("Failed to add bridge %s: %r", bridge_id, e)
                await self._close(bridge_id, client)
                return
            self._conns[bridge_id] = client

    async def going_away(self, usn: str) -> None:
        bridge_id = usn_to_bridge_id(usn)
        async with self._lock:
            client = self._conns.pop(bridge_id, None)
            if client is None:
                return
            logger.info("Bridge %s is going away", bridge_id)
            try:
                await self._hub.remove_bridge(bridge_id)
            except BridgeNotFoundError:
                logger.debug("Bridge %s was not attached to the hub", bridge_id)
            await self._close(bridge_id, client)

    async def close(self) -> None:
        async with self._lock:
            conns = list(self._conns.items())
            self._conns.clear()
        for bridge_id, client in conns:
            await self._close(bridge_id, client)

    @staticmethod
    async def _close(bridge_id: str, client: BridgeClient) -> None:
        try:
            await client.close()
        except Exception as e:
            logger.debug("Closing connection to %s failed: %r", bridge_id, e)
