#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional

from ..base import BridgeClient, BridgeService
from ..models import Bridge, Device, DeviceConfig, DeviceState, Update


class LocalBridgeClient(BridgeClient):
    """
    BridgeClient bound to an in-process BridgeService

    Results are cloned the same way a wire hop would copy them, so callers
    never share snapshots with the service
    """

    def __init__(self, service: BridgeService, *, pinger: Optional[Any] = None, peer: str = "local") -> None:
        self._service = service
        self._pinger = pinger
        self._peer = peer
        self.closed = False

    async def get_bridge(self) -> Bridge:
        return (await self._service.get_bridge()).clone()

    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        return [d.clone() for d in await self._service.list_devices(bridge_id)]

    async def get_device(self, device_id: str) -> Device:
        return (await self._service.get_device(device_id)).clone()

    async def update_device_config(self, device_id: str, config: DeviceConfig) -> Device:
        return (await self._service.update_device_config(device_id, config.clone())).clone()

    async def update_device_state(self, device_id: str, state: DeviceState) -> Device:
        return (await self._service.update_device_state(device_id, state.clone())).clone()

    async def stream_bridge_updates(self) -> AsyncIterator[Update]:
        stream = self._service.stream_bridge_updates(self._peer)
        try:
            async for update in stream:
                yield update.clone()
        finally:
            await stream.aclose()

    async def ping(self) -> Dict:
        if self.closed:
            raise ConnectionError("client closed")
        if self._pinger is None:
            return {}
        return await self._pinger.ping()

    async def close(self) -> None:
        self.closed = True
