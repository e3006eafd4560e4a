#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

from .base import BridgeService
from .errors import MissingParamError
from .hub import Hub
from .models import Bridge, Device, DeviceConfig, DeviceState, Update

logger = logging.getLogger(__name__)


class HubBridgeService(BridgeService):
    """
    The hub presented to callers as one virtual bridge

    get_bridge() returns the hub identity with every known device embedded,
    reads and writes go straight to the Hub
    """

    def __init__(self, hub: Hub, hub_info: Bridge) -> None:
        self._hub = hub
        self._hub_info = hub_info.clone()
        self._hub_info.devices = []

    @property
    def bridge_id(self) -> str:
        return self._hub_info.id

    async def get_bridge(self) -> Bridge:
        bridge = self._hub_info.clone()
        bridge.devices = await self._hub.list_devices()
        return bridge

    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        return await self._hub.list_devices(bridge_id)

    async def get_device(self, device_id: str) -> Device:
        return await self._hub.get_device(device_id)

    async def update_device_config(self, device_id: str, config: Optional[DeviceConfig]) -> Device:
        if not device_id or config is None:
            raise MissingParamError("device id and config are required")
        return await self._hub.update_device_config(device_id, config)

    async def update_device_state(self, device_id: str, state: Optional[DeviceState]) -> Device:
        if not device_id or state is None:
            raise MissingParamError("device id and state are required")
        return await self._hub.update_device_state(device_id, state)

    async def stream_bridge_updates(self, peer: str = "") -> AsyncIterator[Update]:
        # Subscribe before seeding so no delta falls in between, duplicates are fine
        with self._hub.updates() as sink:
            seed = await self._hub.seed_updates()
            logger.info("Hub stream opened for peer=%r, seeding %d devices", peer, len(seed))
            try:
                for update in seed:
                    yield update
                async for update in sink:
                    yield update
            finally:
                logger.info("Hub stream closed for peer=%r", peer)
