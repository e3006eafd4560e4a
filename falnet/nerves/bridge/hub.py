#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..lib.constants import UpdateAction
from ..lib.stream import Sink, Source
from .base import BridgeClient
from .errors import BridgeAlreadyAddedError, BridgeNotFoundError, DeviceNotFoundError
from .models import Bridge, Device, DeviceConfig, DeviceState, Update

logger = logging.getLogger(__name__)


@dataclass
class HubBridge:
    """
    Bridge attached to the hub together with its client and stream watcher
    """

    bridge: Bridge
    client: BridgeClient
    stream_cancel: Optional[asyncio.Task] = None

    @property
    def id(self) -> str:
        return self.bridge.id


@dataclass
class HubDevice:
    device: Device
    bridge: HubBridge = field(repr=False)


class Hub:
    """
    Aggregates many bridges into one logical bridge

    Responsibilities:
      1) Keep a device -> owning bridge index fed by every bridge's stream
      2) Serve reads from the cache (always clones)
      3) Route writes to the owning bridge's client
      4) Re-broadcast every bridge/device update to hub subscribers

    Notes:
      - two locks, always taken in order bridges -> devices
      - no RPC is issued while holding either lock
      - routed writes do not touch the cache, the owning bridge echoes a
        CHANGED update through its stream
    """

    def __init__(self) -> None:
        self._bridges: Dict[str, HubBridge] = {}
        self._devices: Dict[str, HubDevice] = {}
        self._bridges_lock = asyncio.Lock()
        self._devices_lock = asyncio.Lock()
        self._update_source: Source[Update] = Source()

    # ---- bridges ----

    async def add_bridge(self, client: BridgeClient) -> Bridge:
        bridge = await client.get_bridge()
        devices = list(bridge.devices)
        hb = HubBridge(bridge=bridge.clone(), client=client)

        async with self._bridges_lock:
            if bridge.id in self._bridges:
                raise BridgeAlreadyAddedError(f"bridge already added: {bridge.id}")
            self._bridges[bridge.id] = hb
            self._update_source.send_message(Update.for_bridge(UpdateAction.ADDED, bridge.id, bridge.clone()))

            # Held until the watcher exists, remove_bridge must find it to cancel
            for device in devices:
                await self.process_update(hb, Update.for_device(UpdateAction.ADDED, bridge.id, device))
            hb.stream_cancel = asyncio.create_task(self._watch_bridge(hb), name=f"bridge-watch-{bridge.id}")

        logger.info("Bridge added: id=%s devices=%d", bridge.id, len(devices))
        return bridge.clone()

    async def _watch_bridge(self, hb: HubBridge) -> None:
        try:
            async for update in hb.client.stream_bridge_updates():
                await self.process_update(hb, update)
            logger.warning("Bridge %s closed its update stream", hb.id)
        except asyncio.CancelledError:
            logger.info("Bridge stream cancelled: %s", hb.id)
            return
        except Exception as e:
            logger.warning("Bridge %s update stream failed: %r", hb.id, e)

        # The watcher is finishing on its own, removal must not cancel it
        hb.stream_cancel = None
        try:
            await self.remove_bridge(hb.id, owner=hb)
        except BridgeNotFoundError:
            logger.debug("Bridge %s already removed", hb.id)

    async def remove_bridge(self, bridge_id: str, *, owner: Optional[HubBridge] = None) -> None:
        async with self._bridges_lock:
            hb = self._bridges.get(bridge_id)
            if hb is None or (owner is not None and hb is not owner):
                raise BridgeNotFoundError(f"bridge not found: {bridge_id}")

            unreachable: List[Device] = []
            async with self._devices_lock:
                for hd in self._devices.values():
                    if hd.bridge is hb:
                        hd.device.state.is_reachable = False
                        unreachable.append(hd.device.clone())

            for device in unreachable:
                self._update_source.send_message(Update.for_device(UpdateAction.CHANGED, bridge_id, device))

            del self._bridges[bridge_id]
            self._update_source.send_message(Update.for_bridge(UpdateAction.REMOVED, bridge_id, hb.bridge.clone()))

        logger.info("Bridge removed: id=%s unreachable devices=%d", bridge_id, len(unreachable))
        if hb.stream_cancel is not None:
            hb.stream_cancel.cancel()
            hb.stream_cancel = None

    async def has_bridge(self, bridge_id: str) -> bool:
        async with self._bridges_lock:
            return bridge_id in self._bridges

    async def get_bridge(self, bridge_id: str) -> Bridge:
        async with self._bridges_lock:
            hb = self._bridges.get(bridge_id)
            if hb is None:
                raise BridgeNotFoundError(f"bridge not found: {bridge_id}")
            return hb.bridge.clone()

    async def list_bridges(self) -> List[Bridge]:
        async with self._bridges_lock:
            return [hb.bridge.clone() for hb in self._bridges.values()]

    # ---- updates ----

    async def process_update(self, hb: HubBridge, update: Update) -> None:
        """
        Apply one update received from `hb` to the cache and re-broadcast it
        """
        if update.bridge_update is not None:
            bu = update.bridge_update
            if not bu.bridge_id:
                bu.bridge_id = hb.id
            if bu.bridge is not None and update.action in (UpdateAction.ADDED, UpdateAction.CHANGED):
                async with self._bridges_lock:
                    snapshot = bu.bridge.clone()
                    snapshot.devices = []
                    hb.bridge = snapshot
            self._update_source.send_message(update)
            return

        du = update.device_update
        if not du.bridge_id:
            du.bridge_id = hb.id
        device_id = du.effective_id
        if not device_id:
            logger.warning("Dropping device update without device id from bridge %s: %s", hb.id, update)
            return
        if not du.device_id:
            du.device_id = device_id

        async with self._devices_lock:
            if update.action == UpdateAction.ADDED:
                if du.device is None:
                    logger.warning("Dropping ADDED update without device from bridge %s: %s", hb.id, device_id)
                    return
                existing = self._devices.get(device_id)
                if existing is not None and existing.bridge.id != hb.id:
                    logger.warning(
                        "Device %s already owned by bridge %s, replacing with bridge %s",
                        device_id,
                        existing.bridge.id,
                        hb.id,
                    )
                self._devices[device_id] = HubDevice(device=du.device.clone(), bridge=hb)
            elif update.action == UpdateAction.CHANGED:
                if du.device is None:
                    logger.warning("Dropping CHANGED update without device from bridge %s: %s", hb.id, device_id)
                    return
                existing = self._devices.get(device_id)
                if existing is None:
                    logger.debug("CHANGED for unknown device %s, adding it to bridge %s", device_id, hb.id)
                    self._devices[device_id] = HubDevice(device=du.device.clone(), bridge=hb)
                else:
                    existing.device = du.device.clone()
            elif update.action == UpdateAction.REMOVED:
                self._devices.pop(device_id, None)

        self._update_source.send_message(update)

    def updates(self) -> Sink[Update]:
        """Fresh subscription, close it to release"""
        return self._update_source.new_sink()

    async def seed_updates(self) -> List[Update]:
        async with self._devices_lock:
            return [
                Update.for_device(UpdateAction.ADDED, hd.bridge.id, hd.device.clone())
                for hd in self._devices.values()
            ]

    # ---- devices ----

    async def get_device(self, device_id: str) -> Device:
        async with self._devices_lock:
            hd = self._devices.get(device_id)
            if hd is None:
                raise DeviceNotFoundError(f"device not found: {device_id}")
            return hd.device.clone()

    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        async with self._devices_lock:
            return [
                hd.device.clone()
                for hd in self._devices.values()
                if not bridge_id or hd.bridge.id == bridge_id
            ]

    async def update_device_config(self, device_id: str, config: DeviceConfig) -> Device:
        async with self._devices_lock:
            hd = self._devices.get(device_id)
            if hd is None:
                raise DeviceNotFoundError(f"device not found: {device_id}")
            if hd.device.config == config:
                return hd.device.clone()
            client = hd.bridge.client

        # the contract guarantees we'll be getting an update from the owning bridge
        return await client.update_device_config(device_id, config)

    async def update_device_state(self, device_id: str, state: DeviceState) -> Device:
        async with self._devices_lock:
            hd = self._devices.get(device_id)
            if hd is None:
                raise DeviceNotFoundError(f"device not found: {device_id}")
            if hd.device.state == state:
                return hd.device.clone()
            client = hd.bridge.client

        # the contract guarantees we'll be getting an update from the owning bridge
        return await client.update_device_state(device_id, state)

    async def close(self) -> None:
        async with self._bridges_lock:
            tasks = [hb.stream_cancel for hb in self._bridges.values() if hb.stream_cancel is not None]
            for hb in self._bridges.values():
                hb.stream_cancel = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
