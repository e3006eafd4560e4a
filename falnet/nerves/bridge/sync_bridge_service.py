#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set

from ..lib.constants import DEFAULT_DRIVER_TIMEOUT, UpdateAction
from ..lib.stream import Sink, Source
from .base import BridgeService, DriverAdapter
from .errors import DeviceNotFoundError, InternalError, MissingParamError, NotSupportedError
from .models import Bridge, Device, DeviceConfig, DeviceState, Update

logger = logging.getLogger(__name__)


class SyncBridgeService(BridgeService):
    """
    Full streaming bridge on top of a driver that can only write state

    Responsibilities:
      - keep the cached device snapshots (every device is reported reachable)
      - validate writes, skip no-op writes, serialise driver calls
      - after a successful write update the cache and emit CHANGED
      - serve update streams as seed (ADDED per device) followed by deltas

    Notes:
      - the cache is updated right after the driver call returns, the
        service owns the driver so no echo is expected from anywhere else
      - a device changed between seed and subscription may be seen twice,
        consumers dedupe by device id
    """

    def __init__(
        self,
        bridge: Bridge,
        devices: Iterable[Device],
        driver: DriverAdapter,
        *,
        driver_timeout: float = DEFAULT_DRIVER_TIMEOUT,
    ) -> None:
        self._bridge = bridge.clone()
        self._bridge.devices = []
        self._driver = driver
        self._driver_timeout = driver_timeout
        self._devices: Dict[str, Device] = {}
        for device in devices:
            d = device.clone()
            d.state.is_reachable = True
            self._devices[d.id] = d
        self._write_lock = asyncio.Lock()
        self._late_writes: Set[asyncio.Task] = set()
        self._updates: Source[Update] = Source()

    @property
    def bridge_id(self) -> str:
        return self._bridge.id

    def updates(self) -> Sink[Update]:
        return self._updates.new_sink()

    async def get_bridge(self) -> Bridge:
        bridge = self._bridge.clone()
        bridge.devices = [d.clone() for d in self._devices.values()]
        return bridge

    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        return [d.clone() for d in self._devices.values()]

    async def get_device(self, device_id: str) -> Device:
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(f"device not found: {device_id}")
        return device.clone()

    async def update_device_config(self, device_id: str, config: Optional[DeviceConfig]) -> Device:
        raise NotSupportedError("device config updates are not supported by this bridge")

    async def update_device_state(self, device_id: str, state: Optional[DeviceState]) -> Device:
        if not device_id:
            raise MissingParamError("device id is required")
        if state is None:
            raise MissingParamError("device state is required")
        if not state.is_reachable:
            raise NotSupportedError("changing device reachability is not supported")

        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(f"device not found: {device_id}")

        if device.state == state:
            logger.debug("Device %s already in requested state, nothing to do", device_id)
            return device.clone()

        await self._write_lock.acquire()
        write = asyncio.ensure_future(
            asyncio.to_thread(self._driver.set_device_state, device.clone(), state.clone())
        )
        try:
            await asyncio.wait_for(asyncio.shield(write), timeout=self._driver_timeout)
        except asyncio.TimeoutError as e:
            logger.error("Driver write timed out: device=%s timeout=%s", device_id, self._driver_timeout)
            self._hand_off_write(write, device, state)
            raise InternalError(f"driver write timed out for device {device_id}") from e
        except asyncio.CancelledError:
            self._hand_off_write(write, device, state)
            raise
        except Exception as e:
            self._write_lock.release()
            logger.error("Driver write failed: device=%s error=%r", device_id, e)
            raise InternalError(f"driver write failed for device {device_id}: {e}") from e

        try:
            snapshot = self._apply(device, state)
        finally:
            self._write_lock.release()
        return snapshot.clone()

    def _hand_off_write(self, write: asyncio.Future, device: Device, state: DeviceState) -> None:
        # The driver is still busy, the write lock stays held until it returns
        late = asyncio.create_task(self._finish_late_write(write, device, state), name=f"late-write-{device.id}")
        self._late_writes.add(late)
        late.add_done_callback(self._late_writes.discard)

    def _apply(self, device: Device, state: DeviceState) -> Device:
        device.state = state.clone()
        snapshot = device.clone()
        self._updates.send_message(Update.for_device(UpdateAction.CHANGED, self._bridge.id, snapshot))
        return snapshot

    async def _finish_late_write(self, write: asyncio.Future, device: Device, state: DeviceState) -> None:
        """
        Wait for a timed out driver call, then release the write lock

        A late success still reaches the hardware, so the cache follows it
        """
        try:
            await write
        except Exception as e:
            logger.error("Timed out driver write failed: device=%s error=%r", device.id, e)
        else:
            logger.warning("Timed out driver write completed: device=%s", device.id)
            self._apply(device, state)
        finally:
            self._write_lock.release()

    async def close(self) -> None:
        """Wait for driver calls that outlived their timeout"""
        if self._late_writes:
            await asyncio.gather(*list(self._late_writes), return_exceptions=True)

    async def stream_bridge_updates(self, peer: str = "") -> AsyncIterator[Update]:
        logger.info("Update stream opened for peer=%r", peer)
        try:
            with self._updates.new_sink() as sink:
                for device in list(self._devices.values()):
                    logger.debug("Seeding peer=%r with device %s", peer, device.id)
                    yield Update.for_device(UpdateAction.ADDED, self._bridge.id, device.clone())
                async for update in sink:
                    yield update
        finally:
            logger.info("Update stream closed for peer=%r", peer)
