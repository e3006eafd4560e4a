#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional

from .models import Bridge, Device, DeviceConfig, DeviceState, Update


class DriverAdapter(ABC):
    """
    Base interface for a device driver

    The only operation a driver must provide is a synchronous state write;
    SyncBridgeService runs it in a worker thread and serialises calls, so
    hardware handles (serial ports, vendor SDKs) need no locking of their own
    """

    @abstractmethod
    def set_device_state(self, device: Device, state: DeviceState) -> None:
        """
        Apply desired state to the physical device, raise on failure
        """
        raise NotImplementedError

    def close(self) -> None:
        """Optional, for cleanup"""
        return None


class BridgeService(ABC):
    """
    Server side of the bridge protocol

    Exposed over RPC by BridgeServer; implemented by SyncBridgeService
    (one bridge in front of a driver) and HubBridgeService (many bridges
    seen as one)
    """

    @abstractmethod
    async def get_bridge(self) -> Bridge:
        raise NotImplementedError

    @abstractmethod
    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        raise NotImplementedError

    @abstractmethod
    async def get_device(self, device_id: str) -> Device:
        raise NotImplementedError

    @abstractmethod
    async def update_device_config(self, device_id: str, config: Optional[DeviceConfig]) -> Device:
        raise NotImplementedError

    @abstractmethod
    async def update_device_state(self, device_id: str, state: Optional[DeviceState]) -> Device:
        raise NotImplementedError

    @abstractmethod
    def stream_bridge_updates(self, peer: str = "") -> AsyncIterator[Update]:
        """
        Seed ADDED per known device, then live deltas until the consumer stops
        """
        raise NotImplementedError


class BridgeClient(ABC):
    """
    Caller side of the bridge protocol as seen by the Hub

    Errors raised by the remote end surface as BridgeError carrying the
    remote error code; transport failures surface as the transport's exception
    """

    @abstractmethod
    async def get_bridge(self) -> Bridge:
        raise NotImplementedError

    @abstractmethod
    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        raise NotImplementedError

    @abstractmethod
    async def get_device(self, device_id: str) -> Device:
        raise NotImplementedError

    @abstractmethod
    async def update_device_config(self, device_id: str, config: DeviceConfig) -> Device:
        raise NotImplementedError

    @abstractmethod
    async def update_device_state(self, device_id: str, state: DeviceState) -> Device:
        raise NotImplementedError

    @abstractmethod
    def stream_bridge_updates(self) -> AsyncIterator[Update]:
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> Dict:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError
