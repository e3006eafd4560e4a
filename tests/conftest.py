#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import pytest

# Add the parent directory to sys.path so we can import the project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from falnet.nerves.bridge.base import BridgeClient
from falnet.nerves.bridge.models import (
    BinaryState,
    Bridge,
    Device,
    DeviceConfig,
    DeviceState,
    Update,
)

_EOF = object()


def make_device(device_id: str, *, is_on: bool = False, reachable: bool = True) -> Device:
    return Device(
        id=device_id,
        type="LIGHT",
        address=f"/devices/{device_id}/controls/K1",
        config=DeviceConfig(name=device_id),
        state=DeviceState(is_reachable=reachable, binary=BinaryState(is_on=is_on)),
    )


class FakeBridgeClient(BridgeClient):
    """
    Controllable BridgeClient: tests push updates into its stream and
    decide how writes and pings answer
    """

    def __init__(self, bridge_id: str, devices: Optional[List[Device]] = None) -> None:
        self.bridge = Bridge(id=bridge_id, model_name="Fake", devices=devices or [])
        self.state_calls: List[Tuple[str, DeviceState]] = []
        self.config_calls: List[Tuple[str, DeviceConfig]] = []
        self.write_result: Optional[Device] = None
        self.write_error: Optional[Exception] = None
        self.ping_error: Optional[Exception] = None
        self.closed = False
        self.stream_opened = 0
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()

    # ---- test controls ----

    def push(self, update: Update) -> None:
        self._queue.put_nowait(update)

    def end_stream(self) -> None:
        self._queue.put_nowait(_EOF)

    def fail_stream(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    # ---- BridgeClient ----

    async def get_bridge(self) -> Bridge:
        return self.bridge.clone()

    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        return [d.clone() for d in self.bridge.devices]

    async def get_device(self, device_id: str) -> Device:
        for d in self.bridge.devices:
            if d.id == device_id:
                return d.clone()
        raise KeyError(device_id)

    async def update_device_config(self, device_id: str, config: DeviceConfig) -> Device:
        self.config_calls.append((device_id, config))
        if self.write_error is not None:
            raise self.write_error
        return self.write_result

    async def update_device_state(self, device_id: str, state: DeviceState) -> Device:
        self.state_calls.append((device_id, state))
        if self.write_error is not None:
            raise self.write_error
        return self.write_result

    async def stream_bridge_updates(self) -> AsyncIterator[Update]:
        self.stream_opened += 1
        while True:
            item = await self._queue.get()
            if item is _EOF:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def ping(self) -> Dict:
        if self.ping_error is not None:
            raise self.ping_error
        return {}

    async def close(self) -> None:
        self.closed = True


async def next_update(sink, timeout: float = 1.0) -> Update:
    update = await asyncio.wait_for(sink.receive(), timeout=timeout)
    assert update is not None, "sink closed unexpectedly"
    return update


async def drain(sink) -> List[Update]:
    """Close the sink and return whatever it still buffered"""
    sink.close()
    return [u async for u in sink]


@pytest.fixture
def fake_client_factory():
    return FakeBridgeClient


@pytest.fixture
def two_devices() -> List[Device]:
    return [make_device("A"), make_device("B", is_on=True)]
