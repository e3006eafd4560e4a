#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import random
import threading
from typing import List, Optional, Tuple

from ...lib.constants import DeviceType
from ..base import DriverAdapter
from ..models import (
    BinaryState,
    ColorRgbState,
    Device,
    DeviceConfig,
    DeviceState,
    RangeCapability,
    RangeState,
)

logger = logging.getLogger(__name__)


class MockDriver(DriverAdapter):
    """
    In-memory driver

    Records every write; `fail_with` makes the next writes raise
    """

    def __init__(self, *, fail_with: Optional[Exception] = None) -> None:
        self.fail_with = fail_with
        self.writes: List[Tuple[str, DeviceState]] = []
        self._lock = threading.Lock()

    def set_device_state(self, device: Device, state: DeviceState) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.writes.append((device.id, state.clone()))
        logger.debug("Mock write: device=%s state=%s", device.id, state)


def mock_devices(count: int, *, prefix: str = "mock", rng: Optional[random.Random] = None) -> List[Device]:
    """
    Random inventory: every device is switchable, some dim, a few do colour

    Example (output):
        [Device(id="mock-0", type="LIGHT", state=DeviceState(binary=BinaryState(is_on=True), ...)), ...]
    """
    rng = rng or random.Random()
    devices: List[Device] = []
    for i in range(count):
        roll = rng.randint(0, 9)
        state = DeviceState(is_reachable=True, binary=BinaryState(is_on=rng.random() < 0.5))
        device = Device(
            id=f"{prefix}-{i}",
            type=DeviceType.LIGHT,
            address=f"/mock/{i}",
            is_active=True,
            model_id="mock1",
            model_name="Mock Light",
            manufacturer="Faltung Systems",
            config=DeviceConfig(name=f"Mock Light {i}"),
            state=state,
        )
        if roll > 5:
            device.range = RangeCapability(minimum=0, maximum=100)
            device.state.range = RangeState(value=rng.randint(0, 100))
        if roll > 7:
            device.state.color_rgb = ColorRgbState(red=rng.randint(0, 255), green=rng.randint(0, 255), blue=rng.randint(0, 255))
        devices.append(device)
    return devices
