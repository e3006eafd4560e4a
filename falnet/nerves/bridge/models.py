#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Bridge protocol messages

Every message is a pydantic model: clone with `clone()`, compare with `==`,
put on the wire with `to_wire()` / `Model.model_validate(...)`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..lib.constants import DeviceType, UpdateAction


class Message(BaseModel):
    # Bridges and devices carry model_id/model_name fields
    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    def clone(self):
        return self.model_copy(deep=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def __str__(self) -> str:
        return self.model_dump_json(exclude_none=True)


# ---- Bridge ----


class IpAddress(Message):
    host: str = ""
    port: int = 0


class UsbAddress(Message):
    path: str = ""


class Address(Message):
    ip: Optional[IpAddress] = None
    usb: Optional[UsbAddress] = None


class BridgeConfig(Message):
    name: str = ""
    address: Optional[Address] = None
    timezone: str = ""


class Version(Message):
    api: str = ""
    sw: str = ""


class BridgeState(Message):
    is_paired: bool = False
    version: Optional[Version] = None
    zigbee_channel: int = 0


class Bridge(Message):
    id: str = ""
    model_id: str = ""
    model_name: str = ""
    model_description: str = ""
    manufacturer: str = ""
    config: BridgeConfig = Field(default_factory=BridgeConfig)
    state: BridgeState = Field(default_factory=BridgeState)
    # Embedded only in snapshots returned by get_bridge
    devices: List["Device"] = []


# ---- Device ----


class RangeCapability(Message):
    minimum: int = 0
    maximum: int = 100


class InputCapability(Message):
    inputs: List[str] = []


class ColorTemperatureCapability(Message):
    minimum: int = 2000
    maximum: int = 6500


class DeviceConfig(Message):
    name: str = ""
    description: str = ""


class BinaryState(Message):
    is_on: bool = False


class RangeState(Message):
    value: int = 0


class ColorHsbState(Message):
    hue: int = 0
    saturation: int = 0
    brightness: int = 0


class ColorRgbState(Message):
    red: int = 0
    green: int = 0
    blue: int = 0


class ColorTemperatureState(Message):
    kelvin: int = 0


class InputState(Message):
    input: str = ""


class AudioState(Message):
    volume: int = 0
    treble: int = 0
    bass: int = 0
    is_muted: bool = False


class StereoAudioState(Message):
    balance: int = 0


class PresenceState(Message):
    is_present: bool = False


class TemperatureState(Message):
    celsius: float = 0.0


class ButtonState(Message):
    id: int = 0
    is_on: bool = False


class DeviceVersion(Message):
    sw: str = ""


class DeviceState(Message):
    is_reachable: bool = False
    binary: Optional[BinaryState] = None
    range: Optional[RangeState] = None
    color_hsb: Optional[ColorHsbState] = None
    color_rgb: Optional[ColorRgbState] = None
    color_temperature: Optional[ColorTemperatureState] = None
    input: Optional[InputState] = None
    audio: Optional[AudioState] = None
    stereo_audio: Optional[StereoAudioState] = None
    presence: Optional[PresenceState] = None
    temperature: Optional[TemperatureState] = None
    button: List[ButtonState] = []
    version: Optional[DeviceVersion] = None


class Device(Message):
    id: str = ""
    type: str = DeviceType.LIGHT
    address: str = ""
    is_active: bool = False
    model_id: str = ""
    model_name: str = ""
    model_description: str = ""
    manufacturer: str = ""
    range: Optional[RangeCapability] = None
    input: Optional[InputCapability] = None
    color_temperature: Optional[ColorTemperatureCapability] = None
    config: DeviceConfig = Field(default_factory=DeviceConfig)
    state: DeviceState = Field(default_factory=DeviceState)


Bridge.model_rebuild()


# ---- Updates ----


class BridgeUpdate(Message):
    bridge_id: str = ""
    bridge: Optional[Bridge] = None


class DeviceUpdate(Message):
    bridge_id: str = ""
    device_id: str = ""
    device: Optional[Device] = None

    @property
    def effective_id(self) -> str:
        if self.device is not None and self.device.id:
            return self.device.id
        return self.device_id


class Update(Message):
    """
    Change event: action x exactly one of bridge_update / device_update

    Example (wire):
        {"action": "CHANGED", "device_update": {"bridge_id": "b1", "device_id": "d1", "device": {...}}}
    """

    action: str
    bridge_update: Optional[BridgeUpdate] = None
    device_update: Optional[DeviceUpdate] = None

    @model_validator(mode="after")
    def _check_variant(self) -> "Update":
        if self.action not in (UpdateAction.ADDED, UpdateAction.CHANGED, UpdateAction.REMOVED):
            raise ValueError(f"unknown update action: {self.action!r}")
        if (self.bridge_update is None) == (self.device_update is None):
            raise ValueError("update must carry exactly one of bridge_update/device_update")
        return self

    @classmethod
    def for_device(cls, action: str, bridge_id: str, device: Optional[Device] = None, device_id: str = "") -> "Update":
        if device is not None and not device_id:
            device_id = device.id
        return cls(
            action=action,
            device_update=DeviceUpdate(bridge_id=bridge_id, device_id=device_id, device=device),
        )

    @classmethod
    def for_bridge(cls, action: str, bridge_id: str, bridge: Optional[Bridge] = None) -> "Update":
        return cls(action=action, bridge_update=BridgeUpdate(bridge_id=bridge_id, bridge=bridge))
