#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from typing import Tuple

from ...models import Device, DeviceState


class MqttWbConvCodec:
    """
    Codec for MQTT Wiren Board convention.

    device.address is the control topic, e.g. "/devices/wb-mdm3_50/controls/K1";
    writes go to "<control>/on".

    Supported conversions (first match wins):
      - binary.is_on == False     -> b"0"
      - color_rgb                 -> b"R;G;B"
      - range (device has range)  -> value clamped to the device range
      - binary.is_on == True      -> b"1"
    """

    @property
    def driver_name(self) -> str:
        return "mqtt_wb_conv"

    def command_topic(self, device: Device) -> str:
        if not device.address:
            raise ValueError(f"Device {device.id} has no MQTT address")
        return device.address.rstrip("/") + "/on"

    def encode(self, device: Device, state: DeviceState) -> Tuple[str, bytes]:
        topic = self.command_topic(device)

        if state.binary is not None and not state.binary.is_on:
            return topic, b"0"

        if state.color_rgb is not None:
            rgb = state.color_rgb
            return topic, f"{rgb.red};{rgb.green};{rgb.blue}".encode("utf-8")

        if state.range is not None and device.range is not None:
            value = min(max(state.range.value, device.range.minimum), device.range.maximum)
            return topic, str(value).encode("utf-8")

        if state.binary is not None:
            return topic, b"1"

        raise ValueError(f"Unsupported state for device {device.id}: {state}")
