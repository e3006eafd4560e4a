#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..lib.constants import (
    BRIDGE_TYPE_HEADER,
    DEFAULT_DRIVER_TIMEOUT,
    DEFAULT_RPC_PORT,
    DEFAULT_RPC_TIMEOUT,
)
from .models import Bridge, Device


class MqttSettings(BaseModel):
    host: str = "localhost"
    port: int = 1883
    client_id: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: int = 60
    qos: int = 0
    retain: bool = False


class DriverSettings(BaseModel):
    type: str = "mock"  # Possible values: "mock", "mqtt_wb_conv"
    mqtt: Optional[MqttSettings] = None


class HubConfig(BaseModel):
    """
    Hub daemon configuration

    Example (JSON):
        {"bridge": {"id": "hub-1", "model_id": "hprox1", "model_name": "Proxy"}, "port": 10101}
    """

    bridge: Bridge
    host: str = "0.0.0.0"
    port: int = DEFAULT_RPC_PORT
    ssdp_types: List[str] = Field(default_factory=lambda: [BRIDGE_TYPE_HEADER])
    advertise: bool = True
    log_nonregistered_types: bool = False
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    log_level: str = "INFO"  # Possible values: "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"


class SyncBridgeConfig(BaseModel):
    """
    Bridge daemon configuration: identity, device inventory and driver
    """

    bridge: Bridge
    devices: List[Device] = []
    mock_device_count: int = 0
    driver: DriverSettings = Field(default_factory=DriverSettings)
    host: str = "0.0.0.0"
    port: int = DEFAULT_RPC_PORT
    advertise: bool = True
    driver_timeout: float = DEFAULT_DRIVER_TIMEOUT
    log_level: str = "INFO"
