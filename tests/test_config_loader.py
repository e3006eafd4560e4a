#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from falnet.nerves.bridged.main import build_driver, build_inventory
from falnet.nerves.bridge.drivers.mock import MockDriver
from falnet.nerves.bridge.settings import DriverSettings, HubConfig, SyncBridgeConfig
from falnet.nerves.lib.config_loader import load_config, load_model
from falnet.nerves.lib.constants import BRIDGE_TYPE_HEADER

CONFIGS = Path(__file__).parent / "configs"


def test_load_hub_config():
    cfg = load_model(CONFIGS / "hub.json", HubConfig)

    assert cfg.bridge.id == "hub-livingroom"
    assert cfg.bridge.model_id == "hprox1"
    assert cfg.ssdp_types == [BRIDGE_TYPE_HEADER]
    assert cfg.port == 10101


def test_load_bridge_config_with_devices():
    cfg = load_model(CONFIGS / "bridge.json", SyncBridgeConfig)

    assert cfg.bridge.id == "wb-kitchen"
    assert [d.id for d in cfg.devices] == ["wb-kitchen-k1", "wb-kitchen-dimmer"]
    assert cfg.devices[1].range.maximum == 100
    assert cfg.devices[1].state.range.value == 60
    assert cfg.driver.type == "mqtt_wb_conv"
    assert cfg.driver.mqtt.qos == 1


def test_load_config_raw():
    loaded = load_config(str(CONFIGS / "hub.json"))
    assert loaded.raw["bridge"]["manufacturer"] == "Faltung Systems"


def test_config_root_must_be_object():
    with pytest.raises(ValueError):
        load_config(CONFIGS / "not_object.json")


def test_missing_bridge_identity_rejected(tmp_path):
    path = tmp_path / "hub.json"
    path.write_text('{"port": 1}', encoding="utf-8")

    with pytest.raises(ValidationError):
        load_model(path, HubConfig)


def test_hub_config_defaults():
    cfg = HubConfig.model_validate({"bridge": {"id": "hub"}})

    assert cfg.host == "0.0.0.0"
    assert cfg.ssdp_types == [BRIDGE_TYPE_HEADER]
    assert cfg.log_level == "INFO"


def test_build_driver_and_inventory():
    assert isinstance(build_driver(DriverSettings(type="mock")), MockDriver)
    with pytest.raises(ValueError):
        build_driver(DriverSettings(type="zwave"))

    cfg = SyncBridgeConfig.model_validate({"bridge": {"id": "mock-bridge"}, "mock_device_count": 3})
    devices = build_inventory(cfg)
    assert [d.id for d in devices] == ["mock-bridge-0", "mock-bridge-1", "mock-bridge-2"]
