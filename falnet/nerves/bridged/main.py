#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Bridge daemon

Serves one SyncBridgeService in front of a configured driver and
advertises it over SSDP so hubs can find it
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import List

from pydantic import ValidationError

from falnet.nerves.bridge.base import DriverAdapter
from falnet.nerves.bridge.discovery.advertiser import Advertiser
from falnet.nerves.bridge.drivers.mock import MockDriver, mock_devices
from falnet.nerves.bridge.drivers.mqtt_wb_conv.adapter import MqttConnectionConfig, MqttWbConvDriver
from falnet.nerves.bridge.models import Device
from falnet.nerves.bridge.rpc.server import BridgeServer
from falnet.nerves.bridge.settings import DriverSettings, MqttSettings, SyncBridgeConfig
from falnet.nerves.bridge.sync_bridge_service import SyncBridgeService
from falnet.nerves.lib.config_loader import load_model
from falnet.nerves.lib.constants import BRIDGE_CONFIG_PATH, LOG_FORMAT

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, force=True)
logging.captureWarnings(True)
logger = logging.getLogger(__name__)


def build_driver(settings: DriverSettings) -> DriverAdapter:
    if settings.type == "mock":
        return MockDriver()
    if settings.type == "mqtt_wb_conv":
        mqtt = settings.mqtt or MqttSettings()
        driver = MqttWbConvDriver(
            cfg=MqttConnectionConfig(
                host=mqtt.host,
                port=mqtt.port,
                client_id=mqtt.client_id,
                username=mqtt.username,
                password=mqtt.password,
                keepalive=mqtt.keepalive,
                qos=mqtt.qos,
                retain=mqtt.retain,
            )
        )
        driver.start()
        return driver
    raise ValueError(f"Unknown driver type: {settings.type!r}")


def build_inventory(config: SyncBridgeConfig) -> List[Device]:
    devices = list(config.devices)
    if config.mock_device_count:
        devices.extend(mock_devices(config.mock_device_count, prefix=config.bridge.id))
    return devices


def _log_and_stop(sig: signal.Signals, stop_event: asyncio.Event) -> None:
    ts = time.strftime("%Y-%m-%d %H:%M:%S")
    logger.warning("Signal %r received at %r - shutting down...", sig.name, ts)
    if not stop_event.is_set():
        stop_event.set()


async def main(config_path: str = BRIDGE_CONFIG_PATH) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, _log_and_stop, signal.SIGINT, stop_event)
    loop.add_signal_handler(signal.SIGTERM, _log_and_stop, signal.SIGTERM, stop_event)

    try:
        config = load_model(config_path, SyncBridgeConfig)
    except (OSError, ValueError, ValidationError) as e:
        logger.error("Cannot proceed without configuration %r: %r", config_path, e)
        return 0  # 0 mean - exit without service restart

    logging.getLogger().setLevel(config.log_level.upper())

    try:
        driver = build_driver(config.driver)
    except Exception as e:
        logger.error("Driver %r failed to start: %r", config.driver.type, e)
        return 1  # Need exit with error for restart

    devices = build_inventory(config)
    service = SyncBridgeService(config.bridge, devices, driver, driver_timeout=config.driver_timeout)
    advertiser = Advertiser(config.bridge.id, config.host, config.port)
    server = BridgeServer(service, host=config.host, port=config.port, pinger=advertiser)
    logger.info("Starting bridge %r with %d devices (driver=%s)", config.bridge.id, len(devices), config.driver.type)

    tasks: List[asyncio.Task] = [asyncio.create_task(server.serve(stop_event), name="rpc-server")]
    if config.advertise:
        tasks.append(asyncio.create_task(advertiser.run(stop_event), name="ssdp-advertiser"))
    for task in tasks:
        task.add_done_callback(lambda _task: stop_event.set())

    exit_code = 0
    try:
        await stop_event.wait()
        logger.info("Shutdown signal received")
    finally:
        stop_event.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error("Task %s failed: %r", task.get_name(), result)
                exit_code = 1
        await service.close()
        driver.close()
        logger.info("Bridge %r stopped", config.bridge.id)
    return exit_code


def run() -> None:
    logger.info("Starting falnet-nerves-bridged...")
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C)")


if __name__ == "__main__":
    run()
