#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Hub daemon

Discovers bridges over SSDP, aggregates them into one Hub and serves the
result as a single virtual bridge (which is itself advertised, so hubs can
be chained)
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import List

from pydantic import ValidationError

from falnet.nerves.bridge.discovery.advertiser import Advertiser
from falnet.nerves.bridge.discovery.monitor import Monitor
from falnet.nerves.bridge.hub import Hub
from falnet.nerves.bridge.hub_monitor import HubMonitor
from falnet.nerves.bridge.hub_service import HubBridgeService
from falnet.nerves.bridge.rpc.server import BridgeServer
from falnet.nerves.bridge.settings import HubConfig
from falnet.nerves.lib.config_loader import load_model
from falnet.nerves.lib.constants import BRIDGE_TYPE_HEADER, HUB_CONFIG_PATH, LOG_FORMAT

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, force=True)
logging.captureWarnings(True)
logger = logging.getLogger(__name__)


def _log_and_stop(sig: signal.Signals, stop_event: asyncio.Event) -> None:
    """
    Log which signal was received and wake the main loop for shutdown
    Idempotent: repeated signals after the first one do nothing
    """
    ts = time.strftime("%Y-%m-%d %H:%M:%S")
    logger.warning("Signal %r received at %r - shutting down...", sig.name, ts)
    if not stop_event.is_set():
        stop_event.set()


async def main(config_path: str = HUB_CONFIG_PATH) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, _log_and_stop, signal.SIGINT, stop_event)
    loop.add_signal_handler(signal.SIGTERM, _log_and_stop, signal.SIGTERM, stop_event)

    try:
        config = load_model(config_path, HubConfig)
    except (OSError, ValueError, ValidationError) as e:
        logger.error("Cannot proceed without configuration %r: %r", config_path, e)
        return 0  # 0 mean - exit without service restart

    logging.getLogger().setLevel(config.log_level.upper())
    hub_id = config.bridge.id
    logger.info("Starting hub %r", hub_id)

    # NOTE: Shutdown runs in reverse order of startup:
    #       discovery first so no new bridges attach, then the RPC server,
    #       then the hub watchers and finally the bridge connections
    hub = Hub()
    hub_monitor = HubMonitor(hub, hub_id, types=config.ssdp_types, ping_timeout=config.rpc_timeout)
    monitor = Monitor(hub_monitor, config.ssdp_types, log_nonregistered_types=config.log_nonregistered_types)
    service = HubBridgeService(hub, config.bridge)
    advertiser = Advertiser(hub_id, config.host, config.port, nt=BRIDGE_TYPE_HEADER)
    server = BridgeServer(service, host=config.host, port=config.port, pinger=advertiser)

    tasks: List[asyncio.Task] = [
        asyncio.create_task(server.serve(stop_event), name="rpc-server"),
        asyncio.create_task(monitor.run(stop_event), name="ssdp-monitor"),
    ]
    if config.advertise:
        tasks.append(asyncio.create_task(advertiser.run(stop_event), name="ssdp-advertiser"))
    # Any component exiting on its own takes the daemon down with it
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
                exit_code = 1  # Need exit with error for restart
        await hub.close()
        await hub_monitor.close()
        logger.info("Hub %r stopped", hub_id)
    return exit_code


def run() -> None:
    logger.info("Starting falnet-nerves-hubd...")
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C)")


if __name__ == "__main__":
    run()
