#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Device drivers behind SyncBridgeService

Each driver implements DriverAdapter.set_device_state and lives in its own
module or package under:

  falnet.nerves.bridge.drivers.<name>

Example:
  - mock          (in-memory, records writes; useful for tests and demos)
  - mqtt_wb_conv  (MQTT using Wiren Board conventions)
"""
