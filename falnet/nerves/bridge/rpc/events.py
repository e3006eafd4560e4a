#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Socket.IO event names and reply envelope shared by BridgeServer and RemoteBridgeClient

Every request is acknowledged with exactly one of:
    {"result": <payload>}
    {"error": {"code": "DEVICE_NOT_FOUND", "message": "..."}}
"""

from __future__ import annotations

from typing import Any, Dict

from ..errors import BridgeError, InternalError

GET_BRIDGE = "bridge.get_bridge"
LIST_DEVICES = "bridge.list_devices"
GET_DEVICE = "bridge.get_device"
UPDATE_DEVICE_CONFIG = "bridge.update_device_config"
UPDATE_DEVICE_STATE = "bridge.update_device_state"
STREAM_UPDATES = "bridge.stream_updates"
PING = "ping.ping"

# Server -> client pushes for an open update stream
UPDATE = "bridge.update"
STREAM_END = "bridge.stream_end"


def ok(result: Any) -> Dict[str, Any]:
    return {"result": result}


def fail(err: BridgeError) -> Dict[str, Any]:
    return {"error": err.to_dict()}


def unwrap(reply: Any) -> Any:
    """Return the result of a reply or raise the BridgeError it carries"""
    if not isinstance(reply, dict):
        raise InternalError(f"malformed reply: {reply!r}")
    if reply.get("error") is not None:
        raise BridgeError.from_dict(reply["error"])
    return reply.get("result")
