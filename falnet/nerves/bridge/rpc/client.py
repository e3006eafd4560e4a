#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import socketio
from pydantic import ValidationError

from ...lib.constants import DEFAULT_RPC_TIMEOUT
from ..base import BridgeClient
from ..errors import BridgeError
from ..models import Bridge, Device, DeviceConfig, DeviceState, Update
from . import events

logger = logging.getLogger(__name__)

_STREAM_END = object()


class RemoteBridgeClient(BridgeClient):
    """
    BridgeClient talking to a BridgeServer over Socket.IO

    One client owns one connection; the connection carries at most one
    update stream. Connections are plain http (no TLS), reconnection is
    left to HubMonitor

    Example:
        client = await RemoteBridgeClient.dial("192.168.1.20:10101")
        bridge = await client.get_bridge()
    """

    def __init__(
        self,
        conn_str: str,
        *,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        sio: Optional[socketio.AsyncClient] = None,
    ) -> None:
        self.conn_str = conn_str
        self._timeout = timeout
        self._sio = sio or socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._stream_queue: Optional[asyncio.Queue] = None

        self._sio.on(events.UPDATE, self._on_update)
        self._sio.on(events.STREAM_END, self._on_stream_end)
        self._sio.on("disconnect", self._on_disconnect)

    @classmethod
    async def dial(cls, conn_str: str, *, timeout: float = DEFAULT_RPC_TIMEOUT) -> "RemoteBridgeClient":
        client = cls(conn_str, timeout=timeout)
        await client.connect()
        return client

    @property
    def url(self) -> str:
        return f"http://{self.conn_str}"

    async def connect(self) -> None:
        logger.debug("Connecting to bridge at %s", self.url)
        await self._sio.connect(self.url, transports=["websocket"], wait_timeout=self._timeout)

    async def close(self) -> None:
        self._end_stream(_STREAM_END)
        try:
            await self._sio.disconnect()
        except Exception as e:
            logger.debug("Disconnect from %s failed: %r", self.conn_str, e)

    async def _call(self, event: str, data: Optional[Dict[str, Any]] = None) -> Any:
        reply = await self._sio.call(event, data or {}, timeout=self._timeout)
        return events.unwrap(reply)

    # ---- BridgeService calls ----

    async def get_bridge(self) -> Bridge:
        return Bridge.model_validate(await self._call(events.GET_BRIDGE))

    async def list_devices(self, bridge_id: Optional[str] = None) -> List[Device]:
        payload = {"bridge_id": bridge_id} if bridge_id else {}
        result = await self._call(events.LIST_DEVICES, payload)
        return [Device.model_validate(d) for d in result or []]

    async def get_device(self, device_id: str) -> Device:
        return Device.model_validate(await self._call(events.GET_DEVICE, {"id": device_id}))

    async def update_device_config(self, device_id: str, config: DeviceConfig) -> Device:
        result = await self._call(events.UPDATE_DEVICE_CONFIG, {"id": device_id, "config": config.to_wire()})
        return Device.model_validate(result)

    async def update_device_state(self, device_id: str, state: DeviceState) -> Device:
        result = await self._call(events.UPDATE_DEVICE_STATE, {"id": device_id, "state": state.to_wire()})
        return Device.model_validate(result)

    async def ping(self) -> Dict:
        return await self._call(events.PING) or {}

    async def stream_bridge_updates(self) -> AsyncIterator[Update]:
        if self._stream_queue is not None:
            raise RuntimeError(f"update stream already open on {self.conn_str}")
        queue: asyncio.Queue = asyncio.Queue()
        self._stream_queue = queue
        try:
            await self._call(events.STREAM_UPDATES)
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            if self._stream_queue is queue:
                self._stream_queue = None

    # ---- socket.io pushes ----

    def _end_stream(self, item: Any) -> None:
        if self._stream_queue is not None:
            self._stream_queue.put_nowait(item)

    async def _on_update(self, data: Any) -> None:
        if self._stream_queue is None:
            return
        try:
            update = Update.model_validate(data)
        except ValidationError as e:
            logger.warning("Dropping malformed update from %s: %s", self.conn_str, e)
            return
        self._stream_queue.put_nowait(update)

    async def _on_stream_end(self, data: Any = None) -> None:
        if isinstance(data, dict) and data.get("error") is not None:
            self._end_stream(BridgeError.from_dict(data["error"]))
        else:
            self._end_stream(_STREAM_END)

    async def _on_disconnect(self, *args: Any) -> None:
        logger.debug("Connection to %s lost", self.conn_str)
        self._end_stream(ConnectionError(f"connection to {self.conn_str} lost"))
