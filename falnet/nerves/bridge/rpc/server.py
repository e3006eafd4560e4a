#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import socketio
import uvicorn
from pydantic import ValidationError

from ..base import BridgeService
from ..errors import BridgeError, InternalError, MissingParamError
from ..models import DeviceConfig, DeviceState
from . import events

logger = logging.getLogger(__name__)


class BridgeServer:
    """
    Exposes a BridgeService (and the ping probe) over Socket.IO

    Requests are acknowledged with the reply envelope from `events`.
    An update stream is opened per connection with STREAM_UPDATES; the
    server then pushes UPDATE events and a final STREAM_END. Closing the
    connection cancels the stream and releases its subscription
    """

    def __init__(
        self,
        service: BridgeService,
        *,
        host: str,
        port: int,
        pinger: Optional[Any] = None,
        log_level: str = "warning",
    ) -> None:
        self._service = service
        self._pinger = pinger
        self.host = host
        self.port = port
        self._log_level = log_level.lower()

        self.sio = socketio.AsyncServer(async_mode="asgi", logger=False, engineio_logger=False)
        self.app = socketio.ASGIApp(self.sio)
        self._peers: Dict[str, str] = {}
        self._streams: Dict[str, asyncio.Task] = {}
        self._server: Optional[uvicorn.Server] = None

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on(events.GET_BRIDGE, self._on_get_bridge)
        self.sio.on(events.LIST_DEVICES, self._on_list_devices)
        self.sio.on(events.GET_DEVICE, self._on_get_device)
        self.sio.on(events.UPDATE_DEVICE_CONFIG, self._on_update_device_config)
        self.sio.on(events.UPDATE_DEVICE_STATE, self._on_update_device_state)
        self.sio.on(events.STREAM_UPDATES, self._on_stream_updates)
        self.sio.on(events.PING, self._on_ping)

    # ---- lifecycle ----

    @property
    def started(self) -> bool:
        return self._server is not None and self._server.started

    async def serve(self, stop: Optional[asyncio.Event] = None) -> None:
        """
        Serve until `stop` is set or uvicorn exits on its own; sets `stop` on exit
        """
        stop = stop or asyncio.Event()
        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level=self._log_level, lifespan="off")
        self._server = uvicorn.Server(config)
        logger.info("Bridge RPC server listening on %s:%s", self.host, self.port)

        serve_task = asyncio.create_task(self._server.serve())
        stop_task = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_task.cancel()
            await self._cancel_streams()
            self._server.should_exit = True
            await asyncio.gather(serve_task, return_exceptions=True)
            stop.set()
            logger.info("Bridge RPC server stopped")

    async def _cancel_streams(self) -> None:
        tasks = list(self._streams.values())
        self._streams.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ---- connection events ----

    async def _on_connect(self, sid: str, environ: Dict[str, Any], *args: Any) -> None:
        peer = environ.get("REMOTE_ADDR") or "unknown"
        self._peers[sid] = peer
        logger.debug("Peer connected: sid=%s peer=%s", sid, peer)

    async def _on_disconnect(self, sid: str, *args: Any) -> None:
        peer = self._peers.pop(sid, "unknown")
        task = self._streams.pop(sid, None)
        if task is not None:
            task.cancel()
        logger.debug("Peer disconnected: sid=%s peer=%s", sid, peer)

    # ---- request handling ----

    async def _reply(self, op: str, sid: str, call: Callable[[], Awaitable[Any]]) -> Dict[str, Any]:
        try:
            return events.ok(await call())
        except BridgeError as e:
            logger.debug("%s from %s failed: %s", op, self._peers.get(sid), e)
            return events.fail(e)
        except ValidationError as e:
            logger.debug("%s from %s carried an invalid payload: %s", op, self._peers.get(sid), e)
            return events.fail(MissingParamError(f"invalid request payload: {e.error_count()} errors"))
        except Exception as e:
            logger.exception("%s from %s failed unexpectedly", op, self._peers.get(sid))
            return events.fail(InternalError(str(e)))

    async def _on_get_bridge(self, sid: str, data: Any = None) -> Dict[str, Any]:
        async def call():
            return (await self._service.get_bridge()).to_wire()

        return await self._reply(events.GET_BRIDGE, sid, call)

    async def _on_list_devices(self, sid: str, data: Any = None) -> Dict[str, Any]:
        async def call():
            bridge_id = (data or {}).get("bridge_id") or None
            return [d.to_wire() for d in await self._service.list_devices(bridge_id)]

        return await self._reply(events.LIST_DEVICES, sid, call)

    async def _on_get_device(self, sid: str, data: Any = None) -> Dict[str, Any]:
        async def call():
            return (await self._service.get_device(_device_id(data))).to_wire()

        return await self._reply(events.GET_DEVICE, sid, call)

    async def _on_update_device_config(self, sid: str, data: Any = None) -> Dict[str, Any]:
        async def call():
            raw = (data or {}).get("config")
            config = DeviceConfig.model_validate(raw) if raw is not None else None
            return (await self._service.update_device_config(_device_id(data), config)).to_wire()

        return await self._reply(events.UPDATE_DEVICE_CONFIG, sid, call)

    async def _on_update_device_state(self, sid: str, data: Any = None) -> Dict[str, Any]:
        async def call():
            raw = (data or {}).get("state")
            state = DeviceState.model_validate(raw) if raw is not None else None
            return (await self._service.update_device_state(_device_id(data), state)).to_wire()

        return await self._reply(events.UPDATE_DEVICE_STATE, sid, call)

    async def _on_ping(self, sid: str, data: Any = None) -> Dict[str, Any]:
        async def call():
            if self._pinger is None:
                return {}
            return await self._pinger.ping()

        return await self._reply(events.PING, sid, call)

    async def _on_stream_updates(self, sid: str, data: Any = None) -> Dict[str, Any]:
        previous = self._streams.pop(sid, None)
        if previous is not None:
            previous.cancel()
        peer = self._peers.get(sid, "unknown")
        self._streams[sid] = asyncio.create_task(self._forward_updates(sid, peer), name=f"bridge-stream-{sid}")
        return events.ok({})

    async def _forward_updates(self, sid: str, peer: str) -> None:
        stream = self._service.stream_bridge_updates(peer)
        try:
            async for update in stream:
                await self.sio.emit(events.UPDATE, update.to_wire(), to=sid)
            await self.sio.emit(events.STREAM_END, {}, to=sid)
        except asyncio.CancelledError:
            logger.debug("Update stream for %s cancelled", peer)
            raise
        except Exception as e:
            logger.error("Update stream for %s failed: %r", peer, e)
            try:
                await self.sio.emit(events.STREAM_END, events.fail(InternalError(str(e))), to=sid)
            except Exception as emit_err:
                logger.debug("Could not notify %s about stream failure: %r", peer, emit_err)
        finally:
            await stream.aclose()
            if self._streams.get(sid) is asyncio.current_task():
                del self._streams[sid]


def _device_id(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    return str(data.get("id") or "")
