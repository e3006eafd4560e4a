#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import socket
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_device, next_update
from falnet.nerves.bridge.drivers.mock import MockDriver
from falnet.nerves.bridge.errors import DeviceNotFoundError, NotSupportedError
from falnet.nerves.bridge.hub import Hub
from falnet.nerves.bridge.models import BinaryState, Bridge, DeviceState, Update
from falnet.nerves.bridge.rpc import events
from falnet.nerves.bridge.rpc.client import RemoteBridgeClient
from falnet.nerves.bridge.rpc.local import LocalBridgeClient
from falnet.nerves.bridge.rpc.server import BridgeServer
from falnet.nerves.bridge.sync_bridge_service import SyncBridgeService


def _service() -> SyncBridgeService:
    return SyncBridgeService(Bridge(id="b1"), [make_device("A"), make_device("B")], MockDriver())


def _on_state() -> dict:
    return DeviceState(is_reachable=True, binary=BinaryState(is_on=True)).to_wire()


# ---- server ----


@pytest.mark.asyncio
async def test_server_get_device_envelopes():
    server = BridgeServer(_service(), host="127.0.0.1", port=0)

    ok = await server._on_get_device("sid1", {"id": "A"})
    assert ok["result"]["id"] == "A"

    missing = await server._on_get_device("sid1", {"id": "nope"})
    assert missing == {"error": {"code": "DEVICE_NOT_FOUND", "message": "device not found: nope"}}


@pytest.mark.asyncio
async def test_server_update_state_and_validation():
    server = BridgeServer(_service(), host="127.0.0.1", port=0)

    reply = await server._on_update_device_state("sid1", {"id": "A", "state": _on_state()})
    assert reply["result"]["state"]["binary"] == {"is_on": True}

    no_state = await server._on_update_device_state("sid1", {"id": "A"})
    assert no_state["error"]["code"] == "MISSING_PARAM"

    bad_state = await server._on_update_device_state("sid1", {"id": "A", "state": {"binary": "on"}})
    assert bad_state["error"]["code"] == "MISSING_PARAM"

    config = await server._on_update_device_config("sid1", {"id": "A", "config": {"name": "Lamp"}})
    assert config["error"]["code"] == "NOT_SUPPORTED"


@pytest.mark.asyncio
async def test_server_unexpected_errors_become_internal():
    service = MagicMock()
    service.get_bridge = AsyncMock(side_effect=KeyError("boom"))
    server = BridgeServer(service, host="127.0.0.1", port=0)

    reply = await server._on_get_bridge("sid1")

    assert reply["error"]["code"] == "INTERNAL"


@pytest.mark.asyncio
async def test_server_ping_uses_pinger():
    pinger = MagicMock()
    pinger.ping = AsyncMock(return_value={})
    server = BridgeServer(_service(), host="127.0.0.1", port=0, pinger=pinger)

    assert await server._on_ping("sid1") == {"result": {}}
    pinger.ping.assert_awaited_once()


@pytest.mark.asyncio
async def test_server_stream_forwards_and_stops_on_disconnect():
    service = _service()
    server = BridgeServer(service, host="127.0.0.1", port=0)
    server.sio.emit = AsyncMock()

    await server._on_connect("sid1", {"REMOTE_ADDR": "10.0.0.5"})
    assert await server._on_stream_updates("sid1") == {"result": {}}
    await asyncio.sleep(0.05)

    emitted = [c.args for c in server.sio.emit.call_args_list]
    assert [e[0] for e in emitted] == [events.UPDATE, events.UPDATE]
    assert {e[1]["device_update"]["device_id"] for e in emitted} == {"A", "B"}
    assert all(c.kwargs["to"] == "sid1" for c in server.sio.emit.call_args_list)

    await server._on_disconnect("sid1")
    await asyncio.sleep(0.01)
    assert service._updates.sink_count == 0


# ---- remote client ----


def _client(reply) -> tuple:
    sio = MagicMock()
    sio.call = AsyncMock(return_value=reply)
    sio.disconnect = AsyncMock()
    return RemoteBridgeClient("10.0.0.2:10101", sio=sio, timeout=1.0), sio


@pytest.mark.asyncio
async def test_client_decodes_result():
    client, sio = _client({"result": make_device("A").to_wire()})

    device = await client.get_device("A")

    assert device == make_device("A")
    sio.call.assert_awaited_once_with(events.GET_DEVICE, {"id": "A"}, timeout=1.0)


@pytest.mark.asyncio
async def test_client_raises_remote_error_with_code():
    client, _ = _client({"error": {"code": "DEVICE_NOT_FOUND", "message": "device not found: Z"}})

    with pytest.raises(DeviceNotFoundError) as e:
        await client.get_device("Z")
    assert e.value.message == "device not found: Z"


@pytest.mark.asyncio
async def test_client_stream_until_end():
    client, sio = _client(None)
    added = Update.for_device("ADDED", "b1", make_device("A"))

    async def fake_call(event, data, timeout):
        assert event == events.STREAM_UPDATES
        await client._on_update(added.to_wire())
        await client._on_update({"action": "BOGUS"})
        await client._on_stream_end({})
        return {"result": {}}

    sio.call = AsyncMock(side_effect=fake_call)

    updates = [u async for u in client.stream_bridge_updates()]

    assert updates == [added]


@pytest.mark.asyncio
async def test_client_stream_raises_on_disconnect():
    client, sio = _client(None)

    async def fake_call(event, data, timeout):
        await client._on_disconnect()
        return {"result": {}}

    sio.call = AsyncMock(side_effect=fake_call)

    with pytest.raises(ConnectionError):
        async for _ in client.stream_bridge_updates():
            pass


@pytest.mark.asyncio
async def test_client_stream_end_with_error():
    client, sio = _client(None)

    async def fake_call(event, data, timeout):
        await client._on_stream_end(events.fail(NotSupportedError("stream refused")))
        return {"result": {}}

    sio.call = AsyncMock(side_effect=fake_call)

    with pytest.raises(NotSupportedError):
        async for _ in client.stream_bridge_updates():
            pass


# ---- over the wire ----


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.mark.asyncio
async def test_remote_client_against_running_server():
    port = _free_port()
    server = BridgeServer(_service(), host="127.0.0.1", port=port)
    stop = asyncio.Event()
    serving = asyncio.create_task(server.serve(stop))
    client = None
    try:
        for _ in range(100):
            if server.started:
                break
            await asyncio.sleep(0.02)
        assert server.started

        client = await RemoteBridgeClient.dial(f"127.0.0.1:{port}", timeout=2.0)

        bridge = await client.get_bridge()
        assert bridge.id == "b1"
        assert [d.id for d in bridge.devices] == ["A", "B"]

        device = await client.update_device_state("A", DeviceState(is_reachable=True, binary=BinaryState(is_on=True)))
        assert device.state.binary.is_on is True

        with pytest.raises(DeviceNotFoundError):
            await client.get_device("nope")

        stream = client.stream_bridge_updates()
        first = await asyncio.wait_for(stream.__anext__(), timeout=2.0)
        assert first.action == "ADDED"
        assert first.device_update.bridge_id == "b1"
        await stream.aclose()
    finally:
        if client is not None:
            await client.close()
        stop.set()
        await asyncio.wait_for(serving, timeout=5.0)


# ---- in-process client ----


@pytest.mark.asyncio
async def test_hub_write_echoes_through_local_bridge():
    service = _service()
    hub = Hub()
    await hub.add_bridge(LocalBridgeClient(service))
    sink = hub.updates()
    # Let the watcher subscribe to the bridge stream
    await asyncio.sleep(0.01)
    state = DeviceState(is_reachable=True, binary=BinaryState(is_on=True))

    result = await hub.update_device_state("A", state)
    assert result.state == state

    # Seed replay from the bridge stream comes first, then the echo of our write
    while True:
        update = await next_update(sink)
        if update.action == "CHANGED":
            break
    assert update.device_update.device_id == "A"
    assert (await hub.get_device("A")).state == state
    await hub.close()
