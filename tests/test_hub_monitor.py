#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import FakeBridgeClient, make_device, next_update
from falnet.nerves.bridge.hub import Hub
from falnet.nerves.bridge.hub_monitor import HubMonitor
from falnet.nerves.bridge.models import Update
from falnet.nerves.lib.constants import BRIDGE_TYPE_HEADER, NANOLEAF_TYPE_HEADER


def _monitor(hub: Hub, *clients: FakeBridgeClient) -> tuple:
    dial = AsyncMock(side_effect=list(clients))
    return HubMonitor(hub, "hub-1", dial=dial, ping_timeout=0.5), dial


@pytest.mark.asyncio
async def test_alive_for_self_is_ignored():
    hub = Hub()
    monitor, dial = _monitor(hub)

    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:hub-1", "10.0.0.1:10101")

    dial.assert_not_called()
    assert await hub.list_bridges() == []


@pytest.mark.asyncio
async def test_alive_for_other_type_is_ignored():
    hub = Hub()
    monitor, dial = _monitor(hub)

    await monitor.alive(NANOLEAF_TYPE_HEADER, "uuid:aurora-1", "10.0.0.9:16021")

    dial.assert_not_called()


@pytest.mark.asyncio
async def test_alive_for_new_bridge_dials_and_adds():
    hub = Hub()
    client = FakeBridgeClient("b1", [make_device("A")])
    monitor, dial = _monitor(hub, client)

    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")

    dial.assert_awaited_once_with("10.0.0.2:10101")
    assert await hub.has_bridge("b1")
    assert monitor.connected_ids == {"b1"}
    await hub.close()


@pytest.mark.asyncio
async def test_alive_for_known_bridge_pings_without_dial():
    hub = Hub()
    client = FakeBridgeClient("b1", [make_device("A")])
    monitor, dial = _monitor(hub, client)

    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")
    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")

    assert dial.await_count == 1
    assert not client.closed
    await hub.close()


@pytest.mark.asyncio
async def test_failed_ping_redials():
    hub = Hub()
    first = FakeBridgeClient("b1", [make_device("A")])
    second = FakeBridgeClient("b1", [make_device("A")])
    monitor, dial = _monitor(hub, first, second)

    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")
    first.ping_error = ConnectionError("no route to host")
    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.3:10101")

    assert dial.await_count == 2
    assert first.closed
    assert not second.closed
    assert await hub.has_bridge("b1")
    assert (await hub.get_device("A")).state.is_reachable is True
    await hub.close()


@pytest.mark.asyncio
async def test_alive_readds_bridge_dropped_by_hub():
    hub = Hub()
    client = FakeBridgeClient("b1", [make_device("A")])
    monitor, dial = _monitor(hub, client)

    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")
    await hub.remove_bridge("b1")
    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")

    assert dial.await_count == 1
    assert await hub.has_bridge("b1")

    # The re-added bridge is watched again: its updates reach the hub
    sink = hub.updates()
    client.push(Update.for_device("CHANGED", "b1", make_device("A", is_on=True)))
    update = await next_update(sink)
    assert update.device_update.device.state.binary.is_on is True
    assert client.stream_opened >= 1
    await hub.close()


@pytest.mark.asyncio
async def test_going_away_removes_and_closes():
    hub = Hub()
    client = FakeBridgeClient("b1", [make_device("A")])
    monitor, _ = _monitor(hub, client)
    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")

    await monitor.going_away("uuid:b1")

    assert client.closed
    assert not await hub.has_bridge("b1")
    assert monitor.connected_ids == frozenset()
    assert (await hub.get_device("A")).state.is_reachable is False


@pytest.mark.asyncio
async def test_going_away_for_unknown_bridge_is_ignored():
    hub = Hub()
    monitor, _ = _monitor(hub)

    await monitor.going_away("uuid:never-seen")

    assert await hub.list_bridges() == []


@pytest.mark.asyncio
async def test_dial_failure_leaves_no_connection():
    hub = Hub()
    dial = AsyncMock(side_effect=ConnectionRefusedError("refused"))
    monitor = HubMonitor(hub, "hub-1", dial=dial)

    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")

    assert monitor.connected_ids == frozenset()
    assert not await hub.has_bridge("b1")


@pytest.mark.asyncio
async def test_add_failure_closes_new_connection():
    hub = Hub()
    await hub.add_bridge(FakeBridgeClient("b1", []))
    duplicate = FakeBridgeClient("b1", [])
    monitor, _ = _monitor(hub, duplicate)

    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")

    assert duplicate.closed
    assert monitor.connected_ids == frozenset()
    await hub.close()


@pytest.mark.asyncio
async def test_close_closes_all_connections():
    hub = Hub()
    c1 = FakeBridgeClient("b1", [])
    c2 = FakeBridgeClient("b2", [])
    monitor, _ = _monitor(hub, c1, c2)
    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b1", "10.0.0.2:10101")
    await monitor.alive(BRIDGE_TYPE_HEADER, "uuid:b2", "10.0.0.3:10101")

    await monitor.close()

    assert c1.closed and c2.closed
    await hub.close()
