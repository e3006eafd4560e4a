#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import paho.mqtt.client as paho_mqtt

from ...base import DriverAdapter
from ...models import Device, DeviceState
from .codec import MqttWbConvCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MqttConnectionConfig:
    """
    MQTT connection settings for paho-mqtt client
    """

    host: str
    port: int = 1883
    client_id: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: int = 60
    qos: int = 0
    retain: bool = False


class MqttWbConvDriver(DriverAdapter):
    """
    Driver publishing device state to Wiren Board controls over MQTT

    Notes:
      - In tests we inject a mocked paho client via `client=...`
      - In production we create the client automatically
    """

    def __init__(
        self,
        *,
        cfg: MqttConnectionConfig,
        client: Optional[Any] = None,
        codec: Optional[MqttWbConvCodec] = None,
    ) -> None:
        self._cfg = cfg
        self._codec = codec or MqttWbConvCodec()

        if client is None:
            self._client = paho_mqtt.Client(paho_mqtt.CallbackAPIVersion.VERSION2, client_id=cfg.client_id or "")
        else:
            self._client = client

        if cfg.username:
            self._client.username_pw_set(cfg.username, cfg.password)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect

    def start(self) -> None:
        logger.info("Starting MQTT driver: host=%s port=%s", self._cfg.host, self._cfg.port)
        self._client.connect(self._cfg.host, self._cfg.port, keepalive=self._cfg.keepalive)
        self._client.loop_start()

    def close(self) -> None:
        logger.info("Stopping MQTT driver")
        try:
            self._client.loop_stop()
        finally:
            try:
                self._client.disconnect()
            except Exception:
                logger.exception("MQTT disconnect failed")

    def set_device_state(self, device: Device, state: DeviceState) -> None:
        topic, payload = self._codec.encode(device, state)
        logger.debug("MQTT publish: topic=%s payload=%r", topic, payload)
        info = self._client.publish(topic, payload=payload, qos=self._cfg.qos, retain=self._cfg.retain)
        if info.rc != paho_mqtt.MQTT_ERR_SUCCESS:
            raise RuntimeError(f"MQTT publish to {topic} failed: rc={info.rc}")

    # ---- paho callbacks ----

    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        logger.info("MQTT connected: rc=%s", reason_code)

    def _on_disconnect(self, client: Any, userdata: Any, *args: Any) -> None:
        logger.warning("MQTT disconnected: %s", args)
