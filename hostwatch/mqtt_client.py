from __future__ import annotations

import json
import logging
import ssl
import threading
from typing import Any

import paho.mqtt.client as mqtt

from hostwatch.config import MqttConfig
from hostwatch.models import SystemStaticInfo

ONLINE = "online"
OFFLINE = "offline"

# (object id, display name, value template, unit, device class)
DISCOVERY_SENSORS = (
    ("cpu_usage", "CPU usage", "{{ value_json.cpu.total_usage | round(1) }}", "%", None),
    ("cpu_temperature", "CPU temperature", "{{ value_json.cpu.temperature_celsius }}", "°C", "temperature"),
    ("memory_used", "Memory used", "{{ value_json.memory.used_percent | round(1) }}", "%", None),
    ("load_1m", "Load (1m)", "{{ value_json.load_average.one }}", None, None),
    ("net_rx", "Network receive", "{{ value_json.network.rx_speed_kbps | round(1) }}", "kB/s", "data_rate"),
    ("net_tx", "Network transmit", "{{ value_json.network.tx_speed_kbps | round(1) }}", "kB/s", "data_rate"),
    ("uptime", "Uptime", "{{ value_json.uptime_secs }}", "s", "duration"),
)


class MqttPublisher:
    """Pushes serialized snapshots and host metadata to an MQTT broker.

    Topics hang off ``base_topic``: the snapshot stream itself, ``/status``
    for availability (retained, with an "offline" Last-Will) and ``/static``
    for the retained host facts.

    When ``static_info`` is set, the static topic and the discovery configs
    are (re)published from the connect callback, so they reach the broker
    even when it comes up after the agent.
    """

    def __init__(
        self, config: MqttConfig, static_info: SystemStaticInfo | None = None
    ) -> None:
        self.config = config
        self.static_info = static_info
        self.logger = logging.getLogger(self.__class__.__name__)
        self.sent = 0
        self.failed = 0
        self.dropped = 0
        self._connected = threading.Event()
        self._last_info: mqtt.MQTTMessageInfo | None = None

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        if config.username:
            self.client.username_pw_set(config.username, config.password)
        if config.tls_enabled:
            self.client.tls_set(ca_certs=config.ca_cert, cert_reqs=ssl.CERT_REQUIRED)
        self.client.will_set(self.availability_topic, payload=OFFLINE, qos=1, retain=True)
        self.client.reconnect_delay_set(min_delay=1, max_delay=120)

    @property
    def availability_topic(self) -> str:
        return f"{self.config.base_topic}/status"

    @property
    def static_topic(self) -> str:
        return f"{self.config.base_topic}/static"

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            self._connected.clear()
            self.logger.error("Broker refused connection: %s", reason_code)
            return
        self.logger.info("Connected to %s:%s", self.config.host, self.config.port)
        # Re-announce on every (re)connect; the broker may have fired our will
        self._send(self.availability_topic, ONLINE, qos=1, retain=True)
        if self.static_info is not None:
            self.publish_static(self.static_info)
            self.publish_discovery(self.static_info)
        self._connected.set()

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connected.clear()
        if reason_code.is_failure:
            self.logger.warning("Lost broker connection (%s); paho will reconnect.", reason_code)
        else:
            self.logger.info("Broker connection closed.")

    def connect(self) -> None:
        """Start connecting in the background.

        The broker does not need to be up yet; paho's network thread keeps
        retrying with backoff. Snapshots published at QoS 0 before the first
        CONNACK are dropped; use :meth:`wait_until_connected` when one must
        not be lost.
        """
        self.logger.info("Connecting to %s:%s", self.config.host, self.config.port)
        self.client.connect_async(
            self.config.host, self.config.port, keepalive=self.config.keepalive
        )
        self.client.loop_start()

    def wait_until_connected(self, timeout: float) -> bool:
        """Block until the connect callback has run, at most ``timeout`` seconds."""
        if self._connected.wait(timeout):
            return True
        self.logger.error(
            "Could not reach MQTT broker %s:%s within %ss",
            self.config.host,
            self.config.port,
            timeout,
        )
        return False

    def flush(self, timeout: float) -> bool:
        """Wait until the most recent accepted message has left the client."""
        info = self._last_info
        if info is None:
            return True
        info.wait_for_publish(timeout)
        if not info.is_published():
            self.logger.warning("Last message still unsent after %ss", timeout)
            return False
        return True

    def disconnect(self, announce: bool = True) -> None:
        """Stop the network thread; ``announce=False`` leaves the retained status untouched."""
        if announce and self.connected:
            self._send(self.availability_topic, OFFLINE, qos=1, retain=True)
        self.client.loop_stop()
        self.client.disconnect()
        self.logger.info(
            "MQTT publisher stopped (%s sent, %s failed, %s dropped).",
            self.sent,
            self.failed,
            self.dropped,
        )

    def _send(self, topic: str, payload: str, qos: int, retain: bool) -> bool:
        info = self.client.publish(topic, payload=payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.failed += 1
            self.logger.error("Publish to %s failed: %s", topic, mqtt.error_string(info.rc))
            return False
        self._last_info = info
        self.sent += 1
        return True

    def publish(self, payload: str) -> bool:
        """Publish one serialized snapshot to ``base_topic``.

        While disconnected, QoS 0 snapshots are dropped (the next tick brings
        a fresher one); higher QoS levels are queued by paho until reconnect.
        """
        if not self.connected and self.config.qos == 0:
            self.dropped += 1
            self.logger.debug("Broker not connected; dropping snapshot.")
            return False
        return self._send(
            self.config.base_topic, payload, qos=self.config.qos, retain=self.config.retain
        )

    def publish_status(self, status: str) -> bool:
        """Overwrite the retained availability value, e.g. "sleeping" from a suspend hook."""
        self.logger.info("Setting %s to '%s'", self.availability_topic, status)
        return self._send(self.availability_topic, status, qos=1, retain=True)

    def publish_static(self, info: SystemStaticInfo) -> bool:
        return self._send(
            self.static_topic, json.dumps(info.to_dict()), qos=self.config.qos, retain=True
        )

    def discovery_messages(self, info: SystemStaticInfo) -> list[tuple[str, dict[str, Any]]]:
        """Home Assistant discovery configs, one sensor per headline snapshot metric."""
        node_id = self.config.client_id
        device = {
            "identifiers": [node_id],
            "name": info.hostname,
            "model": info.cpu_brand,
            "sw_version": f"{info.os_name} {info.kernel_version}",
        }
        messages = []
        for object_id, name, template, unit, device_class in DISCOVERY_SENSORS:
            config: dict[str, Any] = {
                "name": name,
                "unique_id": f"{node_id}_{object_id}",
                "state_topic": self.config.base_topic,
                "value_template": template,
                "availability_topic": self.availability_topic,
                "device": device,
            }
            if unit:
                config["unit_of_measurement"] = unit
                config["state_class"] = "measurement"
            if device_class:
                config["device_class"] = device_class
            topic = f"{self.config.discovery_topic}/sensor/{node_id}/{object_id}/config"
            messages.append((topic, config))
        return messages

    def publish_discovery(self, info: SystemStaticInfo) -> bool:
        results = [
            self._send(topic, json.dumps(config), qos=self.config.qos, retain=True)
            for topic, config in self.discovery_messages(info)
        ]
        self.logger.debug("Published %s discovery configs.", len(results))
        return all(results)
