"""MQTT receiver built on paho-mqtt.

Subscribes to the station topic pattern on every (re)connect and hands each
(topic, payload) to a callback. paho's network loop runs in its own thread and
reconnects on its own after a connection loss; this class only logs it.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from ..common.config import Settings

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, bytes], object]

CONNECT_WAIT_SECONDS = 5.0


class ReceiverStats:
    """MQTT receiver counters."""

    def __init__(self):
        self.received = 0
        self.forwarded = 0
        self.rejected = 0
        self.reconnects = 0
        self.last_message_at: float = 0

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} forwarded={self.forwarded} "
            f"rejected={self.rejected} reconnects={self.reconnects}"
        )

    def to_dict(self) -> dict:
        return {
            "received": self.received,
            "forwarded": self.forwarded,
            "rejected": self.rejected,
            "reconnects": self.reconnects,
            "last_message_at": self.last_message_at,
        }


class StationMQTTReceiver:
    """Receives station telemetry and forwards raw payloads to `on_message`.

    `on_message` returns False when the message could not be accepted
    (queue full or shutting down); that only affects the stats.
    """

    def __init__(
        self,
        on_message: MessageCallback,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        topic: str = "application/#",
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "station-ingest",
        qos: int = 1,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"
        self.qos = qos

        self._on_message_callback = on_message
        self._client: Optional[mqtt.Client] = None
        self._running = False
        self._connected = False
        self._ever_connected = False
        self._stats = ReceiverStats()

    @classmethod
    def from_settings(cls, settings: Settings, on_message: MessageCallback) -> "StationMQTTReceiver":
        return cls(
            on_message=on_message,
            broker_host=settings.mqtt_host,
            broker_port=settings.mqtt_port,
            topic=settings.mqtt_topic,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            client_id=settings.mqtt_client_id,
        )

    def start(self) -> bool:
        """Connect and start paho's network loop. False if the broker is unreachable."""
        try:
            self._client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
            )

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message
            self._client.reconnect_delay_set(min_delay=1, max_delay=60)

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()
            self._running = True

            deadline = time.monotonic() + CONNECT_WAIT_SECONDS
            while not self._connected and time.monotonic() < deadline:
                time.sleep(0.1)

            if self._connected:
                logger.info("[MQTT] Started successfully")
                return True

            logger.error("[MQTT] Connection timeout")
            return False

        except Exception as e:
            logger.exception("[MQTT] Start failed: %s", e)
            return False

    def stop(self) -> None:
        """Disconnect; no more messages are forwarded after this returns."""
        self._running = False

        if self._client:
            try:
                self._client.disconnect()
                self._client.loop_stop()
            except Exception as e:
                logger.warning("[MQTT] Error stopping: %s", e)

        logger.info("[MQTT] Stopped. %s", self._stats)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connected = False
            logger.error("[MQTT] Connection refused: %s", reason_code)
            return

        if self._ever_connected:
            self._stats.reconnects += 1
        self._connected = True
        self._ever_connected = True
        logger.info("[MQTT] Connected to broker")

        # Subscriptions do not survive a clean session; renew on every connect
        client.subscribe(self.topic, qos=self.qos)
        logger.info("[MQTT] Subscribed to %s", self.topic)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        if self._running:
            logger.error("[MQTT] Connection lost (%s), paho will reconnect", reason_code)
        else:
            logger.info("[MQTT] Disconnected")

    def _on_message(self, client, userdata, msg):
        self._stats.received += 1
        self._stats.last_message_at = time.time()

        if not self._running:
            self._stats.rejected += 1
            return

        try:
            accepted = self._on_message_callback(msg.topic, msg.payload)
        except Exception as e:
            logger.exception("[MQTT] Handler error (topic=%s): %s", msg.topic, e)
            self._stats.rejected += 1
            return

        if accepted is False:
            self._stats.rejected += 1
        else:
            self._stats.forwarded += 1

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self._connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "topic": self.topic,
            **self._stats.to_dict(),
        }

    def health_check(self) -> dict:
        return {
            "healthy": self._running and self._connected,
            "running": self._running,
            "connected": self._connected,
            "last_message_age_seconds": (
                time.time() - self._stats.last_message_at
                if self._stats.last_message_at > 0 else None
            ),
        }
