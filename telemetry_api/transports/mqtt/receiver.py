"""Receptor MQTT usando paho-mqtt directamente.

Flujo:
  MQTT topic fijo (aeration/telemetry por defecto)
  → receiver (este archivo, hilo de red de paho)
  → validación previa (JSON + device_id); inválidos → DLQ Redis
  → IngestionPipeline.ingest() en el event loop de la app

El callback de paho corre en su propio hilo: el trabajo se entrega al loop
con run_coroutine_threadsafe, así el lock por dispositivo y los caches se
usan siempre desde el mismo loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from concurrent.futures import Future
from typing import Any, Optional

import paho.mqtt.client as mqtt

from ...core.normalizer import normalize_payload
from ...errors import ValidationError
from ...metrics import READINGS_REJECTED
from ...pipeline import IngestionPipeline
from ...resilience.dead_letter import DeadLetterQueue

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "aeration/telemetry"


class TelemetryMQTTReceiver:
    """Receptor MQTT que entrega cada lectura al pipeline de ingesta."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        dlq: Optional[DeadLetterQueue] = None,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic: str = DEFAULT_TOPIC,
        client_id: str = "telemetry-receiver",
    ):
        self._pipeline = pipeline
        self._dlq = dlq or DeadLetterQueue()
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.topic = topic
        self.client_id = f"{client_id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._connected = False

        # Stats
        self._messages_received = 0
        self._messages_processed = 0
        self._messages_failed = 0
        self._messages_dead_lettered = 0
        self._last_message_at: float = 0

    def start(self, loop: asyncio.AbstractEventLoop, connect_timeout: float = 5.0) -> bool:
        """Conecta al broker y arranca el hilo de red de paho.

        Bloquea hasta ``connect_timeout`` esperando el CONNACK; llamar
        desde un hilo de trabajo, no desde el event loop.
        """
        self._loop = loop

        try:
            self._client = mqtt.Client(
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            )

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)

            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()
            self._running = True

            deadline = time.monotonic() + connect_timeout
            while not self._connected and time.monotonic() < deadline:
                time.sleep(0.1)

            if self._connected:
                logger.info("[MQTT] Started successfully")
                return True

            # loop_start sigue reintentando en segundo plano
            logger.error("[MQTT] Connection timeout")
            return False

        except Exception as e:
            logger.exception("[MQTT] Start failed: %s", e)
            return False

    def stop(self) -> None:
        self._running = False

        if self._client:
            try:
                self._client.loop_stop()
                self._client.disconnect()
            except Exception as e:
                logger.warning("[MQTT] Error stopping: %s", e)

        logger.info(
            "[MQTT] Stopped. Stats: received=%d processed=%d failed=%d dlq=%d",
            self._messages_received,
            self._messages_processed,
            self._messages_failed,
            self._messages_dead_lettered,
        )

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        if rc == 0:
            self._connected = True
            logger.info("[MQTT] Connected to MQTT broker")
            client.subscribe(self.topic, qos=1)
            logger.info("[MQTT] Subscribed to %s", self.topic)
        else:
            self._connected = False
            logger.error("[MQTT] Connection failed: rc=%s", rc)

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        self._connected = False
        logger.warning("[MQTT] Disconnected (rc=%s)", rc)

    def _on_message(self, client, userdata, msg) -> Optional[Future]:
        self._messages_received += 1
        self._last_message_at = time.time()

        try:
            data = json.loads(msg.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("[MQTT] Invalid JSON: %s (topic=%s)", e, msg.topic)
            self._reject(msg.payload, str(e), "parse_error")
            return None

        # Misma validación que el pipeline: los inválidos no llegan a los caches
        try:
            normalize_payload(data)
        except ValidationError as e:
            logger.warning("[MQTT] Validation failed: %s (topic=%s)", e, msg.topic)
            device_id = data.get("device_id") if isinstance(data, dict) else None
            self._reject(data, str(e), "validation_error", device_id=device_id)
            return None

        if self._loop is None or self._loop.is_closed():
            logger.error("[MQTT] No event loop bound, dropping message (topic=%s)", msg.topic)
            self._messages_failed += 1
            return None

        future = asyncio.run_coroutine_threadsafe(
            self._pipeline.ingest(data, transport="mqtt"), self._loop
        )
        future.add_done_callback(self._on_ingest_done)
        return future

    def _on_ingest_done(self, future: Future) -> None:
        error = future.exception()
        if error is None:
            self._messages_processed += 1
            if self._messages_processed % 10 == 0:
                logger.info(
                    "[MQTT] Stats: received=%d processed=%d failed=%d",
                    self._messages_received,
                    self._messages_processed,
                    self._messages_failed,
                )
            return

        self._messages_failed += 1
        logger.error("[MQTT] Processing error: %s", error, exc_info=error)

    def _reject(self, payload: Any, error: str, error_type: str, device_id: Optional[str] = None) -> None:
        self._messages_failed += 1
        READINGS_REJECTED.labels(transport="mqtt").inc()
        if self._dlq.send(payload, error, error_type, source="mqtt", device_id=device_id):
            self._messages_dead_lettered += 1

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
            "messages_received": self._messages_received,
            "messages_processed": self._messages_processed,
            "messages_failed": self._messages_failed,
            "messages_dead_lettered": self._messages_dead_lettered,
            "last_message_at": self._last_message_at,
            "dlq": self._dlq.stats,
        }

    def health_check(self) -> dict:
        return {
            "healthy": self._running and self._connected,
            "running": self._running,
            "connected": self._connected,
            "messages_processed": self._messages_processed,
            "messages_failed": self._messages_failed,
        }
