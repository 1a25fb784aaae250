"""Dead Letter Queue para mensajes MQTT rechazados.

Guarda en un Redis Stream los mensajes que no llegaron a ser un Reading
(JSON inválido, sin device_id) para análisis posterior.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

_MAX_PAYLOAD_CHARS = 5000
_MAX_ERROR_CHARS = 1000


def _encode_payload(payload: Any) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8", errors="replace")
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, default=str)


def _decode(value: Any) -> Any:
    return value.decode() if isinstance(value, bytes) else value


class DeadLetterQueue:
    """DLQ sobre Redis Streams (XADD con MAXLEN aproximado).

    Sin cliente Redis queda deshabilitada: los rechazos solo se loguean.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        stream_name: str = "dlq:telemetry",
        max_len: int = 10000,
    ):
        self._client = redis_client
        self._stream = stream_name
        self._max_len = max_len

        self._sent = 0
        self._errors = 0

    @classmethod
    def from_url(cls, redis_url: str) -> "DeadLetterQueue":
        """Crea la DLQ; si Redis no responde queda deshabilitada."""
        try:
            client = redis.from_url(redis_url, socket_connect_timeout=5, socket_timeout=5)
            client.ping()
        except redis.RedisError as e:
            logger.warning("[DLQ] Redis unreachable, DLQ disabled: %s", e)
            return cls(None)
        logger.info("[DLQ] Redis connected: %s", redis_url.split("@")[-1])
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "stream_name": self._stream,
            "total_sent": self._sent,
            "send_errors": self._errors,
        }

    def send(
        self,
        payload: Any,
        error: str,
        error_type: str,
        source: str,
        device_id: Optional[str] = None,
    ) -> bool:
        """Registra un mensaje rechazado.

        error_type: "parse_error" (no es JSON/UTF-8) o "validation_error" (sin device_id).

        Returns:
            True si quedó en el stream; False si falló o la DLQ está deshabilitada.
        """
        encoded = _encode_payload(payload)
        if not self.enabled:
            logger.warning(
                "[DLQ] Disabled, dropping rejected message source=%s type=%s error=%s payload=%s",
                source, error_type, error, encoded[:200],
            )
            return False

        entry = {
            "payload": encoded[:_MAX_PAYLOAD_CHARS],
            "error": str(error)[:_MAX_ERROR_CHARS],
            "error_type": error_type,
            "source": source,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if device_id is not None:
            entry["device_id"] = str(device_id)

        try:
            self._client.xadd(self._stream, entry, maxlen=self._max_len, approximate=True)
        except redis.RedisError as e:
            self._errors += 1
            logger.error("[DLQ] XADD failed stream=%s: %s", self._stream, e)
            return False

        self._sent += 1
        logger.info("[DLQ] Stored source=%s type=%s device=%s", source, error_type, device_id)
        return True

    def get_recent(self, count: int = 10) -> list[dict]:
        """Últimos ``count`` rechazos, el más reciente primero."""
        if not self.enabled:
            return []
        try:
            entries = self._client.xrevrange(self._stream, count=count)
        except redis.RedisError as e:
            logger.error("[DLQ] XREVRANGE failed stream=%s: %s", self._stream, e)
            return []
        return [
            {"id": _decode(entry_id), **{_decode(k): _decode(v) for k, v in fields.items()}}
            for entry_id, fields in entries
        ]
