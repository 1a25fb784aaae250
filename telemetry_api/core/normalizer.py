"""Normalizador de telemetría.

Convierte un payload crudo (HTTP o MQTT) en un ``Reading`` canónico.

Política de tolerancia: un campo de sensor mal formado NUNCA aborta la
ingesta; se reemplaza por 0. Lo único obligatorio es ``device_id``.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .domain.reading import LINE_FIELDS, RELAY_FIELDS, SENSOR_FIELDS, Reading
from ..errors import ValidationError

logger = logging.getLogger(__name__)

# Epoch por encima de este valor se interpreta como milisegundos
_EPOCH_MS_THRESHOLD = 1e12


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_number(value: Any) -> float:
    """Convierte a float; cualquier cosa no numérica (o NaN/inf) vale 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parsea un timestamp suministrado por el dispositivo.

    Acepta datetime, ISO-8601 (con sufijo Z) o epoch en segundos/milisegundos.
    Devuelve None si no se puede interpretar.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        seconds = value / 1000.0 if value > _EPOCH_MS_THRESHOLD else float(value)
        try:
            dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _clean_device_id(device_id: Any) -> str:
    if device_id is None or isinstance(device_id, bool):
        raise ValidationError("device_id required", field="device_id")
    cleaned = str(device_id).strip()
    if not cleaned:
        raise ValidationError("device_id required", field="device_id")
    return cleaned


def normalize(
    device_id: Any,
    raw_payload: Mapping[str, Any] | None,
    now: Callable[[], datetime] = _utcnow,
) -> Reading:
    """Valida y normaliza una lectura.

    Raises:
        ValidationError: si falta ``device_id`` o está vacío.
    """
    clean_id = _clean_device_id(device_id)
    payload = raw_payload or {}

    timestamp: Optional[datetime] = None
    supplied = payload.get("timestamp")
    if supplied is not None:
        timestamp = parse_timestamp(supplied)
        if timestamp is None:
            logger.warning(
                "[NORMALIZER] Unparseable timestamp device=%s value=%r, using server time",
                clean_id,
                supplied,
            )
    if timestamp is None:
        timestamp = now()

    lines = {name: coerce_number(payload.get(name)) for name in LINE_FIELDS}
    relays = {name: coerce_number(payload.get(name)) for name in RELAY_FIELDS}
    sensors = {name: coerce_number(payload.get(name)) for name in SENSOR_FIELDS}

    return Reading(
        device_id=clean_id,
        timestamp=timestamp,
        sensors=sensors,
        **lines,
        **relays,
    )


def normalize_payload(
    raw_payload: Mapping[str, Any] | None,
    now: Callable[[], datetime] = _utcnow,
) -> Reading:
    """Punto de entrada común para transportes: el device_id viene en el payload."""
    if not isinstance(raw_payload, Mapping):
        raise ValidationError("payload must be a JSON object")
    return normalize(raw_payload.get("device_id"), raw_payload, now=now)
