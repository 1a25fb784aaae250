"""Almacén durable (SQLAlchemy).

Cumple dos papeles:
- histórico largo de lecturas (``readings``), clave (device_id, record_id)
- directorio de destinatarios (``users``), consultado por device_id

Los record_id son ``YYYY-MM-DD_HH-MM-SS`` en UTC: ordenables y derivados
del instante de ingesta. Dos lecturas del mismo dispositivo en el mismo
segundo colisionan y gana la última escritura.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ..core.domain.reading import Reading
from ..core.domain.settings import SETTINGS_FIELDS, Recipient, canonical_settings_fields

logger = logging.getLogger(__name__)

RECORD_ID_FORMAT = "%Y-%m-%d_%H-%M-%S"

_RECIPIENT_COLUMNS = (
    "user_id, device_id, name, fcm_token, guardian_number1, guardian_number2, "
    "lower_bound_line1, lower_bound_line2, units_per_line1, units_per_line2"
)


def make_record_id(instant: Optional[datetime] = None) -> str:
    instant = instant or datetime.now(timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).strftime(RECORD_ID_FORMAT)


def _row_to_recipient(row: Any) -> Recipient:
    return Recipient(
        user_id=str(row.user_id),
        device_id=str(row.device_id),
        name=str(row.name or ""),
        fcm_token=row.fcm_token or None,
        guardian_number1=row.guardian_number1 or None,
        guardian_number2=row.guardian_number2 or None,
        lower_bound_line1=row.lower_bound_line1,
        lower_bound_line2=row.lower_bound_line2,
        units_per_line1=row.units_per_line1,
        units_per_line2=row.units_per_line2,
    )


class TelemetryStore:
    """Acceso síncrono al almacén; el pipeline lo llama desde hilos de trabajo."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def put_reading(self, device_id: str, record_id: str, reading: Reading) -> None:
        payload = json.dumps(reading.to_dict())
        params = {
            "device_id": device_id,
            "record_id": record_id,
            "reading_ts": reading.timestamp.isoformat(),
            "payload": payload,
        }
        # Last-write-wins para la misma clave
        with self._engine.begin() as conn:
            conn.execute(
                text("DELETE FROM readings WHERE device_id = :device_id AND record_id = :record_id"),
                params,
            )
            conn.execute(
                text(
                    """
                    INSERT INTO readings (device_id, record_id, reading_ts, payload)
                    VALUES (:device_id, :record_id, :reading_ts, :payload)
                    """
                ),
                params,
            )
        logger.debug("[STORE] Reading stored %s/%s", device_id, record_id)

    def get_reading(self, device_id: str, record_id: str) -> Optional[dict]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(
                    "SELECT payload FROM readings "
                    "WHERE device_id = :device_id AND record_id = :record_id"
                ),
                {"device_id": device_id, "record_id": record_id},
            ).fetchone()
        return json.loads(row.payload) if row else None

    def query_recipients(self, device_id: str) -> List[Recipient]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(
                    f"SELECT {_RECIPIENT_COLUMNS} FROM users "
                    "WHERE device_id = :device_id ORDER BY user_id"
                ),
                {"device_id": device_id},
            ).fetchall()
        return [_row_to_recipient(r) for r in rows]

    def query_recipient(self, user_id: str) -> Optional[Recipient]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {_RECIPIENT_COLUMNS} FROM users WHERE user_id = :user_id"),
                {"user_id": user_id},
            ).fetchone()
        return _row_to_recipient(row) if row else None

    def upsert_recipient(self, recipient: Recipient) -> None:
        params = {
            "user_id": recipient.user_id,
            "device_id": recipient.device_id,
            "name": recipient.name,
            "fcm_token": recipient.fcm_token,
            "guardian_number1": recipient.guardian_number1,
            "guardian_number2": recipient.guardian_number2,
            "lower_bound_line1": recipient.lower_bound_line1,
            "lower_bound_line2": recipient.lower_bound_line2,
            "units_per_line1": recipient.units_per_line1,
            "units_per_line2": recipient.units_per_line2,
        }
        with self._engine.begin() as conn:
            conn.execute(text("DELETE FROM users WHERE user_id = :user_id"), params)
            conn.execute(
                text(
                    f"""
                    INSERT INTO users ({_RECIPIENT_COLUMNS})
                    VALUES (:user_id, :device_id, :name, :fcm_token, :guardian_number1,
                            :guardian_number2, :lower_bound_line1, :lower_bound_line2,
                            :units_per_line1, :units_per_line2)
                    """
                ),
                params,
            )

    def batch_update(self, device_id: str, fields: Mapping[str, Any]) -> int:
        """Actualiza los umbrales de TODAS las fichas del dispositivo.

        Solo se aceptan columnas de configuración; el resto se ignora.
        Devuelve el número de filas actualizadas.
        """
        updates = canonical_settings_fields(fields)
        if not updates:
            return 0

        # Nombres de columna salen de una lista blanca, nunca del request
        assignments = ", ".join(f"{name} = :{name}" for name in SETTINGS_FIELDS if name in updates)
        params = dict(updates)
        params["device_id"] = device_id

        with self._engine.begin() as conn:
            result = conn.execute(
                text(f"UPDATE users SET {assignments} WHERE device_id = :device_id"),
                params,
            )
        logger.info(
            "[STORE] batch_update device=%s fields=%s rows=%s",
            device_id,
            sorted(updates),
            result.rowcount,
        )
        return int(result.rowcount or 0)

    def put_relay_command(self, device_id: str, record_id: str, relays: Mapping[str, Any]) -> None:
        params = {
            "device_id": device_id,
            "record_id": record_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "payload": json.dumps(dict(relays), default=str),
        }
        with self._engine.begin() as conn:
            conn.execute(
                text(
                    "DELETE FROM relay_commands "
                    "WHERE device_id = :device_id AND record_id = :record_id"
                ),
                params,
            )
            conn.execute(
                text(
                    """
                    INSERT INTO relay_commands (device_id, record_id, created_at, payload)
                    VALUES (:device_id, :record_id, :created_at, :payload)
                    """
                ),
                params,
            )
        logger.info("[STORE] Relay command stored %s/%s", device_id, record_id)

    def get_relay_command(self, device_id: str, record_id: str) -> Optional[dict]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(
                    "SELECT payload FROM relay_commands "
                    "WHERE device_id = :device_id AND record_id = :record_id"
                ),
                {"device_id": device_id, "record_id": record_id},
            ).fetchone()
        return json.loads(row.payload) if row else None
