"""Almacén durable (lecturas, directorio de usuarios, comandos de relés)."""

from .schema import ensure_schema
from .store import RECORD_ID_FORMAT, TelemetryStore, make_record_id

__all__ = ["ensure_schema", "RECORD_ID_FORMAT", "TelemetryStore", "make_record_id"]
