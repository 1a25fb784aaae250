"""Taxonomía de errores del pipeline de telemetría.

- ValidationError: la lectura no puede normalizarse (falta device_id).
  Se devuelve al llamador; no hay mutación de cache.
- UpstreamUnavailable: almacén durable o directorio caído. En ingesta se
  loguea y se traga (la lectura queda en cache).
- NotificationFailure: fallo por destinatario, nunca se propaga.
- EscalationFailure: fallo por llamada de voz, no aborta la secuencia.
"""

from __future__ import annotations

from typing import Optional


class TelemetryError(Exception):
    """Base de errores del servicio."""


class ValidationError(TelemetryError):
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class UpstreamUnavailable(TelemetryError):
    def __init__(self, resource: str, cause: Optional[BaseException] = None):
        self.resource = resource
        self.cause = cause
        detail = f"{resource} unavailable"
        if cause is not None:
            detail = f"{detail}: {type(cause).__name__}: {cause}"
        super().__init__(detail)


class NotificationFailure(TelemetryError):
    def __init__(self, user_id: str, reason: str, cause: Optional[BaseException] = None):
        self.user_id = user_id
        self.reason = reason
        self.cause = cause
        super().__init__(f"notification to user={user_id} failed: {reason}")


class EscalationFailure(TelemetryError):
    def __init__(self, number: str, cause: Optional[BaseException] = None):
        self.number = number
        self.cause = cause
        super().__init__(f"escalation call to {number} failed: {cause}")
