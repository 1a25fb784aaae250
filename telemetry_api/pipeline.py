"""Pipeline de ingesta de telemetría.

Punto de entrada ÚNICO para todos los transportes (HTTP y MQTT):

  payload crudo
  → normalizador (ValidationError se propaga, sin mutar cache)
  → [lock por dispositivo] cache rolling → settings → evaluador → máquina de estados
  → almacén durable (fallo = UpstreamUnavailable, se loguea y se sigue)
  → dispatcher (solo en NEW_ALERT; sus fallos nunca llegan al llamador)

Disponibilidad sobre durabilidad: la lectura se cachea ANTES de persistir,
así las lecturas live/history siguen funcionando aunque la BD caiga.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .alerts.dispatcher import DispatchResult, NotificationDispatcher
from .alerts.evaluator import ViolationReport, evaluate
from .alerts.state_machine import AlertStateMachine, AlertTransition
from .core.cache.device_locks import DeviceLockRegistry
from .core.cache.rolling_cache import RollingCacheStore
from .core.cache.settings_cache import DeviceSettingsCache
from .core.domain.reading import Reading
from .core.domain.settings import DeviceSettings, canonical_settings_fields
from .core.normalizer import normalize_payload
from .errors import UpstreamUnavailable, ValidationError
from .metrics import ALERT_TRANSITIONS, DURABLE_WRITE_FAILURES, READINGS_INGESTED, READINGS_REJECTED
from .persistence.store import TelemetryStore, make_record_id
from .resilience.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestOutcome:
    reading: Reading
    record_id: str
    persisted: bool
    transition: AlertTransition = AlertTransition.UNCHANGED
    report: Optional[ViolationReport] = None
    dispatch: Optional[DispatchResult] = None


class IngestionPipeline:
    def __init__(
        self,
        cache: RollingCacheStore,
        settings_cache: DeviceSettingsCache,
        alerts: AlertStateMachine,
        dispatcher: NotificationDispatcher,
        store: TelemetryStore,
        store_breaker: Optional[CircuitBreaker] = None,
        locks: Optional[DeviceLockRegistry] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache = cache
        self._settings = settings_cache
        self._alerts = alerts
        self._dispatcher = dispatcher
        self._store = store
        self._breaker = store_breaker or CircuitBreaker("durable-store")
        self._locks = locks or DeviceLockRegistry()
        self._now = now

    async def ingest(self, raw_payload: Mapping[str, Any], transport: str = "http") -> IngestOutcome:
        """Procesa una lectura cruda.

        Raises:
            ValidationError: si el payload no tiene device_id.
        """
        try:
            reading = normalize_payload(raw_payload, now=self._now)
        except ValidationError:
            READINGS_REJECTED.labels(transport=transport).inc()
            raise

        device_id = reading.device_id
        record_id = make_record_id(self._now())

        async with self._locks.lock(device_id):
            self._cache.put(reading)
            READINGS_INGESTED.labels(transport=transport).inc()

            report: Optional[ViolationReport] = None
            transition = AlertTransition.UNCHANGED
            settings = await self._resolve_settings(device_id)
            if settings is not None:
                report = evaluate(reading, settings)
                transition = self._alerts.observe(device_id, report)
                if transition is not AlertTransition.UNCHANGED:
                    ALERT_TRANSITIONS.labels(transition=transition.value).inc()

        persisted = await self._persist(reading, record_id)

        outcome = IngestOutcome(
            reading=reading,
            record_id=record_id,
            persisted=persisted,
            transition=transition,
            report=report,
        )

        if transition is AlertTransition.NEW_ALERT and report is not None:
            try:
                outcome.dispatch = await self._dispatcher.dispatch(device_id, report.message)
            except Exception as e:
                logger.exception("[INGEST] Dispatch failed device=%s: %s", device_id, e)

        logger.info(
            "[INGEST] %s data stored: %s/%s persisted=%s alert=%s",
            transport.upper(),
            device_id,
            record_id,
            persisted,
            transition.value,
        )
        return outcome

    async def _resolve_settings(self, device_id: str) -> Optional[DeviceSettings]:
        try:
            return await self._settings.get(device_id)
        except UpstreamUnavailable as e:
            logger.error("[INGEST] Settings lookup failed device=%s, skipping alerts: %s", device_id, e)
            return None

    async def _persist(self, reading: Reading, record_id: str) -> bool:
        try:
            await asyncio.to_thread(
                self._breaker.call,
                lambda: self._store.put_reading(reading.device_id, record_id, reading),
            )
            return True
        except Exception as e:
            DURABLE_WRITE_FAILURES.inc()
            failure = UpstreamUnavailable("durable-store", e)
            logger.error("[INGEST] %s (device=%s record=%s)", failure, reading.device_id, record_id)
            return False

    async def update_settings(self, device_id: str, patch: Mapping[str, Any]) -> DeviceSettings:
        """Persiste el patch en el directorio y luego lo mezcla en el cache.

        Raises:
            ValidationError: patch vacío o sin campos conocidos.
            UpstreamUnavailable: el almacén no aceptó la escritura (cache intacto).
        """
        fields = canonical_settings_fields(patch)
        if not fields:
            raise ValidationError("no settings fields to update")

        try:
            rows = await asyncio.to_thread(self._store.batch_update, device_id, fields)
        except Exception as e:
            raise UpstreamUnavailable("durable-store", e) from e

        logger.info("[SETTINGS] Persisted device=%s rows=%d", device_id, rows)
        return self._settings.update(device_id, fields)

    async def record_relay_command(self, raw_payload: Mapping[str, Any]) -> tuple[str, str, dict]:
        """Guarda un comando de control de relés.

        Returns:
            (device_id, record_id, relays)
        """
        if not isinstance(raw_payload, Mapping):
            raise ValidationError("payload must be a JSON object")
        device_id = str(raw_payload.get("device_id") or "").strip()
        if not device_id:
            raise ValidationError("device_id required", field="device_id")

        relays = {k: v for k, v in raw_payload.items() if k != "device_id"}
        record_id = make_record_id(self._now())
        try:
            await asyncio.to_thread(self._store.put_relay_command, device_id, record_id, relays)
        except Exception as e:
            raise UpstreamUnavailable("durable-store", e) from e

        logger.info("[RELAYS] Relay data saved for %s", device_id)
        return device_id, record_id, relays

    def get_live(self, device_id: str) -> Optional[Reading]:
        return self._cache.get_live(device_id)

    def get_history(self, device_id: str) -> list[Reading]:
        return self._cache.get_history(device_id)
