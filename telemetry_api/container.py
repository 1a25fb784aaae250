"""Construcción de dependencias del servicio.

Todas las instancias con estado (caches, máquina de estados, cola de
escalado) se crean UNA vez aquí y se pasan explícitamente. No hay caches
globales a nivel de módulo.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from common.config import Settings, get_settings
from common.db import build_engine

from .alerts.dispatcher import NotificationDispatcher
from .alerts.escalation import EscalationQueue
from .alerts.state_machine import AlertStateMachine
from .channels.push import FcmPushChannel, PushChannel
from .channels.voice import TwilioVoiceChannel
from .core.cache.device_locks import DeviceLockRegistry
from .core.cache.rolling_cache import RollingCacheStore
from .core.cache.settings_cache import DeviceSettingsCache
from .persistence.schema import ensure_schema
from .persistence.store import TelemetryStore
from .pipeline import IngestionPipeline
from .resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .resilience.dead_letter import DeadLetterQueue

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    engine: Engine
    store: TelemetryStore
    cache: RollingCacheStore
    settings_cache: DeviceSettingsCache
    alerts: AlertStateMachine
    dispatcher: NotificationDispatcher
    store_breaker: CircuitBreaker
    pipeline: IngestionPipeline
    dlq: DeadLetterQueue
    escalation: Optional[EscalationQueue] = None


def _build_escalation(settings: Settings) -> Optional[EscalationQueue]:
    if not settings.escalation_enabled:
        return None
    if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number):
        logger.warning("[ESCALATION] Enabled but Twilio credentials missing, voice escalation disabled")
        return None
    if not settings.escalation_script_url:
        logger.warning("[ESCALATION] ESCALATION_SCRIPT_URL not set, voice escalation disabled")
        return None

    voice = TwilioVoiceChannel(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
    )
    return EscalationQueue(
        voice,
        settings.escalation_script_url,
        inter_call_delay_seconds=settings.escalation_delay_seconds,
    )


def build_container(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    push: Optional[PushChannel] = None,
    dlq: Optional[DeadLetterQueue] = None,
) -> ServiceContainer:
    settings = settings or get_settings()
    engine = engine or build_engine(settings)
    ensure_schema(engine)

    store = TelemetryStore(engine)
    cache = RollingCacheStore(
        liveness_timeout_seconds=settings.liveness_timeout_seconds,
        retention_seconds=settings.retention_seconds,
    )
    settings_cache = DeviceSettingsCache(store)
    alerts = AlertStateMachine()

    if push is None:
        if not settings.fcm_server_key:
            logger.warning("[PUSH] FCM_SERVER_KEY not set, push notifications will fail")
        push = FcmPushChannel(settings.fcm_endpoint, settings.fcm_server_key)

    escalation = _build_escalation(settings)
    dispatcher = NotificationDispatcher(
        store,
        push,
        escalation=escalation,
        escalation_numbers=settings.escalation_numbers,
    )

    store_breaker = CircuitBreaker("durable-store", CircuitBreakerConfig.from_settings(settings))
    pipeline = IngestionPipeline(
        cache=cache,
        settings_cache=settings_cache,
        alerts=alerts,
        dispatcher=dispatcher,
        store=store,
        store_breaker=store_breaker,
        locks=DeviceLockRegistry(),
    )

    if dlq is None:
        dlq = DeadLetterQueue.from_url(settings.redis_url) if settings.dlq_enabled else DeadLetterQueue()

    logger.info(
        "[CONTAINER] Ready liveness=%ss retention=%sh escalation=%s dlq=%s",
        settings.liveness_timeout_seconds,
        settings.retention_hours,
        escalation is not None,
        dlq.enabled,
    )

    return ServiceContainer(
        settings=settings,
        engine=engine,
        store=store,
        cache=cache,
        settings_cache=settings_cache,
        alerts=alerts,
        dispatcher=dispatcher,
        store_breaker=store_breaker,
        pipeline=pipeline,
        dlq=dlq,
        escalation=escalation,
    )
