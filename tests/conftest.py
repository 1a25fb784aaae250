"""Fixtures compartidas de los tests del servicio de telemetría."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import pytest

from common.config import Settings
from common.db import build_engine
from telemetry_api.alerts.dispatcher import NotificationDispatcher
from telemetry_api.alerts.state_machine import AlertStateMachine
from telemetry_api.core.cache.device_locks import DeviceLockRegistry
from telemetry_api.core.cache.rolling_cache import RollingCacheStore
from telemetry_api.core.cache.settings_cache import DeviceSettingsCache
from telemetry_api.core.domain.settings import Recipient
from telemetry_api.persistence.schema import ensure_schema
from telemetry_api.persistence.store import TelemetryStore
from telemetry_api.pipeline import IngestionPipeline

from .fakes import FIXED_NOW, FakeClock, FakePush


@pytest.fixture
def engine():
    eng = build_engine(Settings(database_url="sqlite:///:memory:"))
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> TelemetryStore:
    return TelemetryStore(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(FIXED_NOW.timestamp())


@pytest.fixture
def recipients() -> List[Recipient]:
    """dev1 con umbral line1 >= 3; un usuario sin token."""
    return [
        Recipient(
            user_id="u1",
            device_id="dev1",
            name="Ana",
            fcm_token="token-a",
            guardian_number1="+34600000001",
            lower_bound_line1=3,
            units_per_line1=1,
        ),
        Recipient(
            user_id="u2",
            device_id="dev1",
            name="Luis",
            fcm_token="token-b",
            guardian_number1="+34600000002",
        ),
        Recipient(user_id="u3", device_id="dev1", name="Sin token"),
    ]


@pytest.fixture
def make_pipeline(clock):
    """Construye un pipeline con caches reales y colaboradores inyectables."""

    def _build(directory, store, push=None, escalation=None, escalation_numbers=(), breaker=None):
        return IngestionPipeline(
            cache=RollingCacheStore(clock=clock),
            settings_cache=DeviceSettingsCache(directory),
            alerts=AlertStateMachine(now=lambda: FIXED_NOW),
            dispatcher=NotificationDispatcher(
                directory,
                push or FakePush(),
                escalation=escalation,
                escalation_numbers=escalation_numbers,
            ),
            store=store,
            store_breaker=breaker,
            locks=DeviceLockRegistry(),
            now=lambda: datetime.fromtimestamp(clock(), tz=timezone.utc),
        )

    return _build
