"""Tests del pipeline de ingesta de extremo a extremo."""

import asyncio
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from telemetry_api.alerts.state_machine import AlertTransition
from telemetry_api.channels.push import InvalidToken
from telemetry_api.core.cache.device_locks import DeviceLockRegistry
from telemetry_api.core.domain.settings import DeviceSettings
from telemetry_api.errors import UpstreamUnavailable, ValidationError
from telemetry_api.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig

from .fakes import FakeDirectory, FakePush, SlowDirectory


def _failing_store():
    store = MagicMock()
    store.put_reading.side_effect = OperationalError("INSERT", {}, Exception("db down"))
    return store


# =============================================================================
# INGESTA
# =============================================================================

class TestIngest:

    @pytest.mark.asyncio
    async def test_end_to_end_new_alert(self, make_pipeline, store, recipients):
        push = FakePush(failures={"token-a": InvalidToken("NotRegistered")})
        pipeline = make_pipeline(FakeDirectory(recipients), store, push=push)

        outcome = await pipeline.ingest({"device_id": "dev1", "line1": 1})

        assert outcome.transition is AlertTransition.NEW_ALERT
        assert "Line1" in outcome.report.message
        assert outcome.persisted is True
        assert outcome.record_id == "2024-06-01_12-00-00"
        # token-a inválido, token-b recibe igual
        assert outcome.dispatch.delivered == ["u2"]
        assert [f.user_id for f in outcome.dispatch.failures] == ["u1"]
        assert push.tokens == ["token-b"]

    @pytest.mark.asyncio
    async def test_reading_cached_and_persisted(self, make_pipeline, store, recipients):
        pipeline = make_pipeline(FakeDirectory(recipients), store)

        outcome = await pipeline.ingest({"device_id": "dev1", "line1": 7, "ph": 7.2})

        assert pipeline.get_live("dev1") == outcome.reading
        assert pipeline.get_history("dev1") == [outcome.reading]
        stored = store.get_reading("dev1", outcome.record_id)
        assert stored["line1"] == 7.0
        assert stored["ph"] == 7.2

    @pytest.mark.asyncio
    async def test_repeated_violation_notifies_once(self, make_pipeline, store, recipients):
        push = FakePush()
        pipeline = make_pipeline(FakeDirectory(recipients), store, push=push)

        for _ in range(3):
            await pipeline.ingest({"device_id": "dev1", "line1": 1})

        assert push.tokens == ["token-a", "token-b"]

    @pytest.mark.asyncio
    async def test_recovery_does_not_notify(self, make_pipeline, store, recipients):
        push = FakePush()
        pipeline = make_pipeline(FakeDirectory(recipients), store, push=push)

        await pipeline.ingest({"device_id": "dev1", "line1": 1})
        outcome = await pipeline.ingest({"device_id": "dev1", "line1": 5})

        assert outcome.transition is AlertTransition.RECOVERED
        assert outcome.dispatch is None
        assert len(push.sent) == 2

    @pytest.mark.asyncio
    async def test_missing_device_id_no_cache_mutation(self, make_pipeline, store):
        pipeline = make_pipeline(FakeDirectory(), store)

        with pytest.raises(ValidationError):
            await pipeline.ingest({"line1": 3})

        assert pipeline.get_history("") == []

    @pytest.mark.asyncio
    async def test_unknown_device_cached_without_alerting(self, make_pipeline, store):
        pipeline = make_pipeline(FakeDirectory(), store)

        outcome = await pipeline.ingest({"device_id": "lonely", "line1": 0})

        assert outcome.transition is AlertTransition.UNCHANGED
        assert outcome.report is None
        assert pipeline.get_live("lonely") is not None

    @pytest.mark.asyncio
    async def test_huge_flow_still_acknowledged(self, make_pipeline, store, recipients):
        pipeline = make_pipeline(FakeDirectory(recipients), store)

        big = await pipeline.ingest({"device_id": "dev1", "line1": 1e30})
        overflow = await pipeline.ingest({"device_id": "dev1", "line1": 10**400})

        assert big.persisted is True
        assert big.report.active_units_line1 == 10**30
        assert big.transition is AlertTransition.UNCHANGED
        # Entero que no cabe en float: se trata como campo mal formado
        assert overflow.reading.line1 == 0.0
        assert overflow.transition is AlertTransition.NEW_ALERT
        assert [r.line1 for r in pipeline.get_history("dev1")] == [1e30, 0.0]


# =============================================================================
# FALLOS DE DEPENDENCIAS
# =============================================================================

class TestUpstreamFailures:

    @pytest.mark.asyncio
    async def test_store_failure_keeps_reading_in_cache(self, make_pipeline, recipients):
        pipeline = make_pipeline(FakeDirectory(recipients), _failing_store())

        outcome = await pipeline.ingest({"device_id": "dev1", "line1": 1})

        assert outcome.persisted is False
        assert pipeline.get_live("dev1") == outcome.reading
        assert pipeline.get_history("dev1") == [outcome.reading]
        # La alerta se evalúa igual
        assert outcome.transition is AlertTransition.NEW_ALERT

    @pytest.mark.asyncio
    async def test_open_breaker_skips_store(self, make_pipeline, recipients):
        store = _failing_store()
        breaker = CircuitBreaker("durable-store", CircuitBreakerConfig(failure_threshold=1))
        pipeline = make_pipeline(FakeDirectory(recipients), store, breaker=breaker)

        first = await pipeline.ingest({"device_id": "dev1", "line1": 5})
        second = await pipeline.ingest({"device_id": "dev1", "line1": 5})

        assert first.persisted is False
        assert second.persisted is False
        assert store.put_reading.call_count == 1
        assert len(pipeline.get_history("dev1")) == 2

    @pytest.mark.asyncio
    async def test_directory_failure_skips_alerting(self, make_pipeline, store):
        pipeline = make_pipeline(FakeDirectory(fail=True), store)

        outcome = await pipeline.ingest({"device_id": "dev1", "line1": 0})

        assert outcome.transition is AlertTransition.UNCHANGED
        assert outcome.persisted is True
        assert pipeline.get_live("dev1") is not None

    @pytest.mark.asyncio
    async def test_dispatch_exception_swallowed(self, make_pipeline, store, recipients):
        pipeline = make_pipeline(FakeDirectory(recipients), store)
        pipeline._dispatcher.dispatch = MagicMock(side_effect=RuntimeError("boom"))

        outcome = await pipeline.ingest({"device_id": "dev1", "line1": 1})

        assert outcome.transition is AlertTransition.NEW_ALERT
        assert outcome.dispatch is None


# =============================================================================
# SETTINGS Y RELÉS
# =============================================================================

class TestSettingsAndRelays:

    @pytest.mark.asyncio
    async def test_update_settings_persists_then_merges(self, make_pipeline, store, recipients):
        for r in recipients:
            store.upsert_recipient(r)
        pipeline = make_pipeline(store, store)

        merged = await pipeline.update_settings("dev1", {"lowerBoundLine1": 5})

        assert merged.lower_bound_line1 == 5
        assert all(r.lower_bound_line1 == 5 for r in store.query_recipients("dev1"))
        assert pipeline._settings.peek("dev1") == merged

    @pytest.mark.asyncio
    async def test_update_settings_store_failure_leaves_cache(self, make_pipeline, recipients):
        store = MagicMock()
        store.batch_update.side_effect = OperationalError("UPDATE", {}, Exception("db down"))
        pipeline = make_pipeline(FakeDirectory(recipients), store)
        await pipeline.ingest({"device_id": "dev1", "line1": 5})
        before = pipeline._settings.peek("dev1")

        with pytest.raises(UpstreamUnavailable):
            await pipeline.update_settings("dev1", {"lower_bound_line1": 9})

        assert pipeline._settings.peek("dev1") == before
        assert before == DeviceSettings(lower_bound_line1=3, units_per_line1=1.0)

    @pytest.mark.asyncio
    async def test_update_settings_empty_patch(self, make_pipeline, store):
        pipeline = make_pipeline(FakeDirectory(), store)

        with pytest.raises(ValidationError):
            await pipeline.update_settings("dev1", {"color": "red"})

    @pytest.mark.asyncio
    async def test_relay_command_stored(self, make_pipeline, store):
        pipeline = make_pipeline(FakeDirectory(), store)

        device_id, record_id, relays = await pipeline.record_relay_command(
            {"device_id": "dev1", "relay1": 1, "relay2": 0}
        )

        assert device_id == "dev1"
        assert relays == {"relay1": 1, "relay2": 0}
        assert store.get_relay_command("dev1", record_id) == {"relay1": 1, "relay2": 0}

    @pytest.mark.asyncio
    async def test_relay_command_requires_device_id(self, make_pipeline, store):
        pipeline = make_pipeline(FakeDirectory(), store)

        with pytest.raises(ValidationError):
            await pipeline.record_relay_command({"relay1": 1})


# =============================================================================
# CONCURRENCIA POR DISPOSITIVO
# =============================================================================

class TestPerDeviceOrdering:

    @pytest.mark.asyncio
    async def test_same_device_processed_in_arrival_order(self, make_pipeline, recipients):
        directory = SlowDirectory(recipients)
        push = FakePush()
        pipeline = make_pipeline(directory, MagicMock(), push=push)

        outcomes = await asyncio.gather(
            pipeline.ingest({"device_id": "dev1", "line1": 1}),
            pipeline.ingest({"device_id": "dev1", "line1": 2}),
            pipeline.ingest({"device_id": "dev1", "line1": 1.5}),
        )

        assert [r.line1 for r in pipeline.get_history("dev1")] == [1.0, 2.0, 1.5]
        assert [o.transition for o in outcomes] == [
            AlertTransition.NEW_ALERT,
            AlertTransition.UNCHANGED,
            AlertTransition.UNCHANGED,
        ]
        # La segunda y tercera lectura esperan y encuentran la config ya cacheada
        assert pipeline._settings.stats["directory_lookups"] == 1
        assert directory.max_in_flight == 1
        assert push.tokens == ["token-a", "token-b"]

    @pytest.mark.asyncio
    async def test_slow_device_does_not_block_others(self, make_pipeline, store, recipients):
        directory = SlowDirectory(recipients, gated=["devA"])
        pipeline = make_pipeline(directory, store)

        task_a = asyncio.create_task(pipeline.ingest({"device_id": "devA", "line1": 1}))
        await asyncio.sleep(0)

        outcome_b = await asyncio.wait_for(
            pipeline.ingest({"device_id": "devB", "line1": 4}), timeout=2
        )

        assert outcome_b.persisted is True
        assert not task_a.done()
        assert pipeline.get_live("devA") is not None

        directory.release.set()
        outcome_a = await asyncio.wait_for(task_a, timeout=2)
        assert outcome_a.persisted is True


class TestDeviceLockRegistry:

    def test_one_lock_per_device(self):
        locks = DeviceLockRegistry()

        assert locks.lock("dev1") is locks.lock("dev1")
        assert locks.lock("dev1") is not locks.lock("dev2")
        assert len(locks) == 2
