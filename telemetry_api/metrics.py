"""Métricas Prometheus del servicio de telemetría."""

from __future__ import annotations

from prometheus_client import Counter

READINGS_INGESTED = Counter(
    "telemetry_readings_ingested_total",
    "Readings accepted into the rolling cache",
    ["transport"],
)
READINGS_REJECTED = Counter(
    "telemetry_readings_rejected_total",
    "Readings rejected by validation",
    ["transport"],
)
DURABLE_WRITE_FAILURES = Counter(
    "telemetry_durable_write_failures_total",
    "Readings cached but not persisted to the durable store",
)
ALERT_TRANSITIONS = Counter(
    "telemetry_alert_transitions_total",
    "Alert state machine transitions",
    ["transition"],  # new-alert, recovered
)
PUSH_NOTIFICATIONS = Counter(
    "telemetry_push_notifications_total",
    "Push notifications attempted per outcome",
    ["status"],  # delivered, invalid_token, transient, failed
)
ESCALATION_CALLS = Counter(
    "telemetry_escalation_calls_total",
    "Voice escalation calls per outcome",
    ["status"],  # placed, failed
)
