"""Tests de carga de configuración."""

import pytest

from common.config import get_settings
from telemetry_api.container import build_container
from telemetry_api.resilience.dead_letter import DeadLetterQueue

from .fakes import FakePush


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    # Sin .env real; setenv+delenv para que el teardown borre lo que escriba load_dotenv
    monkeypatch.setenv("TELEMETRY_ENV_FILE", str(tmp_path / "missing.env"))
    for name in (
        "DATABASE_URL", "MQTT_ENABLED", "MQTT_TOPIC", "LIVENESS_TIMEOUT_SECONDS",
        "RETENTION_HOURS", "ESCALATION_NUMBERS", "ESCALATION_ENABLED", "TELEMETRY_API_KEY",
        "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER", "ESCALATION_SCRIPT_URL",
    ):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return tmp_path


class TestSettings:

    def test_defaults(self, clean_env):
        settings = get_settings()

        assert settings.liveness_timeout_seconds == 30.0
        assert settings.retention_seconds == 48 * 3600.0
        assert settings.mqtt_topic == "aeration/telemetry"
        assert settings.mqtt_enabled is False
        assert settings.escalation_delay_seconds == 60.0
        assert settings.escalation_numbers == ()
        assert settings.api_key is None

    def test_environment_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("MQTT_ENABLED", "true")
        monkeypatch.setenv("RETENTION_HOURS", "1")
        monkeypatch.setenv("ESCALATION_NUMBERS", "+1, +2,,")

        settings = get_settings()

        assert settings.mqtt_enabled is True
        assert settings.retention_seconds == 3600.0
        assert settings.escalation_numbers == ("+1", "+2")

    def test_env_file_does_not_override_real_env(self, clean_env, monkeypatch):
        env_file = clean_env / "test.env"
        env_file.write_text("MQTT_TOPIC=from/file\nLIVENESS_TIMEOUT_SECONDS=10\n")
        monkeypatch.setenv("TELEMETRY_ENV_FILE", str(env_file))
        monkeypatch.setenv("MQTT_TOPIC", "from/env")

        settings = get_settings()

        assert settings.mqtt_topic == "from/env"
        assert settings.liveness_timeout_seconds == 10.0


class TestContainer:

    def test_escalation_disabled_without_twilio(self, clean_env, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
        monkeypatch.setenv("ESCALATION_ENABLED", "true")
        monkeypatch.setenv("ESCALATION_SCRIPT_URL", "https://example.test/twiml")

        container = build_container(push=FakePush(), dlq=DeadLetterQueue())

        assert container.escalation is None
        assert container.cache.liveness_timeout_seconds == 30.0

    def test_escalation_enabled_with_twilio(self, clean_env, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
        monkeypatch.setenv("ESCALATION_ENABLED", "true")
        monkeypatch.setenv("ESCALATION_SCRIPT_URL", "https://example.test/twiml")
        monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
        monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
        monkeypatch.setenv("TWILIO_FROM_NUMBER", "+34900000000")

        container = build_container(push=FakePush(), dlq=DeadLetterQueue())

        assert container.escalation is not None
        assert container.escalation.stats["inter_call_delay_seconds"] == 60.0
