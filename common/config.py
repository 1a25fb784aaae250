from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./telemetry.db"
    redis_url: str = "redis://localhost:6379/0"
    dlq_enabled: bool = False

    mqtt_enabled: bool = False
    mqtt_broker_host: str = "localhost"
    mqtt_broker_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_topic: str = "aeration/telemetry"

    liveness_timeout_seconds: float = 30.0
    retention_hours: float = 48.0

    fcm_endpoint: str = "https://fcm.googleapis.com/fcm/send"
    fcm_server_key: str | None = None

    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_from_number: str | None = None
    escalation_enabled: bool = False
    escalation_numbers: Tuple[str, ...] = field(default_factory=tuple)
    escalation_script_url: str = ""
    escalation_delay_seconds: float = 60.0

    cb_failure_threshold: int = 5
    cb_recovery_timeout_seconds: float = 30.0
    cb_success_threshold: int = 2

    api_key: str | None = None

    @property
    def retention_seconds(self) -> float:
        return self.retention_hours * 3600.0


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("TELEMETRY_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./telemetry.db"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        dlq_enabled=_env_bool("DLQ_ENABLED", "false"),
        mqtt_enabled=_env_bool("MQTT_ENABLED", "false"),
        mqtt_broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_broker_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_topic=os.getenv("MQTT_TOPIC", "aeration/telemetry"),
        liveness_timeout_seconds=float(os.getenv("LIVENESS_TIMEOUT_SECONDS", "30")),
        retention_hours=float(os.getenv("RETENTION_HOURS", "48")),
        fcm_endpoint=os.getenv("FCM_ENDPOINT", "https://fcm.googleapis.com/fcm/send"),
        fcm_server_key=os.getenv("FCM_SERVER_KEY") or None,
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID") or None,
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN") or None,
        twilio_from_number=os.getenv("TWILIO_FROM_NUMBER") or None,
        escalation_enabled=_env_bool("ESCALATION_ENABLED", "false"),
        escalation_numbers=_env_list("ESCALATION_NUMBERS"),
        escalation_script_url=os.getenv("ESCALATION_SCRIPT_URL", ""),
        escalation_delay_seconds=float(os.getenv("ESCALATION_DELAY_SECONDS", "60")),
        cb_failure_threshold=int(os.getenv("CB_FAILURE_THRESHOLD", "5")),
        cb_recovery_timeout_seconds=float(os.getenv("CB_RECOVERY_TIMEOUT", "30")),
        cb_success_threshold=int(os.getenv("CB_SUCCESS_THRESHOLD", "2")),
        api_key=os.getenv("TELEMETRY_API_KEY") or None,
    )
