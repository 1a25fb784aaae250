"""Esquema del almacén durable.

Las sentencias son portables (SQLite / PostgreSQL). Idempotente.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS readings (
        device_id VARCHAR(128) NOT NULL,
        record_id VARCHAR(32) NOT NULL,
        reading_ts VARCHAR(40) NOT NULL,
        payload TEXT NOT NULL,
        PRIMARY KEY (device_id, record_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id VARCHAR(128) PRIMARY KEY,
        device_id VARCHAR(128) NOT NULL,
        name VARCHAR(255),
        fcm_token TEXT,
        guardian_number1 VARCHAR(32),
        guardian_number2 VARCHAR(32),
        lower_bound_line1 INTEGER,
        lower_bound_line2 INTEGER,
        units_per_line1 REAL,
        units_per_line2 REAL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_users_device_id ON users (device_id)",
    """
    CREATE TABLE IF NOT EXISTS relay_commands (
        device_id VARCHAR(128) NOT NULL,
        record_id VARCHAR(32) NOT NULL,
        created_at VARCHAR(40) NOT NULL,
        payload TEXT NOT NULL,
        PRIMARY KEY (device_id, record_id)
    )
    """,
)


def ensure_schema(engine: Engine) -> None:
    logger.info("[STORE] Ensuring schema exists")
    with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
