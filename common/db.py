from __future__ import annotations

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import Settings, get_settings


logger = logging.getLogger(__name__)


def _safe_url(url: str) -> str:
    # No loguear credenciales
    return url.split("@")[-1]


def build_engine(settings: Settings | None = None) -> Engine:
    settings = settings or get_settings()
    url = settings.database_url

    logger.info("[DB] Crear engine url=%s", _safe_url(url))

    kwargs: dict = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite") and ":memory:" in url:
        # Una sola conexión compartida entre hilos para SQLite en memoria
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    elif url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_engine(url, **kwargs)

    # Test de conexión: ayuda a ver en logs si el servicio realmente llega a la BD
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Test de conexión OK")
    except Exception:
        logger.exception("[DB] Test de conexión FALLÓ")

    return engine


def ping(engine: Engine) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.warning("[DB] Ping failed", exc_info=True)
        return False
