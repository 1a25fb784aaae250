"""Autenticación por API Key para endpoints de escritura.

SECURITY: En producción, TELEMETRY_API_KEY debe estar configurado.
"""

from __future__ import annotations

import logging
import os

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


def _expected_key(request: Request) -> str | None:
    container = getattr(request.app.state, "container", None)
    if container is not None:
        return container.settings.api_key
    return os.getenv("TELEMETRY_API_KEY") or None


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Valida la API key de los endpoints de escritura.

    En modo desarrollo (sin key configurada) permite acceso sin
    autenticación con warning.
    """
    expected = _expected_key(request)
    is_production = os.getenv("ENVIRONMENT") == "production"

    if not expected:
        if is_production:
            logger.error("CRITICAL: TELEMETRY_API_KEY not configured in production!")
            raise HTTPException(status_code=500, detail="Server misconfiguration: API key not set")
        logger.warning(
            "[SECURITY WARNING] TELEMETRY_API_KEY not set - "
            "allowing unauthenticated access (DEV ONLY)"
        )
        return

    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if x_api_key != expected:
        logger.warning("Invalid API key attempt from request")
        raise HTTPException(status_code=401, detail="Invalid API key")
