"""Health, readiness y métricas."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from common.db import ping

from ..container import ServiceContainer
from ..transports.http.endpoints import get_container

router = APIRouter(tags=["health"])


@router.get("/health")
def health(container: ServiceContainer = Depends(get_container)):
    """Liveness probe: ok mientras el proceso esté vivo."""
    return {
        "status": "ok",
        "cache": container.cache.stats,
        "settings_cache": container.settings_cache.stats,
        "alerts": container.alerts.stats,
        "store_breaker": container.store_breaker.get_stats(),
        "escalation": container.escalation.stats if container.escalation else None,
    }


@router.get("/ready")
def ready(container: ServiceContainer = Depends(get_container)):
    """Readiness probe: verifica conectividad con la BD."""
    if not ping(container.engine):
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready"}


@router.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/mqtt/health")
def mqtt_health(request: Request, container: ServiceContainer = Depends(get_container)):
    receiver = getattr(request.app.state, "mqtt_receiver", None)
    if receiver is None:
        return {"status": "disabled"}
    check = receiver.health_check()
    return {
        "status": "ok" if check["healthy"] else "degraded",
        **check,
        "dlq": container.dlq.stats,
        "recent_rejections": container.dlq.get_recent(5),
    }
