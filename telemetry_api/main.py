"""Aplicación FastAPI del servicio de telemetría.

Ejecutar:
    uvicorn telemetry_api.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .container import ServiceContainer, build_container
from .endpoints.health import router as health_router
from .transports.http.endpoints import router as telemetry_router
from .transports.mqtt.receiver import TelemetryMQTTReceiver

logger = logging.getLogger(__name__)


async def _start_mqtt(container: ServiceContainer) -> Optional[TelemetryMQTTReceiver]:
    settings = container.settings
    if not settings.mqtt_enabled:
        logger.info("[MQTT] Disabled (MQTT_ENABLED=false)")
        return None

    receiver = TelemetryMQTTReceiver(
        container.pipeline,
        dlq=container.dlq,
        broker_host=settings.mqtt_broker_host,
        broker_port=settings.mqtt_broker_port,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        topic=settings.mqtt_topic,
    )
    # start() espera el CONNACK con time.sleep: fuera del loop
    await asyncio.to_thread(receiver.start, asyncio.get_running_loop())
    return receiver


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            app.state.container = build_container()
        current: ServiceContainer = app.state.container

        if current.escalation is not None:
            current.escalation.start()
        app.state.mqtt_receiver = await _start_mqtt(current)

        logger.info("[APP] Telemetry service started")
        try:
            yield
        finally:
            if app.state.mqtt_receiver is not None:
                app.state.mqtt_receiver.stop()
            if current.escalation is not None:
                await current.escalation.stop()
            logger.info("[APP] Telemetry service stopped")

    app = FastAPI(title="Aeration Telemetry Service", version="1.0.0", lifespan=lifespan)
    app.state.container = container
    app.state.mqtt_receiver = None

    app.include_router(telemetry_router)
    app.include_router(health_router)
    return app


app = create_app()
