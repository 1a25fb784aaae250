"""Servicio de ingesta de telemetría y alertas para equipos de aireación."""
