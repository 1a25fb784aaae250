"""Modelos de dominio del pipeline de telemetría."""

from .reading import Reading, SENSOR_FIELDS, LINE_FIELDS, RELAY_FIELDS
from .settings import DeviceSettings, Recipient, canonical_settings_fields

__all__ = [
    "Reading",
    "SENSOR_FIELDS",
    "LINE_FIELDS",
    "RELAY_FIELDS",
    "DeviceSettings",
    "Recipient",
    "canonical_settings_fields",
]
