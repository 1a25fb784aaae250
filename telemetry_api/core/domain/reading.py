from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping

# Métricas de dominio conocidas (calidad de agua / aireación)
SENSOR_FIELDS: tuple[str, ...] = ("temperature", "turbidity", "ph", "do", "tds")

LINE_FIELDS: tuple[str, ...] = ("line1", "line2")
RELAY_FIELDS: tuple[str, ...] = ("relay1_status", "relay2_status")


@dataclass(frozen=True)
class Reading:
    """Lectura normalizada de un dispositivo de campo.

    Inmutable: una vez asignado, ``device_id`` no cambia. El timestamp
    siempre es timezone-aware (UTC).
    """

    device_id: str
    timestamp: datetime
    line1: float = 0.0
    line2: float = 0.0
    sensors: Mapping[str, float] = field(default_factory=dict)
    relay1_status: float = 0.0
    relay2_status: float = 0.0

    def sensor(self, name: str) -> float:
        return float(self.sensors.get(name, 0.0))

    def to_dict(self) -> Dict[str, Any]:
        """Forma plana que viaja por la API y se persiste."""
        data: Dict[str, Any] = {
            "device_id": self.device_id,
            "line1": self.line1,
            "line2": self.line2,
        }
        for name in SENSOR_FIELDS:
            data[name] = self.sensor(name)
        data["relay1_status"] = self.relay1_status
        data["relay2_status"] = self.relay2_status
        data["timestamp"] = self.timestamp.isoformat()
        return data
