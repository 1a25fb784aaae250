from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

# camelCase (documentos legacy) -> snake_case
SETTINGS_ALIASES: dict[str, str] = {
    "lowerBoundLine1": "lower_bound_line1",
    "lowerBoundLine2": "lower_bound_line2",
    "unitsPerLine1": "units_per_line1",
    "unitsPerLine2": "units_per_line2",
}

SETTINGS_FIELDS: tuple[str, ...] = tuple(SETTINGS_ALIASES.values())


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_units(value: Any) -> float:
    # Unidades 0, None o no finitas -> 1
    try:
        units = float(value)
    except (TypeError, ValueError, OverflowError):
        return 1.0
    if not units or not math.isfinite(units):
        return 1.0
    return units


def canonical_settings_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Normaliza claves camelCase/snake_case e ignora las desconocidas."""
    result: dict[str, Any] = {}
    for key, value in fields.items():
        name = SETTINGS_ALIASES.get(key, key)
        if name in SETTINGS_FIELDS:
            result[name] = value
    return result


@dataclass(frozen=True)
class DeviceSettings:
    """Umbrales de alerta por dispositivo."""

    lower_bound_line1: int = 0
    lower_bound_line2: int = 0
    units_per_line1: float = 1.0
    units_per_line2: float = 1.0

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "DeviceSettings":
        return cls().merge(fields)

    def merge(self, fields: Mapping[str, Any]) -> "DeviceSettings":
        updates: dict[str, Any] = {}
        for name, value in canonical_settings_fields(fields).items():
            if name.startswith("lower_bound"):
                updates[name] = _as_int(value)
            else:
                updates[name] = _as_units(value)
        return replace(self, **updates)


@dataclass(frozen=True)
class Recipient:
    """Registro de usuario asociado a un dispositivo (directorio "users")."""

    user_id: str
    device_id: str
    name: str = ""
    fcm_token: Optional[str] = None
    guardian_number1: Optional[str] = None
    guardian_number2: Optional[str] = None
    lower_bound_line1: Optional[int] = None
    lower_bound_line2: Optional[int] = None
    units_per_line1: Optional[float] = None
    units_per_line2: Optional[float] = None

    @property
    def guardian_numbers(self) -> list[str]:
        return [n for n in (self.guardian_number1, self.guardian_number2) if n]

    def to_settings(self) -> DeviceSettings:
        return DeviceSettings.from_fields(
            {
                name: getattr(self, name)
                for name in SETTINGS_FIELDS
                if getattr(self, name) is not None
            }
        )
