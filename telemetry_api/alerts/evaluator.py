"""Reglas de evaluación de umbrales por línea.

Función pura: sin efectos secundarios ni llamadas externas.
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal

from ..core.domain.reading import Reading
from ..core.domain.settings import DeviceSettings


@dataclass(frozen=True)
class ViolationReport:
    line1_violated: bool
    line2_violated: bool
    active_units_line1: int
    active_units_line2: int
    message: str = ""

    @property
    def violated(self) -> bool:
        return self.line1_violated or self.line2_violated


# Cubre la parte entera de cualquier float finito (hasta ~1.8e308)
_ROUNDING_CONTEXT = Context(prec=400)


def round_half_away_from_zero(value: float) -> int:
    """2.5 -> 3, -2.5 -> -3 (Decimal ROUND_HALF_UP redondea alejándose de cero)."""
    return int(
        Decimal(repr(float(value))).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP, context=_ROUNDING_CONTEXT
        )
    )


def active_units(flow: float, units_per_line: float) -> int:
    units = units_per_line or 1.0
    ratio = flow / units
    if math.isnan(ratio):
        return 0
    if math.isinf(ratio):
        # flujo enorme con unidades diminutas: satura en vez de desbordar
        ratio = math.copysign(sys.float_info.max, ratio)
    return round_half_away_from_zero(ratio)


def evaluate(reading: Reading, settings: DeviceSettings) -> ViolationReport:
    units1 = active_units(reading.line1, settings.units_per_line1)
    units2 = active_units(reading.line2, settings.units_per_line2)

    line1_violated = units1 < settings.lower_bound_line1
    line2_violated = units2 < settings.lower_bound_line2

    parts: list[str] = []
    if line1_violated:
        parts.append(f"Line1: {units1} active units, minimum {settings.lower_bound_line1}")
    if line2_violated:
        parts.append(f"Line2: {units2} active units, minimum {settings.lower_bound_line2}")

    return ViolationReport(
        line1_violated=line1_violated,
        line2_violated=line2_violated,
        active_units_line1=units1,
        active_units_line2=units2,
        message="; ".join(parts),
    )
