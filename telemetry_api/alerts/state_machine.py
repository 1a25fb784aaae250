"""Máquina de estados de alertas por dispositivo.

FUENTE ÚNICA DE VERDAD para decidir si se notifica.

Estados: INACTIVE (inicial, implícito) y ACTIVE.

- INACTIVE + violación    -> ACTIVE   (NEW_ALERT, una sola vez por episodio)
- ACTIVE   + violación    -> ACTIVE   (sin cambios, se suprime la re-notificación)
- ACTIVE   + sin violación -> INACTIVE (RECOVERED, solo log)
- INACTIVE + sin violación -> INACTIVE (sin cambios)

El estado vive solo en memoria del proceso; no se persiste.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from .evaluator import ViolationReport

logger = logging.getLogger(__name__)


class AlertTransition(str, Enum):
    NEW_ALERT = "new-alert"
    RECOVERED = "recovered"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class AlertState:
    active: bool = False
    last_alert_at: Optional[datetime] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertStateMachine:
    def __init__(self, now: Callable[[], datetime] = _utcnow) -> None:
        self._now = now
        self._states: Dict[str, AlertState] = {}
        self._lock = threading.Lock()
        self._counts = {t: 0 for t in AlertTransition}

    def state(self, device_id: str) -> AlertState:
        with self._lock:
            return self._states.get(device_id, AlertState())

    def active_devices(self) -> List[str]:
        with self._lock:
            return sorted(d for d, s in self._states.items() if s.active)

    def observe(self, device_id: str, report: ViolationReport) -> AlertTransition:
        """Aplica un ViolationReport y devuelve la transición resultante."""
        with self._lock:
            current = self._states.get(device_id, AlertState())

            if report.violated and not current.active:
                self._states[device_id] = AlertState(active=True, last_alert_at=self._now())
                transition = AlertTransition.NEW_ALERT
            elif not report.violated and current.active:
                self._states[device_id] = replace(current, active=False)
                transition = AlertTransition.RECOVERED
            else:
                self._states.setdefault(device_id, current)
                transition = AlertTransition.UNCHANGED

            self._counts[transition] += 1

        if transition is AlertTransition.NEW_ALERT:
            logger.warning("[ALERT] NEW_ALERT device=%s %s", device_id, report.message)
        elif transition is AlertTransition.RECOVERED:
            logger.info("[ALERT] RECOVERED device=%s", device_id)
        elif report.violated:
            logger.debug("[ALERT] Suppressed re-notification device=%s", device_id)

        return transition

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "tracked_devices": len(self._states),
                "active_devices": sum(1 for s in self._states.values() if s.active),
                "transitions": {t.value: n for t, n in self._counts.items()},
            }
