from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Optional

from ..domain.reading import Reading

DEFAULT_LIVENESS_TIMEOUT_SECONDS = 30.0
DEFAULT_RETENTION_SECONDS = 48 * 3600.0


@dataclass(frozen=True)
class LiveEntry:
    """Última lectura de un dispositivo y cuándo la vio el servidor."""

    reading: Reading
    last_updated: float  # epoch del servidor, no del dispositivo


class RollingCacheStore:
    """Cache en memoria por dispositivo: valor vivo + ventana de historia.

    - ``put`` reemplaza la entrada viva, añade a la historia y expulsa en
      el acto todo lo anterior a ``now - retention`` (no en lectura).
    - ``get_live`` solo devuelve datos si la última actualización tiene
      como mucho ``liveness_timeout`` segundos (modela sensor caído).
    - ``get_history`` devuelve la ventana tal cual, sin filtro de frescura.

    El orden de la historia es el orden de inserción.
    """

    def __init__(
        self,
        liveness_timeout_seconds: float = DEFAULT_LIVENESS_TIMEOUT_SECONDS,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._liveness_timeout = float(liveness_timeout_seconds)
        self._retention = float(retention_seconds)
        self._clock = clock
        self._lock = threading.RLock()
        self._live: Dict[str, LiveEntry] = {}
        self._history: Dict[str, Deque[Reading]] = {}

    @property
    def liveness_timeout_seconds(self) -> float:
        return self._liveness_timeout

    @property
    def retention_seconds(self) -> float:
        return self._retention

    def put(self, reading: Reading) -> None:
        now = self._clock()
        cutoff = datetime.fromtimestamp(now - self._retention, tz=timezone.utc)

        with self._lock:
            self._live[reading.device_id] = LiveEntry(reading=reading, last_updated=now)

            buf = self._history.setdefault(reading.device_id, deque())
            buf.append(reading)

            # Los timestamps vienen del dispositivo y pueden no ser monótonos:
            # se recorre toda la ventana en vez de recortar solo por la izquierda.
            if any(item.timestamp < cutoff for item in buf):
                self._history[reading.device_id] = deque(
                    item for item in buf if item.timestamp >= cutoff
                )

    def get_live(self, device_id: str) -> Optional[Reading]:
        with self._lock:
            entry = self._live.get(device_id)
        if entry is None:
            return None
        if self._clock() - entry.last_updated > self._liveness_timeout:
            return None
        return entry.reading

    def get_history(self, device_id: str) -> List[Reading]:
        with self._lock:
            return list(self._history.get(device_id, ()))

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "devices": len(self._live),
                "history_entries": sum(len(buf) for buf in self._history.values()),
                "liveness_timeout_seconds": self._liveness_timeout,
                "retention_seconds": self._retention,
            }
