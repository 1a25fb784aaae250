"""Circuit breaker del almacén durable.

Si la BD cae, las lecturas se siguen cacheando en memoria; el breaker
evita esperar el timeout de conexión en cada lectura mientras dure la caída.

CLOSED --N fallos seguidos--> OPEN --recovery_timeout--> HALF_OPEN
HALF_OPEN --M éxitos--> CLOSED,  HALF_OPEN --1 fallo--> OPEN
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

from common.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout_seconds: float = 30.0
    success_threshold: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout_seconds=settings.cb_recovery_timeout_seconds,
            success_threshold=settings.cb_success_threshold,
        )


class CircuitBreakerOpen(Exception):
    """La llamada no se intentó: el circuito está abierto."""

    def __init__(self, name: str, remaining_seconds: float):
        self.name = name
        self.remaining_seconds = remaining_seconds
        super().__init__(f"circuit '{name}' open, retry in {remaining_seconds:.1f}s")


class CircuitBreaker:
    """Protege una dependencia síncrona (se invoca desde hilos de trabajo).

    Uso:
        breaker = CircuitBreaker("durable-store")
        breaker.call(lambda: store.put_reading(device_id, record_id, reading))
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._half_open_successes = 0
        self._opened_at = 0.0
        self._rejected = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def call(self, func: Callable[[], T]) -> T:
        """Ejecuta ``func`` si el circuito lo permite.

        Raises:
            CircuitBreakerOpen: circuito abierto, ``func`` no se llamó.
        """
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                self._rejected += 1
                raise CircuitBreakerOpen(self.name, self._remaining())

        try:
            result = func()
        except Exception as e:
            self._record_failure(e)
            raise

        self._record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._transition(CircuitState.CLOSED, "manual reset")

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._consecutive_failures,
                "success_count": self._half_open_successes,
                "rejected_calls": self._rejected,
                "retry_in_seconds": round(self._remaining(), 1) if self._state is CircuitState.OPEN else 0.0,
            }

    # Los métodos siguientes asumen self._lock tomado, salvo _record_*

    def _remaining(self) -> float:
        return max(0.0, self._config.recovery_timeout_seconds - (self._clock() - self._opened_at))

    def _maybe_half_open(self) -> None:
        if self._state is CircuitState.OPEN and self._remaining() <= 0:
            self._transition(CircuitState.HALF_OPEN, "probing recovery")

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        old_state = self._state
        self._state = new_state
        self._half_open_successes = 0
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state is CircuitState.CLOSED:
            self._consecutive_failures = 0

        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log("[BREAKER] %s: %s -> %s (%s)", self.name, old_state.value, new_state.value, reason)

    def _record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self._config.success_threshold:
                    self._transition(CircuitState.CLOSED, "recovered")
            else:
                self._consecutive_failures = 0

    def _record_failure(self, error: Exception) -> None:
        with self._lock:
            self._consecutive_failures += 1
            reason = f"{type(error).__name__}: {str(error)[:100]}"
            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, f"probe failed, {reason}")
            elif (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self._config.failure_threshold
            ):
                self._transition(
                    CircuitState.OPEN,
                    f"{self._consecutive_failures} consecutive failures, {reason}",
                )
