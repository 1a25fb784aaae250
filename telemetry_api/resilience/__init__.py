"""Componentes de resiliencia: circuit breaker y DLQ."""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
    CircuitState,
)
from .dead_letter import DeadLetterQueue

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "DeadLetterQueue",
]
