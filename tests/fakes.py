"""Dobles de prueba para directorio, push, voz y reloj."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from telemetry_api.core.domain.settings import Recipient
from telemetry_api.errors import EscalationFailure

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeDirectory:
    """Directorio de usuarios en memoria."""

    def __init__(self, recipients: Sequence[Recipient] = (), fail: bool = False):
        self.recipients: List[Recipient] = list(recipients)
        self.fail = fail
        self.calls = 0

    def query_recipients(self, device_id: str) -> List[Recipient]:
        self.calls += 1
        if self.fail:
            raise ConnectionError("directory down")
        return [r for r in self.recipients if r.device_id == device_id]


class SlowDirectory(FakeDirectory):
    """Directorio lento; registra cuántas consultas hubo a la vez.

    Los dispositivos en ``gated`` esperan a ``release``.
    """

    def __init__(self, recipients: Sequence[Recipient] = (), delay: float = 0.02, gated: Sequence[str] = ()):
        super().__init__(recipients)
        self.delay = delay
        self.gated = set(gated)
        self.release = threading.Event()
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def query_recipients(self, device_id: str) -> List[Recipient]:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if device_id in self.gated:
                self.release.wait(timeout=5)
            time.sleep(self.delay)
            return super().query_recipients(device_id)
        finally:
            with self._lock:
                self.in_flight -= 1


class FakePush:
    """Canal push que registra envíos; ``failures`` mapea token -> excepción."""

    def __init__(self, failures: Optional[Dict[str, Exception]] = None):
        self.sent: List[tuple] = []
        self.failures = failures or {}

    def send(self, token: str, title: str, body: str) -> None:
        if token in self.failures:
            raise self.failures[token]
        self.sent.append((token, title, body))

    @property
    def tokens(self) -> List[str]:
        return [token for token, _, _ in self.sent]


class FakeVoice:
    """Canal de voz que registra llamadas; ``failing`` son números que fallan."""

    def __init__(self, failing: Sequence[str] = ()):
        self.calls: List[tuple] = []
        self.failing = set(failing)

    def place_call(self, number: str, script_ref: str) -> str:
        self.calls.append((number, script_ref))
        if number in self.failing:
            raise EscalationFailure(number, RuntimeError("busy"))
        return f"CA{len(self.calls):04d}"


class FakeClock:
    """Reloj manual en segundos epoch."""

    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
