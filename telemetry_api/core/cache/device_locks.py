from __future__ import annotations

import asyncio
from typing import Dict


class DeviceLockRegistry:
    """Un asyncio.Lock por device_id.

    Serializa las mutaciones de un mismo dispositivo sin bloquear a los demás.
    Debe usarse siempre desde el mismo event loop.

    Los locks no se eliminan nunca: uno por dispositivo visto durante la vida
    del proceso (unos cientos de bytes cada uno). Borrar un lock libre puede
    romper la exclusión si otra tarea ya fue despertada para adquirirlo.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, device_id: str) -> asyncio.Lock:
        lock = self._locks.get(device_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[device_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
