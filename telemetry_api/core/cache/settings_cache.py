"""Cache de configuración de alertas por dispositivo.

Se puebla de forma perezosa desde el directorio de usuarios: la primera
ficha que coincide con el device_id define los umbrales. Un resultado
vacío no se cachea, así la siguiente lectura vuelve a consultar.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from ..domain.settings import DeviceSettings, Recipient
from ...errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class RecipientDirectory(Protocol):
    def query_recipients(self, device_id: str) -> Sequence[Recipient]:
        ...


class DeviceSettingsCache:
    def __init__(self, directory: RecipientDirectory) -> None:
        self._directory = directory
        self._entries: Dict[str, DeviceSettings] = {}
        self._lock = threading.Lock()
        self._lookups = 0

    def peek(self, device_id: str) -> Optional[DeviceSettings]:
        with self._lock:
            return self._entries.get(device_id)

    async def get(self, device_id: str) -> Optional[DeviceSettings]:
        """Devuelve la configuración cacheada o la resuelve en el directorio.

        Raises:
            UpstreamUnavailable: si la consulta al directorio falla.
        """
        cached = self.peek(device_id)
        if cached is not None:
            return cached

        with self._lock:
            self._lookups += 1
        try:
            recipients = await asyncio.to_thread(self._directory.query_recipients, device_id)
        except Exception as e:
            raise UpstreamUnavailable("directory", e) from e

        if not recipients:
            logger.info("[SETTINGS] No recipients for device=%s, settings unresolved", device_id)
            return None

        # TODO: con varios destinatarios por dispositivo se ignoran los umbrales
        # del resto; decidir si cada ficha debe disparar de forma independiente.
        settings = recipients[0].to_settings()
        with self._lock:
            # Un update concurrente gana sobre la lectura del directorio
            settings = self._entries.setdefault(device_id, settings)
        logger.debug("[SETTINGS] Cached device=%s settings=%s", device_id, settings)
        return settings

    def update(self, device_id: str, partial_fields: Mapping[str, Any]) -> DeviceSettings:
        """Mezcla campos en la entrada cacheada (la crea si no existe).

        El llamador ya debe haber persistido estos campos en el directorio.
        """
        with self._lock:
            current = self._entries.get(device_id, DeviceSettings())
            merged = current.merge(partial_fields)
            self._entries[device_id] = merged
        logger.info("[SETTINGS] Updated device=%s settings=%s", device_id, merged)
        return merged

    def invalidate(self, device_id: str) -> None:
        with self._lock:
            self._entries.pop(device_id, None)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {"cached_devices": len(self._entries), "directory_lookups": self._lookups}
