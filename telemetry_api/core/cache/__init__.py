"""Caches en memoria del proceso (inyectadas, nunca globales)."""

from .device_locks import DeviceLockRegistry
from .rolling_cache import LiveEntry, RollingCacheStore
from .settings_cache import DeviceSettingsCache, RecipientDirectory

__all__ = [
    "DeviceLockRegistry",
    "LiveEntry",
    "RollingCacheStore",
    "DeviceSettingsCache",
    "RecipientDirectory",
]
