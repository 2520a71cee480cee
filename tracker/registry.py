# tracker/registry.py
from threading import RLock

from .exceptions import NotFound
from .schemas import DeviceEntry

class LiveRegistry:
    """Latest report per device. Volatile: lost on restart, emptied by clear()."""

    def __init__(self) -> None:
        self._entries: dict[str, DeviceEntry] = {}
        self._lock = RLock()

    def upsert(self, entry: DeviceEntry) -> DeviceEntry:
        with self._lock:
            self._entries[entry.deviceId] = entry
        return entry

    def replace_if_current(self, entry: DeviceEntry) -> bool:
        """Swap in ``entry`` only if the live entry is still the same report."""
        with self._lock:
            current = self._entries.get(entry.deviceId)
            if current is None or current.reportedAt != entry.reportedAt:
                return False
            self._entries[entry.deviceId] = entry
        return True

    def list_all(self) -> list[DeviceEntry]:
        with self._lock:
            return list(self._entries.values())

    def get_by_id(self, device_id: str) -> DeviceEntry:
        with self._lock:
            entry = self._entries.get(device_id)
        if entry is None:
            raise NotFound(device_id)
        return entry

    def clear(self) -> int:
        with self._lock:
            n = len(self._entries)
            self._entries = {}
        return n

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
