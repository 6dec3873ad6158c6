from __future__ import annotations

from typing import Dict, Optional

from duesync.domain.common.ports import KeyValueStore


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)
