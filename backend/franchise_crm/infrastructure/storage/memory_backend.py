"""
In-Memory Backend
Process-local key-value store, used for development and tests
"""
from typing import Dict, Optional

from franchise_crm.domain.interfaces.kv_backend import KeyValueBackend


class MemoryBackend(KeyValueBackend):
    """Dict-backed store. Values are kept as the serialized strings."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def close(self) -> None:
        self._data.clear()

    @property
    def name(self) -> str:
        return "memory"

    def keys(self) -> list[str]:
        return list(self._data.keys())
