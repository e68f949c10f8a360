"""
Key-Value Backend Interface
Abstract base class for partition persistence backends
"""
from abc import ABC, abstractmethod
from typing import Optional


class KeyValueBackend(ABC):
    """
    Abstract base class for persistence backends.

    A backend stores opaque string values (serialized JSON arrays) under
    string keys. `set` must replace the whole value in one operation so a
    reader never observes a partially written partition.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under key.

        Returns:
            The stored string, or None when the key is absent
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Replace the value stored under key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Removing a missing key is not an error."""
        pass

    async def close(self) -> None:
        """Release backend resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name for logging"""
        pass
