"""
Storage Backend Factory
"""
from typing import Dict, Type

from franchise_crm.domain.interfaces.kv_backend import KeyValueBackend
from franchise_crm.infrastructure.storage.memory_backend import MemoryBackend
from franchise_crm.infrastructure.storage.redis_backend import RedisBackend


class StorageFactory:
    """Factory for creating persistence backend instances"""

    _backends: Dict[str, Type[KeyValueBackend]] = {}

    @classmethod
    async def create(cls, backend_name: str, config: dict) -> KeyValueBackend:
        """Create and initialize a backend instance"""
        if backend_name not in cls._backends:
            available = ", ".join(cls._backends.keys()) if cls._backends else "None"
            raise ValueError(f"Unknown storage backend: {backend_name}. Available: {available}")

        backend_class = cls._backends[backend_name]
        if backend_class is RedisBackend:
            backend = RedisBackend(redis_url=config.get("redis_url", "redis://localhost:6379"))
            await backend.initialize()
            return backend
        return backend_class()

    @classmethod
    def register(cls, name: str, backend_class: Type[KeyValueBackend]) -> None:
        """Register a backend"""
        cls._backends[name] = backend_class

    @classmethod
    def list_backends(cls) -> list[str]:
        """List available backends"""
        return list(cls._backends.keys())


StorageFactory.register("memory", MemoryBackend)
StorageFactory.register("redis", RedisBackend)
