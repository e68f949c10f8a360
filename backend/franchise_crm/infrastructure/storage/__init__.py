"""Partition persistence backends"""
from .memory_backend import MemoryBackend
from .redis_backend import RedisBackend
from .factory import StorageFactory

__all__ = ["MemoryBackend", "RedisBackend", "StorageFactory"]
