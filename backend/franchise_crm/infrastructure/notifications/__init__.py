"""Change notifiers"""
from .memory_notifier import MemoryNotifier
from .redis_notifier import RedisNotifier
from .factory import NotifierFactory

__all__ = ["MemoryNotifier", "RedisNotifier", "NotifierFactory"]
