"""
Change Notifier Factory
"""
from typing import Dict, Type

from franchise_crm.domain.interfaces.change_notifier import ChangeNotifier
from franchise_crm.infrastructure.notifications.memory_notifier import MemoryNotifier
from franchise_crm.infrastructure.notifications.redis_notifier import RedisNotifier


class NotifierFactory:
    """Factory for creating change notifier instances"""

    _notifiers: Dict[str, Type[ChangeNotifier]] = {}

    @classmethod
    async def create(cls, notifier_name: str, config: dict) -> ChangeNotifier:
        """Create and initialize a notifier instance"""
        if notifier_name not in cls._notifiers:
            available = ", ".join(cls._notifiers.keys()) if cls._notifiers else "None"
            raise ValueError(f"Unknown notifier: {notifier_name}. Available: {available}")

        notifier_class = cls._notifiers[notifier_name]
        if notifier_class is RedisNotifier:
            notifier = RedisNotifier(
                redis_url=config.get("redis_url", "redis://localhost:6379"),
                namespace=config.get("key_namespace", "crm:")
            )
            await notifier.initialize()
            return notifier
        return notifier_class()

    @classmethod
    def register(cls, name: str, notifier_class: Type[ChangeNotifier]) -> None:
        """Register a notifier"""
        cls._notifiers[name] = notifier_class

    @classmethod
    def list_notifiers(cls) -> list[str]:
        """List available notifiers"""
        return list(cls._notifiers.keys())


NotifierFactory.register("memory", MemoryNotifier)
NotifierFactory.register("redis", RedisNotifier)
