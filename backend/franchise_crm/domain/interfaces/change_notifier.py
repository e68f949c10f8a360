"""
Change Notifier Interface
Abstract base class for cross-view change notification
"""
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from franchise_crm.domain.models.change_event import ChangeEvent


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


class Subscription(ABC):
    """Handle returned by ChangeNotifier.subscribe"""

    @abstractmethod
    async def cancel(self) -> None:
        """Stop delivery. No callback fires after cancel() returns."""
        pass


class ChangeNotifier(ABC):
    """
    Abstract base class for change notifiers.

    Delivery is best-effort and at-least-once; there is no ordering
    guarantee across tenants. Subscribers re-read the partition through
    the aggregation gateway when notified.
    """

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """
        Announce that a (module, tenant) partition changed.

        Args:
            event: The change that was persisted
        """
        pass

    @abstractmethod
    async def subscribe(self, module: str, callback: ChangeCallback) -> Subscription:
        """
        Register callback for changes to any tenant's partition of module.

        Args:
            module: Module value, e.g. "vendor"
            callback: Coroutine function invoked with each ChangeEvent

        Returns:
            Subscription handle
        """
        pass

    async def close(self) -> None:
        """Release notifier resources"""
        pass
