"""
In-Memory Change Notifier
Fans change events out to subscribers inside the current process
"""
import logging
from typing import Dict, List

from franchise_crm.domain.interfaces.change_notifier import (
    ChangeCallback,
    ChangeNotifier,
    Subscription,
)
from franchise_crm.domain.models.change_event import ChangeEvent

logger = logging.getLogger(__name__)


class MemorySubscription(Subscription):
    def __init__(self, notifier: "MemoryNotifier", module: str, callback: ChangeCallback):
        self._notifier = notifier
        self.module = module
        self.callback = callback
        self.active = True

    async def cancel(self) -> None:
        if self.active:
            self.active = False
            self._notifier._remove(self)


class MemoryNotifier(ChangeNotifier):
    """
    Process-local notifier.

    Callbacks are awaited in subscription order inside the publishing
    write, so they must hand slow I/O to their own task (see ChangeOutbox
    in the change stream). A failing callback is logged and skipped; the
    remaining subscribers still receive the event.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[MemorySubscription]] = {}

    async def publish(self, event: ChangeEvent) -> None:
        # Copy: callbacks may cancel their own subscription
        for sub in list(self._subscribers.get(event.module, [])):
            if not sub.active:
                continue
            try:
                await sub.callback(event)
            except Exception as e:
                logger.error(
                    f"Change subscriber failed for {event.module}/{event.tenant_id}: {e}",
                    exc_info=True
                )

    async def subscribe(self, module: str, callback: ChangeCallback) -> Subscription:
        sub = MemorySubscription(self, module, callback)
        self._subscribers.setdefault(module, []).append(sub)
        logger.debug(f"Subscribed to {module} changes ({len(self._subscribers[module])} active)")
        return sub

    def _remove(self, sub: MemorySubscription) -> None:
        subs = self._subscribers.get(sub.module, [])
        if sub in subs:
            subs.remove(sub)

    def subscriber_count(self, module: str) -> int:
        return len(self._subscribers.get(module, []))

    async def close(self) -> None:
        for subs in self._subscribers.values():
            for sub in subs:
                sub.active = False
        self._subscribers.clear()
