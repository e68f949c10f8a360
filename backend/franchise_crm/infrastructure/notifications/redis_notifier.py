"""
Redis Change Notifier
Publishes partition changes over Redis pub/sub so every API process sees them

Channels:
- {namespace}changes:{module}:{tenant_id} - one channel per partition
Subscribers pattern-subscribe to {namespace}changes:{module}:*
"""
import asyncio
import json
import logging
from typing import Callable, Optional

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError

from franchise_crm.domain.interfaces.change_notifier import (
    ChangeCallback,
    ChangeNotifier,
    Subscription,
)
from franchise_crm.domain.models.change_event import ChangeEvent

logger = logging.getLogger(__name__)


class RedisSubscription(Subscription):
    """Pattern subscription drained by a background listener task."""

    def __init__(
        self,
        pubsub,
        pattern: str,
        task: Optional[asyncio.Task] = None,
        on_cancel: Optional[Callable[["RedisSubscription"], None]] = None
    ):
        self._pubsub = pubsub
        self.pattern = pattern
        self.task = task
        self.active = True
        self._on_cancel = on_cancel

    async def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_cancel is not None:
            self._on_cancel(self)

        if self.task is not None and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        try:
            await self._pubsub.punsubscribe(self.pattern)
            await self._pubsub.aclose()
        except redis.RedisError as e:
            logger.warning(f"Error closing subscription {self.pattern}: {e}")


class RedisNotifier(ChangeNotifier):
    """Redis pub/sub implementation of ChangeNotifier."""

    CHANNEL_TEMPLATE = "{namespace}changes:{module}:{tenant_id}"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        namespace: str = "crm:",
        redis_client=None
    ):
        self._redis_url = redis_url
        self._namespace = namespace
        self._redis = redis_client
        self._subscriptions: list[RedisSubscription] = []

    async def initialize(self) -> None:
        """Connect to Redis if a client was not provided."""
        if self._redis is not None:
            return

        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True
        )
        await self._redis.ping()
        logger.info(f"RedisNotifier connected to Redis: {self._redis_url}")

    def channel_for(self, module: str, tenant_id: str) -> str:
        return self.CHANNEL_TEMPLATE.format(
            namespace=self._namespace, module=module, tenant_id=tenant_id
        )

    def pattern_for(self, module: str) -> str:
        return self.CHANNEL_TEMPLATE.format(
            namespace=self._namespace, module=module, tenant_id="*"
        )

    async def publish(self, event: ChangeEvent) -> None:
        channel = self.channel_for(event.module, event.tenant_id)
        await self._redis.publish(channel, event.to_json())
        logger.debug(f"Published {event.operation} on {channel}")

    async def subscribe(self, module: str, callback: ChangeCallback) -> Subscription:
        pattern = self.pattern_for(module)
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(pattern)

        subscription = RedisSubscription(pubsub, pattern, on_cancel=self._remove)
        subscription.task = asyncio.create_task(self._listen(subscription, callback))
        self._subscriptions.append(subscription)

        logger.info(f"Listening for changes on {pattern}")
        return subscription

    def _remove(self, subscription: RedisSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def subscriber_count(self, module: Optional[str] = None) -> int:
        if module is None:
            return len(self._subscriptions)
        pattern = self.pattern_for(module)
        return sum(1 for s in self._subscriptions if s.pattern == pattern)

    async def _listen(self, subscription: RedisSubscription, callback: ChangeCallback) -> None:
        """Drain the pubsub connection and hand events to callback."""
        try:
            async for message in subscription._pubsub.listen():
                if not subscription.active:
                    break

                if message["type"] != "pmessage":
                    continue

                try:
                    event = ChangeEvent.from_json(message["data"])
                except (PydanticValidationError, json.JSONDecodeError) as e:
                    logger.error(f"Invalid change event on {message.get('channel')}: {e}")
                    continue

                try:
                    await callback(event)
                except Exception as e:
                    logger.error(f"Change subscriber failed: {e}", exc_info=True)

        except asyncio.CancelledError:
            logger.debug(f"Listener for {subscription.pattern} cancelled")
            raise

    async def close(self) -> None:
        # cancel() removes each subscription from the list
        for subscription in list(self._subscriptions):
            await subscription.cancel()
        self._subscriptions.clear()

        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("RedisNotifier connection closed")
