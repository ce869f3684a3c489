"""Buffering and dispatch of subscription push messages.

A server may start pushing values for a subscription before the client has
learnt the subscription id (the id arrives in the response to the subscribe
call, and the push frames can overtake it). Values are therefore collected
per subscription id until a handler is registered, and replayed in arrival
order once it is.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Callable

from qubit.jsonrpc import RequestId, SubscriptionMessage

logger = logging.getLogger(__name__)

SubscriptionHandler = Callable[[Any], None]

# How many removed ids are remembered for dropping late pushes
REMOVED_HISTORY = 128


class Subscription:
    """State for one subscription id: pending values and the handler."""
    __slots__ = ("queue", "handler")

    def __init__(self) -> None:
        self.queue: list[Any] = []
        self.handler: SubscriptionHandler | None = None


class SubscriptionManager:
    """Registry of subscriptions keyed by subscription id."""

    __slots__ = ("_subscriptions", "_removed")

    def __init__(self) -> None:
        self._subscriptions: dict[RequestId, Subscription] = {}
        # Recently removed ids, oldest first; late values for them are dropped
        self._removed: OrderedDict[RequestId, None] = OrderedDict()

    def _get(self, id: RequestId) -> Subscription:
        subscription = self._subscriptions.get(id)
        if subscription is None:
            subscription = self._subscriptions[id] = Subscription()
        return subscription

    def handle(self, message: SubscriptionMessage) -> None:
        """Handle an incoming push message."""
        if message.subscription_id in self._removed:
            logger.debug("Dropping message for removed subscription %r", message.subscription_id)
            return

        subscription = self._get(message.subscription_id)

        if subscription.handler is None:
            subscription.queue.append(message.value)
            return

        subscription.handler(message.value)

    def register(self, id: RequestId, handler: SubscriptionHandler) -> bool:
        """Attach the handler for ``id`` and replay anything buffered so far.

        Only the first registration for an id is accepted; later ones are
        logged and ignored.

        Returns:
            True if the handler was attached
        """
        self._removed.pop(id, None)
        subscription = self._get(id)

        if subscription.handler is not None:
            logger.error(
                "attempted to subscribe to a subscription multiple times (subscription ID: %r)",
                id,
            )
            return False

        subscription.handler = handler

        queue, subscription.queue = subscription.queue, []
        for value in queue:
            if self._subscriptions.get(id) is not subscription:
                break
            handler(value)

        return True

    def remove(self, id: RequestId) -> None:
        """Forget the subscription ``id`` entirely."""
        self._subscriptions.pop(id, None)
        self._removed[id] = None
        self._removed.move_to_end(id)
        if len(self._removed) > REMOVED_HISTORY:
            self._removed.popitem(last=False)

    def pending(self, id: RequestId) -> list[Any]:
        """Values buffered for ``id`` that no handler has seen yet."""
        subscription = self._subscriptions.get(id)
        return list(subscription.queue) if subscription else []

    def __contains__(self, id: object) -> bool:
        return id in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)
