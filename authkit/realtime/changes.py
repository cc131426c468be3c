"""In-process change notifications for user records.

Publishers (the user service, from request threads) call
:meth:`UserChangeFeed.publish`; subscribers (session clients, on an asyncio
loop) iterate a :class:`ChangeSubscription`. Delivery is thread-safe.
"""

import asyncio
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ChangeEvent(str, Enum):
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class UserChange:
    event: ChangeEvent
    user_id: str
    record: dict[str, Any] | None = field(default=None)


class SubscriptionError(Exception):
    """Transport-level failure of a change subscription."""


_CLOSED = object()


class ChangeSubscription:
    """Async iterator over the changes of one user record."""

    def __init__(self, feed: "UserChangeFeed", user_id: str, loop: asyncio.AbstractEventLoop):
        self.user_id = user_id
        self.closed = False
        self._feed = feed
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()

    def __aiter__(self):
        return self

    async def __anext__(self) -> UserChange:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            self.close()
            raise item
        return item

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)
        self._deliver(_CLOSED)

    def _deliver(self, item: Any) -> bool:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Event loop already closed; nobody is listening anymore.
            return False
        return True


class UserChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[ChangeSubscription]] = defaultdict(list)

    async def subscribe(self, user_id: str) -> ChangeSubscription:
        subscription = ChangeSubscription(self, user_id, asyncio.get_running_loop())
        with self._lock:
            self._subscribers[user_id].append(subscription)
        logger.debug("Subscribed to changes of user %s", user_id)
        return subscription

    def publish(self, change: UserChange) -> int:
        """Deliver a change to every subscriber of its user. Returns the delivery count."""
        with self._lock:
            targets = list(self._subscribers.get(change.user_id, ()))
        delivered = 0
        for subscription in targets:
            if subscription._deliver(change):
                delivered += 1
            else:
                self._remove(subscription)
        logger.debug(
            "Published %s for user %s to %d subscriber(s)",
            change.event.value, change.user_id, delivered,
        )
        return delivered

    def disconnect(self, user_id: str, error: SubscriptionError | None = None) -> None:
        """Fail every subscription of a user with a transport error."""
        error = error or SubscriptionError("Change feed connection lost")
        with self._lock:
            targets = self._subscribers.pop(user_id, [])
        for subscription in targets:
            subscription._deliver(error)

    def subscriber_count(self, user_id: str | None = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._subscribers.get(user_id, ()))
            return sum(len(subs) for subs in self._subscribers.values())

    def _remove(self, subscription: ChangeSubscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.user_id)
            if subs and subscription in subs:
                subs.remove(subscription)
                if not subs:
                    del self._subscribers[subscription.user_id]
