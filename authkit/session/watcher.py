"""Revocation watcher for a live session.

Two independent triggers keep a session consistent with the server-side user
record: a change subscription (fast, may drop) and a periodic validation
(slow, always running while the session lives). Both end in the same
``on_revoked`` callback, which is invoked at most once per watcher.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from authkit.realtime.changes import (
    ChangeEvent,
    ChangeSubscription,
    SubscriptionError,
    UserChange,
)
from authkit.services.session import UNABLE_TO_VERIFY, SessionValidator

logger = logging.getLogger(__name__)

ACCOUNT_DELETED = "Your account has been deleted"
ACCOUNT_DEACTIVATED = "Your account has been deactivated"

Subscriber = Callable[[str], Awaitable[ChangeSubscription]]
RevokedCallback = Callable[[str], Awaitable[None]]
UpdateCallback = Callable[[dict[str, Any]], None]


class WatcherState(str, Enum):
    UNSUBSCRIBED = "UNSUBSCRIBED"
    SUBSCRIBING = "SUBSCRIBING"
    SUBSCRIBED = "SUBSCRIBED"
    ERROR = "ERROR"
    RECONNECTING = "RECONNECTING"
    TERMINATED = "TERMINATED"


class _Dropped(Exception):
    """The subscription failed after delivering changes; reconnect with a fresh budget."""


class RevocationWatcher:
    def __init__(
        self,
        user_id: str,
        *,
        subscribe: Subscriber,
        validate: SessionValidator,
        on_update: UpdateCallback,
        on_revoked: RevokedCallback,
        validation_interval: float = 300.0,
        reconnect_base_delay: float = 1.0,
        max_reconnect_attempts: int = 5,
    ):
        self.user_id = user_id
        self.validation_interval = validation_interval
        self.reconnect_base_delay = reconnect_base_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.state = WatcherState.UNSUBSCRIBED
        self.reconnect_attempts = 0

        self._subscribe = subscribe
        self._validate = validate
        self._on_update = on_update
        self._on_revoked = on_revoked
        self._tasks: set[asyncio.Task] = set()
        self._subscription: ChangeSubscription | None = None
        self._started = False
        self._revoked = False

    @property
    def active_handles(self) -> int:
        """Running timers/tasks plus open subscriptions."""
        open_subscription = self._subscription is not None and not self._subscription.closed
        return sum(1 for task in self._tasks if not task.done()) + int(open_subscription)

    @property
    def terminated(self) -> bool:
        return self.state is WatcherState.TERMINATED

    def start(self) -> None:
        if self._started:
            raise RuntimeError(f"Watcher for user {self.user_id} already started")
        self._started = True
        self._spawn(self._run_subscription(), "subscription")
        self._spawn(self._run_periodic_validation(), "validation")
        logger.debug("Revocation watcher started for user %s", self.user_id)

    async def stop(self) -> None:
        """Cancel every timer and close the subscription. Safe to call repeatedly."""
        if self.state is WatcherState.TERMINATED:
            return
        self.state = WatcherState.TERMINATED
        self._close_subscription()

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.debug("Revocation watcher stopped for user %s", self.user_id)

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.get_running_loop().create_task(
            coro, name=f"revocation-{name}-{self.user_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    async def _revoke(self, reason: str) -> None:
        # Check-and-set without an await in between: only the first trigger passes.
        if self._revoked or self.terminated:
            return
        self._revoked = True
        logger.info("Session of user %s revoked: %s", self.user_id, reason)
        await self.stop()
        try:
            await self._on_revoked(reason)
        except Exception:
            logger.exception("Revocation handler failed for user %s", self.user_id)

    def _reconnect_policy(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(SubscriptionError),
            wait=wait_exponential(multiplier=self.reconnect_base_delay),
            stop=stop_after_attempt(self.max_reconnect_attempts + 1),
            before_sleep=self._before_reconnect,
            sleep=asyncio.sleep,
            reraise=True,
        )

    def _before_reconnect(self, retry_state: RetryCallState) -> None:
        self.reconnect_attempts = retry_state.attempt_number
        self.state = WatcherState.RECONNECTING
        logger.warning(
            "Change subscription for user %s failed (attempt %d), retrying in %.2fs: %s",
            self.user_id,
            retry_state.attempt_number,
            retry_state.next_action.sleep if retry_state.next_action else 0,
            retry_state.outcome.exception() if retry_state.outcome else None,
        )

    async def _run_subscription(self) -> None:
        while not self.terminated:
            try:
                async for attempt in self._reconnect_policy():
                    with attempt:
                        await self._listen()
                return
            except _Dropped:
                continue
            except SubscriptionError as exc:
                if not self.terminated:
                    logger.warning(
                        "Giving up on change subscription for user %s after %d attempts; "
                        "periodic validation continues: %s",
                        self.user_id, self.reconnect_attempts, exc,
                    )
                return

    async def _listen(self) -> None:
        """
        Subscribe and apply changes until the session is revoked or the feed closes.

        Raises:
            SubscriptionError: The subscription failed before delivering anything.
            _Dropped: The subscription failed after delivering changes.
        """
        if self.terminated:
            return
        self.state = WatcherState.SUBSCRIBING
        received = False
        try:
            subscription = await self._subscribe(self.user_id)
            if self.terminated:
                subscription.close()
                return
            self._subscription = subscription
            self.state = WatcherState.SUBSCRIBED
            async for change in subscription:
                received = True
                self.reconnect_attempts = 0
                if await self._handle_change(change):
                    return
        except Exception as exc:
            if self.terminated:
                return
            self._close_subscription()
            self.state = WatcherState.ERROR
            if not isinstance(exc, SubscriptionError):
                logger.exception("Change subscription for user %s broke", self.user_id)
            if received:
                raise _Dropped() from exc
            if isinstance(exc, SubscriptionError):
                raise
            raise SubscriptionError(str(exc)) from exc

    async def _handle_change(self, change: UserChange) -> bool:
        """Apply one change. Returns True when it revoked the session."""
        if change.event is ChangeEvent.DELETE:
            await self._revoke(ACCOUNT_DELETED)
            return True

        record = change.record or {}
        if record.get("is_active") is False:
            await self._revoke(ACCOUNT_DEACTIVATED)
            return True

        try:
            self._on_update(record)
        except Exception:
            logger.exception("Profile update handler failed for user %s", self.user_id)
        return False

    async def _run_periodic_validation(self) -> None:
        while not self.terminated:
            await asyncio.sleep(self.validation_interval)
            if self.terminated:
                return
            try:
                result = await self._validate(self.user_id)
            except Exception:
                logger.exception("Periodic validation failed for user %s", self.user_id)
                await self._revoke(UNABLE_TO_VERIFY)
                return
            if not result.is_valid:
                await self._revoke(result.reason or UNABLE_TO_VERIFY)
                return
