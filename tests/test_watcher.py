import asyncio

import pytest

from authkit.realtime.changes import (
    ChangeEvent,
    SubscriptionError,
    UserChange,
    UserChangeFeed,
)
from authkit.services.session import UNABLE_TO_VERIFY, SessionValidation
from authkit.session.watcher import (
    ACCOUNT_DEACTIVATED,
    ACCOUNT_DELETED,
    RevocationWatcher,
    WatcherState,
)

USER_ID = "6f1c2d4e-0000-4000-8000-000000000001"


class Recorder:
    def __init__(self):
        self.revoked: list[str] = []
        self.updates: list[dict] = []

    async def on_revoked(self, reason: str) -> None:
        self.revoked.append(reason)

    def on_update(self, record: dict) -> None:
        self.updates.append(record)


def always_valid():
    async def validate(user_id: str) -> SessionValidation:
        return SessionValidation(is_valid=True)

    return validate


def make_watcher(feed_subscribe, recorder: Recorder, validate=None, **kwargs) -> RevocationWatcher:
    kwargs.setdefault("validation_interval", 60)
    kwargs.setdefault("reconnect_base_delay", 0.001)
    return RevocationWatcher(
        USER_ID,
        subscribe=feed_subscribe,
        validate=validate or always_valid(),
        on_update=recorder.on_update,
        on_revoked=recorder.on_revoked,
        **kwargs,
    )


async def wait_for(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


# ============================================================================
# CHANGE SUBSCRIPTION TRIGGER
# ============================================================================


@pytest.mark.asyncio
async def test_delete_notification_revokes():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    feed.publish(UserChange(ChangeEvent.DELETE, USER_ID))
    await wait_for(lambda: recorder.revoked)

    assert recorder.revoked == [ACCOUNT_DELETED]
    assert watcher.state is WatcherState.TERMINATED
    await wait_for(lambda: watcher.active_handles == 0)
    assert feed.subscriber_count() == 0


@pytest.mark.asyncio
async def test_deactivation_notification_revokes():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    feed.publish(UserChange(ChangeEvent.UPDATE, USER_ID, {"id": USER_ID, "is_active": False}))
    await wait_for(lambda: recorder.revoked)

    assert recorder.revoked == [ACCOUNT_DEACTIVATED]
    assert recorder.updates == []


@pytest.mark.asyncio
async def test_other_updates_refresh_profile():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    record = {"id": USER_ID, "first_name": "Renamed", "is_active": True}
    feed.publish(UserChange(ChangeEvent.UPDATE, USER_ID, record))
    await wait_for(lambda: recorder.updates)

    assert recorder.updates == [record]
    assert recorder.revoked == []
    assert watcher.state is WatcherState.SUBSCRIBED
    await watcher.stop()


@pytest.mark.asyncio
async def test_changes_for_other_users_are_ignored():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    assert feed.publish(UserChange(ChangeEvent.DELETE, "someone-else")) == 0
    await asyncio.sleep(0.05)

    assert recorder.revoked == []
    await watcher.stop()


# ============================================================================
# PERIODIC VALIDATION TRIGGER
# ============================================================================


@pytest.mark.asyncio
async def test_periodic_validation_revokes_invalid_session():
    feed, recorder = UserChangeFeed(), Recorder()
    checks = []

    async def validate(user_id: str) -> SessionValidation:
        checks.append(user_id)
        if len(checks) < 3:
            return SessionValidation(is_valid=True)
        return SessionValidation(is_valid=False, reason=ACCOUNT_DEACTIVATED)

    watcher = make_watcher(feed.subscribe, recorder, validate, validation_interval=0.01)
    watcher.start()
    await wait_for(lambda: recorder.revoked)

    assert checks == [USER_ID] * 3
    assert recorder.revoked == [ACCOUNT_DEACTIVATED]
    await wait_for(lambda: watcher.active_handles == 0)


@pytest.mark.asyncio
async def test_validation_error_revokes_with_generic_reason():
    feed, recorder = UserChangeFeed(), Recorder()

    async def validate(user_id: str) -> SessionValidation:
        raise ConnectionError("database unreachable")

    watcher = make_watcher(feed.subscribe, recorder, validate, validation_interval=0.01)
    watcher.start()
    await wait_for(lambda: recorder.revoked)

    assert recorder.revoked == [UNABLE_TO_VERIFY]


@pytest.mark.asyncio
async def test_validation_keeps_running_after_subscription_gives_up():
    recorder = Recorder()
    attempts = []
    validations = []

    async def subscribe(user_id: str):
        attempts.append(user_id)
        raise SubscriptionError("channel error")

    async def validate(user_id: str) -> SessionValidation:
        validations.append(user_id)
        if len(validations) < 5:
            return SessionValidation(is_valid=True)
        return SessionValidation(is_valid=False, reason=ACCOUNT_DEACTIVATED)

    watcher = make_watcher(
        subscribe, recorder, validate,
        validation_interval=0.05, max_reconnect_attempts=5,
    )
    watcher.start()

    await wait_for(lambda: watcher.reconnect_attempts == 5 and len(attempts) == 6)
    await asyncio.sleep(0.02)
    # Initial attempt plus five reconnects, then no more
    assert len(attempts) == 6
    assert watcher.state is WatcherState.ERROR

    await wait_for(lambda: recorder.revoked)
    assert recorder.revoked == [ACCOUNT_DEACTIVATED]
    assert len(attempts) == 6


@pytest.mark.asyncio
async def test_reconnect_delay_doubles(monkeypatch):
    recorder = Recorder()
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay, *args, **kwargs):
        # Only reconnect delays are shortened; polling and validation sleep normally
        if 1 <= delay < 1000:
            delays.append(delay)
            await real_sleep(0)
        else:
            await real_sleep(delay, *args, **kwargs)

    async def subscribe(user_id: str):
        raise SubscriptionError("channel error")

    monkeypatch.setattr("authkit.session.watcher.asyncio.sleep", fake_sleep)
    watcher = make_watcher(
        subscribe, recorder, validation_interval=1000, reconnect_base_delay=1.0
    )
    watcher.start()
    await wait_for(lambda: watcher.reconnect_attempts == 5)
    for _ in range(5):
        await real_sleep(0)
    await watcher.stop()

    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0]


@pytest.mark.asyncio
async def test_successful_reconnect_resumes_notifications():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    feed.disconnect(USER_ID)
    await wait_for(lambda: watcher.reconnect_attempts == 1)
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    feed.publish(UserChange(ChangeEvent.UPDATE, USER_ID, {"id": USER_ID, "is_active": True}))
    await wait_for(lambda: recorder.updates)
    assert watcher.reconnect_attempts == 0

    feed.publish(UserChange(ChangeEvent.DELETE, USER_ID))
    await wait_for(lambda: recorder.revoked)
    assert recorder.revoked == [ACCOUNT_DELETED]


# ============================================================================
# IDEMPOTENCE AND TEARDOWN
# ============================================================================


@pytest.mark.asyncio
async def test_simultaneous_triggers_revoke_once():
    feed, recorder = UserChangeFeed(), Recorder()
    released = asyncio.Event()

    async def validate(user_id: str) -> SessionValidation:
        await released.wait()
        return SessionValidation(is_valid=False, reason=ACCOUNT_DEACTIVATED)

    watcher = make_watcher(feed.subscribe, recorder, validate, validation_interval=0)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    feed.publish(UserChange(ChangeEvent.DELETE, USER_ID))
    released.set()
    await wait_for(lambda: watcher.terminated)
    await asyncio.sleep(0.05)

    assert len(recorder.revoked) == 1
    assert watcher.active_handles == 0


@pytest.mark.asyncio
async def test_stop_releases_everything_and_is_idempotent():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)
    assert watcher.active_handles == 3
    assert feed.subscriber_count(USER_ID) == 1

    await watcher.stop()
    await watcher.stop()

    assert watcher.state is WatcherState.TERMINATED
    assert watcher.active_handles == 0
    assert feed.subscriber_count() == 0

    # Terminated is absorbing
    feed.publish(UserChange(ChangeEvent.DELETE, USER_ID))
    await asyncio.sleep(0.02)
    assert recorder.revoked == []
    assert watcher.state is WatcherState.TERMINATED


@pytest.mark.asyncio
async def test_start_twice_is_rejected():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)
    watcher.start()
    with pytest.raises(RuntimeError):
        watcher.start()
    await watcher.stop()
    assert feed.subscriber_count() == 0


@pytest.mark.asyncio
async def test_second_start_before_subscribing_opens_no_extra_subscription():
    feed, recorder = UserChangeFeed(), Recorder()
    watcher = make_watcher(feed.subscribe, recorder)

    watcher.start()
    # The first start has not reached its subscribe call yet
    assert watcher.state is WatcherState.UNSUBSCRIBED
    with pytest.raises(RuntimeError):
        watcher.start()

    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)
    assert feed.subscriber_count(USER_ID) == 1
    assert watcher.active_handles == 3

    await watcher.stop()
    assert watcher.active_handles == 0
    assert feed.subscriber_count() == 0


# ============================================================================
# UNEXPECTED FAILURES
# ============================================================================


@pytest.mark.asyncio
async def test_unexpected_subscribe_error_is_retried():
    feed, recorder = UserChangeFeed(), Recorder()
    attempts = []

    async def subscribe(user_id: str):
        attempts.append(user_id)
        if len(attempts) == 1:
            raise RuntimeError("socket reset by peer")
        return await feed.subscribe(user_id)

    watcher = make_watcher(subscribe, recorder)
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    assert len(attempts) == 2
    feed.publish(UserChange(ChangeEvent.DELETE, USER_ID))
    await wait_for(lambda: recorder.revoked)
    assert recorder.revoked == [ACCOUNT_DELETED]
    await wait_for(lambda: watcher.active_handles == 0)


@pytest.mark.asyncio
async def test_persistent_unexpected_error_ends_in_error_state():
    recorder = Recorder()
    attempts = []

    async def subscribe(user_id: str):
        attempts.append(user_id)
        raise ValueError("malformed channel payload")

    watcher = make_watcher(subscribe, recorder, max_reconnect_attempts=2)
    watcher.start()
    await wait_for(lambda: len(attempts) == 3 and watcher.state is WatcherState.ERROR)
    await asyncio.sleep(0.02)

    assert len(attempts) == 3
    assert watcher.reconnect_attempts == 2
    # Periodic validation is still scheduled
    assert watcher.active_handles == 1
    await watcher.stop()
    assert watcher.active_handles == 0


@pytest.mark.asyncio
async def test_failing_update_handler_keeps_subscription_alive():
    feed, recorder = UserChangeFeed(), Recorder()
    seen = []

    def on_update(record: dict) -> None:
        seen.append(record)
        raise KeyError("first_name")

    watcher = RevocationWatcher(
        USER_ID,
        subscribe=feed.subscribe,
        validate=always_valid(),
        on_update=on_update,
        on_revoked=recorder.on_revoked,
        validation_interval=60,
        reconnect_base_delay=0.001,
    )
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    feed.publish(UserChange(ChangeEvent.UPDATE, USER_ID, {"id": USER_ID, "is_active": True}))
    await wait_for(lambda: seen)
    assert watcher.state is WatcherState.SUBSCRIBED

    feed.publish(UserChange(ChangeEvent.DELETE, USER_ID))
    await wait_for(lambda: recorder.revoked)
    assert recorder.revoked == [ACCOUNT_DELETED]


@pytest.mark.asyncio
async def test_failing_revoked_handler_still_tears_down():
    feed = UserChangeFeed()
    calls = []

    async def on_revoked(reason: str) -> None:
        calls.append(reason)
        raise RuntimeError("navigation unavailable")

    watcher = RevocationWatcher(
        USER_ID,
        subscribe=feed.subscribe,
        validate=always_valid(),
        on_update=lambda record: None,
        on_revoked=on_revoked,
        validation_interval=60,
    )
    watcher.start()
    await wait_for(lambda: watcher.state is WatcherState.SUBSCRIBED)

    feed.publish(UserChange(ChangeEvent.DELETE, USER_ID))
    await wait_for(lambda: calls)
    await wait_for(lambda: watcher.active_handles == 0)

    assert calls == [ACCOUNT_DELETED]
    assert watcher.terminated
    assert feed.subscriber_count() == 0
