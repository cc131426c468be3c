import asyncio
import threading

import pytest

from authkit.realtime.changes import (
    ChangeEvent,
    SubscriptionError,
    UserChange,
    UserChangeFeed,
)


@pytest.mark.asyncio
async def test_publish_reaches_only_matching_subscribers():
    feed = UserChangeFeed()
    alice = await feed.subscribe("alice")
    bob = await feed.subscribe("bob")

    delivered = feed.publish(UserChange(ChangeEvent.UPDATE, "alice", {"first_name": "Al"}))

    assert delivered == 1
    change = await asyncio.wait_for(alice.__anext__(), 1)
    assert change.record == {"first_name": "Al"}
    assert bob._queue.empty()
    alice.close()
    bob.close()


@pytest.mark.asyncio
async def test_close_ends_iteration_and_unregisters():
    feed = UserChangeFeed()
    subscription = await feed.subscribe("alice")
    assert feed.subscriber_count("alice") == 1

    subscription.close()
    subscription.close()

    received = [change async for change in subscription]
    assert received == []
    assert subscription.closed
    assert feed.subscriber_count() == 0
    assert feed.publish(UserChange(ChangeEvent.DELETE, "alice")) == 0


@pytest.mark.asyncio
async def test_disconnect_raises_subscription_error():
    feed = UserChangeFeed()
    subscription = await feed.subscribe("alice")

    feed.disconnect("alice", SubscriptionError("timed out"))

    with pytest.raises(SubscriptionError, match="timed out"):
        await asyncio.wait_for(subscription.__anext__(), 1)
    assert subscription.closed
    assert feed.subscriber_count() == 0


@pytest.mark.asyncio
async def test_publish_from_another_thread():
    feed = UserChangeFeed()
    subscription = await feed.subscribe("alice")

    worker = threading.Thread(
        target=feed.publish, args=(UserChange(ChangeEvent.DELETE, "alice"),)
    )
    worker.start()
    worker.join()

    change = await asyncio.wait_for(subscription.__anext__(), 1)
    assert change.event is ChangeEvent.DELETE
    subscription.close()
