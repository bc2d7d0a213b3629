import asyncio

import pytest

from cuizly_sync.core.identity import ResourceIdentity, RowFilter
from cuizly_sync.core.lifetime import ViewScope
from cuizly_sync.core.subscriptions import SubscriptionManager, SubscriptionState
from cuizly_sync.errors import RemoteStoreError, ScopeClosedError

IDENTITY = ResourceIdentity("favorites", "u1")


def test_subscribe_and_unsubscribe_exactly_once(store):
    manager = SubscriptionManager(store)

    async def scenario():
        handle = await manager.subscribe(IDENTITY, "user_favorites", lambda e: None)
        assert handle.state == SubscriptionState.SUBSCRIBED
        assert handle.channel_id.startswith("favorites:u1:user_favorites:")
        assert len(store.open_channels) == 1
        assert await manager.unsubscribe(handle) is True
        assert await manager.unsubscribe(handle) is False
        return handle

    handle = asyncio.run(scenario())
    assert handle.state == SubscriptionState.CLOSED
    assert store.open_channels == []
    assert store.count("close_channel") == 1
    assert manager.opened_total == manager.closed_total == 1


def test_channels_close_with_their_scope(store):
    manager = SubscriptionManager(store)

    async def scenario():
        async with ViewScope("page") as scope:
            await manager.bind(scope, IDENTITY, "user_favorites", lambda e: None)
            await manager.bind(scope, ResourceIdentity("notifications", "u1"), "notifications", lambda e: None)
            assert manager.open_count == 2

    asyncio.run(scenario())
    assert manager.open_count == 0
    assert store.open_channels == []


def test_channels_close_when_scope_body_raises(store):
    manager = SubscriptionManager(store)

    async def scenario():
        async with ViewScope("page") as scope:
            await manager.bind(scope, IDENTITY, "user_favorites", lambda e: None)
            raise RuntimeError("view crashed")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    assert store.open_channels == []


def test_predicate_filters_events(store):
    manager = SubscriptionManager(store)
    received = []

    async def scenario():
        async with manager.subscription(
            IDENTITY, "user_favorites", received.append, predicate=RowFilter.eq("user_id", "u1")
        ):
            store.emit("user_favorites", "INSERT", new={"id": 1, "user_id": "u2", "restaurant_id": "r1"})
            store.emit("user_favorites", "INSERT", new={"id": 2, "user_id": "u1", "restaurant_id": "r1"})
            # DELETE payloads may only carry the primary key
            store.emit("user_favorites", "DELETE", old={"id": 2})
            store.emit("notifications", "INSERT", new={"id": 3, "user_id": "u1"})

    asyncio.run(scenario())
    assert [(e.event_type, e.row_id) for e in received] == [("INSERT", 2), ("DELETE", 2)]


def test_event_type_filter(store):
    manager = SubscriptionManager(store)
    received = []

    async def scenario():
        async with manager.subscription(IDENTITY, "notifications", received.append, events=("INSERT",)):
            store.emit("notifications", "UPDATE", new={"id": 1, "user_id": "u1"})
            store.emit("notifications", "INSERT", new={"id": 2, "user_id": "u1"})

    asyncio.run(scenario())
    assert [e.event_type for e in received] == ["INSERT"]


def test_no_events_after_unsubscribe(store):
    manager = SubscriptionManager(store)
    received = []

    async def scenario():
        handle = await manager.subscribe(IDENTITY, "user_favorites", received.append)
        channel = handle.channel
        await manager.unsubscribe(handle)
        # A late delivery from the transport
        channel.on_event(object())

    asyncio.run(scenario())
    assert received == []


def test_failing_handler_keeps_channel_open(store):
    manager = SubscriptionManager(store)

    def broken(event):
        raise RuntimeError("handler bug")

    async def scenario():
        handle = await manager.subscribe(IDENTITY, "user_favorites", broken)
        store.emit("user_favorites", "INSERT", new={"id": 1, "user_id": "u1"})
        return handle

    handle = asyncio.run(scenario())
    assert handle.state == SubscriptionState.SUBSCRIBED
    assert handle.delivered == 1


def test_reconnect_triggers_callback(store):
    manager = SubscriptionManager(store)
    reconnects = []

    async def scenario():
        handle = await manager.subscribe(
            IDENTITY, "user_favorites", lambda e: None, on_reconnect=lambda: reconnects.append(1)
        )
        store.set_status("CHANNEL_ERROR")
        down = handle.state
        store.set_status("SUBSCRIBED")
        return down, handle.state

    down, up = asyncio.run(scenario())
    assert down == SubscriptionState.RECONNECTING
    assert up == SubscriptionState.SUBSCRIBED
    assert reconnects == [1]


def test_open_failure_is_wrapped(store):
    manager = SubscriptionManager(store)
    store.fail_next("open_channel", error=ConnectionError("realtime down"))

    with pytest.raises(RemoteStoreError):
        asyncio.run(manager.subscribe(IDENTITY, "user_favorites", lambda e: None))
    assert manager.open_count == 0


def test_unknown_event_type_rejected(store):
    manager = SubscriptionManager(store)
    with pytest.raises(ValueError):
        asyncio.run(manager.subscribe(IDENTITY, "user_favorites", lambda e: None, events=("TRUNCATE",)))


def test_bind_on_closed_scope(store):
    manager = SubscriptionManager(store)

    async def scenario():
        scope = ViewScope("gone")
        async with scope:
            pass
        await manager.bind(scope, IDENTITY, "user_favorites", lambda e: None)

    with pytest.raises(ScopeClosedError):
        asyncio.run(scenario())
