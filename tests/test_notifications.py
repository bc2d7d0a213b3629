import asyncio
import dataclasses

from conftest import settle

from cuizly_sync.core.lifetime import ViewScope
from cuizly_sync.resources.notifications import NotificationsResource


def notification(n, *, read=False, user="u1", title=None):
    return {
        "id": f"n{n}",
        "user_id": user,
        "title": title or f"Notification {n}",
        "message": f"Message {n}",
        "is_read": read,
        "created_at": f"2026-10-0{n}T10:00:00+00:00",
    }


def test_end_to_end_push_dedup_and_actions(store, sessions, settings, notifier):
    store.seed("notifications", notification(1, read=True), notification(2), notification(3, user="u2"))
    notifications = NotificationsResource(store, sessions, settings=settings, notifier=notifier)

    async def scenario():
        async with ViewScope("inbox") as scope:
            await notifications.mount(scope)
            assert [n["id"] for n in notifications.notifications] == ["n2", "n1"]
            assert notifications.unread_count == 1

            fresh = notification(4, title="Nouvelle offre")
            store.seed("notifications", fresh)
            store.emit("notifications", "INSERT", new=fresh)
            assert [n["id"] for n in notifications.notifications] == ["n4", "n2", "n1"]
            assert notifications.unread_count == 2

            # At-least-once delivery: the same insert again changes nothing
            store.emit("notifications", "INSERT", new=fresh)
            assert len(notifications.notifications) == 3
            assert notifications.unread_count == 2

            assert await notifications.mark_as_read("n4") is True
            assert notifications.unread_count == 1

            assert await notifications.mark_all_as_read() is True
            assert notifications.unread_count == 0

            assert await notifications.delete("n1") is True
            assert [n["id"] for n in notifications.notifications] == ["n4", "n2"]

    asyncio.run(scenario())

    assert notifier.titles == ["Nouvelle offre", "Toutes les notifications sont lues", "Notification supprimée"]
    assert ("mark_notification_read", {"p_notification_id": "n4"}) in store.rpc_calls
    assert ("mark_all_notifications_read", {}) in store.rpc_calls
    assert [r["id"] for r in store.tables["notifications"]] == ["n2", "n3", "n4"]
    # Pushes were applied in place, only the mount reload hit the store
    assert store.count("select", "notifications") == 1


def test_update_and_delete_events_patch_in_place(store, sessions, settings, notifier):
    store.seed("notifications", notification(1), notification(2))
    notifications = NotificationsResource(store, sessions, settings=settings, notifier=notifier)

    async def scenario():
        async with notifications.mounted():
            store.emit("notifications", "UPDATE", new={**notification(2), "is_read": True})
            assert notifications.unread_count == 1
            store.emit("notifications", "DELETE", old={"id": "n1"})
            return [n["id"] for n in notifications.notifications]

    assert asyncio.run(scenario()) == ["n2"]
    assert notifier.toasts == []


def test_event_without_row_falls_back_to_reload(store, sessions, settings, notifier):
    store.seed("notifications", notification(1))
    notifications = NotificationsResource(store, sessions, settings=settings, notifier=notifier)

    async def scenario():
        async with notifications.mounted():
            store.seed("notifications", notification(2))
            store.emit("notifications", "UPDATE")
            await settle()
            return notifications.unread_count

    assert asyncio.run(scenario()) == 2
    assert store.count("select", "notifications") == 2


def test_list_is_capped(store, sessions, settings, notifier):
    store.seed("notifications", notification(1), notification(2))
    capped = dataclasses.replace(settings, notifications_limit=2)
    notifications = NotificationsResource(store, sessions, settings=capped, notifier=notifier)

    async def scenario():
        async with notifications.mounted():
            store.emit("notifications", "INSERT", new=notification(3))
            return [n["id"] for n in notifications.notifications]

    assert asyncio.run(scenario()) == ["n3", "n2"]


def test_failed_mark_all_rolls_back(store, sessions, settings, notifier):
    store.seed("notifications", notification(1), notification(2))
    notifications = NotificationsResource(store, sessions, settings=settings, notifier=notifier)

    async def scenario():
        async with notifications.mounted():
            store.fail_next("rpc", table="mark_all_notifications_read")
            ok = await notifications.mark_all_as_read()
            return ok, notifications.unread_count

    assert asyncio.run(scenario()) == (False, 2)
    assert notifier.toasts[-1].description == "Impossible de marquer les notifications comme lues"


def test_mark_unknown_notification_is_rejected(store, sessions, settings, notifier):
    notifications = NotificationsResource(store, sessions, settings=settings, notifier=notifier)

    async def scenario():
        async with notifications.mounted():
            return await notifications.mark_as_read("missing")

    assert asyncio.run(scenario()) is False
    assert store.rpc_calls == []
    assert notifier.toasts[-1].variant == "destructive"
