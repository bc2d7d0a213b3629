# src/cuizly_sync/resources/notifications.py
from __future__ import annotations

"""
notifications.py

The signed-in user's notifications (table `notifications`), newest first,
capped at `settings.notifications_limit` rows.

Push handling patches in place since realtime payloads carry the full row:
  INSERT -> prepend (deduplicated by id, delivery is at-least-once) + toast
  UPDATE -> replace the row with the same id
  DELETE -> drop the row with the same id

unread_count is derived from the list, so it cannot drift from it.
"""

import datetime
from typing import Any, Dict, List, Optional

from cuizly_sync.core.identity import Order, RowFilter
from cuizly_sync.core.mutator import Mutation
from cuizly_sync.core.subscriptions import ChangeEvent
from cuizly_sync.notifier import Toast
from cuizly_sync.resources.base import SyncedResource, rows_without

Notification = Dict[str, Any]


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class NotificationsResource(SyncedResource[List[Notification]]):
    resource_type = "notifications"
    table = "notifications"
    events = ("INSERT", "UPDATE", "DELETE")
    poll_setting = "notifications_poll_seconds"

    def default_value(self) -> List[Notification]:
        return []

    async def fetch(self) -> List[Notification]:
        return await self.store.select(
            self.table,
            [RowFilter.eq("user_id", self.user_id)],
            order=[Order("created_at", descending=True)],
            limit=self.settings.notifications_limit,
        )

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------
    def patch(self, current: Optional[List[Notification]], event: ChangeEvent) -> Optional[List[Notification]]:
        rows = list(current or [])
        row_id = event.row_id
        if row_id is None:
            return None

        if event.event_type == "INSERT":
            new = dict(event.new or {})
            if any(r.get("id") == row_id for r in rows):
                return [new if r.get("id") == row_id else r for r in rows]
            return ([new] + rows)[: self.settings.notifications_limit]

        if event.event_type == "UPDATE":
            new = dict(event.new or {})
            return [new if r.get("id") == row_id else r for r in rows]

        if event.event_type == "DELETE":
            return rows_without(rows, row_id)

        return None

    def on_change_event(self, event: ChangeEvent) -> None:
        if event.event_type != "INSERT" or not event.new:
            return
        if any(r.get("id") == event.row_id for r in self.value):
            # Redelivery of a notification we already showed
            return
        self.notifier.notify(
            Toast(title=str(event.new.get("title") or ""), description=event.new.get("message"))
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @property
    def notifications(self) -> List[Notification]:
        return list(self.value)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.value if not n.get("is_read"))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    async def mark_as_read(self, notification_id: str) -> bool:
        def apply(current: Optional[List[Notification]]) -> List[Notification]:
            rows = list(current or [])
            if not any(r.get("id") == notification_id for r in rows):
                raise ValueError(f"Unknown notification {notification_id}")
            read_at = _now_iso()
            return [
                {**r, "is_read": True, "read_at": r.get("read_at") or read_at}
                if r.get("id") == notification_id
                else r
                for r in rows
            ]

        async def remote(before: Any, after: Any) -> None:
            await self.store.rpc("mark_notification_read", {"p_notification_id": notification_id})

        return await self._mutate(Mutation(f"mark notification {notification_id} read", apply, remote))

    async def mark_all_as_read(self) -> bool:
        def apply(current: Optional[List[Notification]]) -> List[Notification]:
            read_at = _now_iso()
            return [
                r if r.get("is_read") else {**r, "is_read": True, "read_at": read_at}
                for r in (current or [])
            ]

        async def remote(before: Any, after: Any) -> None:
            await self.store.rpc("mark_all_notifications_read")

        return await self._mutate(
            Mutation("mark all notifications read", apply, remote),
            success=("notifications.allMarkedRead", None),
            failure="notifications.markAllReadError",
        )

    async def delete(self, notification_id: str) -> bool:
        def apply(current: Optional[List[Notification]]) -> List[Notification]:
            return rows_without(current or [], notification_id)

        async def remote(before: Any, after: Any) -> None:
            await self.store.delete(self.table, [RowFilter.eq("id", notification_id)])

        return await self._mutate(
            Mutation(f"delete notification {notification_id}", apply, remote),
            success=("notifications.deleted", None),
            failure="notifications.deleteError",
        )
