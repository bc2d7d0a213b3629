# src/cuizly_sync/resources/comments.py
from __future__ import annotations

"""
comments.py

Active comments on one restaurant (table `comments`), newest first. Each
comment carries its author's `profiles` block (first name, last name,
username) looked up from `profiles`; authors without a profile show as a
generic consumer.

Two channels per mounted view: `comments` and `ratings` of the restaurant.
A rating change reloads too, since views show both side by side.
"""

import datetime
from typing import Any, Dict, List, Optional

from cuizly_sync.auth import SessionProvider
from cuizly_sync.core.identity import Order, RowFilter
from cuizly_sync.core.mutator import Mutation
from cuizly_sync.core.subscriptions import SubscriptionHandle
from cuizly_sync.errors import CuizlySyncError
from cuizly_sync.messages import t
from cuizly_sync.resources.base import SyncedResource
from cuizly_sync.store.base import RowStore

Comment = Dict[str, Any]

PROFILE_COLUMNS = "user_id, first_name, last_name, username"
RATINGS_TABLE = "ratings"


class CommentsResource(SyncedResource[List[Comment]]):
    resource_type = "comments"
    table = "comments"
    poll_setting = "comments_poll_seconds"
    requires_session = False

    def __init__(self, store: RowStore, sessions: SessionProvider, restaurant_id: str, **kwargs: Any) -> None:
        self.restaurant_id = restaurant_id
        self._ratings_handle: Optional[SubscriptionHandle] = None
        super().__init__(store, sessions, **kwargs)

    def default_value(self) -> List[Comment]:
        return []

    def sub_filter(self) -> Optional[str]:
        return self.restaurant_id

    def predicate(self) -> Optional[RowFilter]:
        return RowFilter.eq("restaurant_id", self.restaurant_id)

    async def fetch(self) -> List[Comment]:
        if not self.restaurant_id:
            return []
        rows = await self.store.select(
            self.table,
            [RowFilter.eq("restaurant_id", self.restaurant_id), RowFilter.eq("is_active", True)],
            order=[Order("created_at", descending=True)],
        )
        if not rows:
            return []
        user_ids = list(dict.fromkeys(r["user_id"] for r in rows if r.get("user_id")))
        profiles = await self.store.select(
            "profiles",
            [RowFilter.in_("user_id", user_ids)],
            columns=PROFILE_COLUMNS,
        )
        by_user = {p.get("user_id"): p for p in profiles}
        return [{**r, "profiles": by_user.get(r.get("user_id")) or self._anonymous()} for r in rows]

    def _anonymous(self) -> Dict[str, Any]:
        return {"first_name": t("comments.anonymous", self.settings.language), "last_name": "", "username": ""}

    async def refresh(self) -> bool:
        ok = await super().refresh()
        if not ok and self.last_error is not None:
            self.toast("error.title", "comments.loadError", error=True)
        return ok

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------
    async def _open_channel(self) -> None:
        if not self.restaurant_id:
            return
        await super()._open_channel()
        scope = self.mounted_scope
        if scope is None or self._ratings_handle is not None:
            return
        try:
            self._ratings_handle = await self.subscriptions.bind(
                scope,
                self.identity,
                RATINGS_TABLE,
                self._on_event,
                predicate=self.predicate(),
                events=self.events,
                on_reconnect=self._request_reload,
            )
        except CuizlySyncError as exc:
            self.slot.set_error(exc)

    async def _close_channel(self) -> None:
        await super()._close_channel()
        if self._ratings_handle is not None:
            handle, self._ratings_handle = self._ratings_handle, None
            await self.subscriptions.unsubscribe(handle)

    def _discard_slot(self) -> None:
        super()._discard_slot()
        self._ratings_handle = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @property
    def comments(self) -> List[Comment]:
        return list(self.value)

    @property
    def total(self) -> int:
        return len(self.value)

    @property
    def average_rating(self) -> float:
        """Mean of the comments that carry a rating, one decimal; 0.0 when none do."""
        scores = [c["rating"] for c in self.value if c.get("rating")]
        if not scores:
            return 0.0
        return round(sum(scores) / len(scores), 1)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    async def add_comment(
        self,
        comment_text: Optional[str] = None,
        rating: Optional[int] = None,
        images: Optional[List[str]] = None,
    ) -> bool:
        user_id = await self.sessions.current_user_id()
        if not user_id or not self.restaurant_id:
            return False
        row = {
            "user_id": user_id,
            "restaurant_id": self.restaurant_id,
            "comment_text": comment_text or None,
            "rating": rating or None,
            "images": list(images or []),
        }

        def apply(current: Optional[List[Comment]]) -> List[Comment]:
            if rating is not None and (not isinstance(rating, int) or not 1 <= rating <= 5):
                raise ValueError(f"Rating must be between 1 and 5, got {rating!r}")
            mine = next((c.get("profiles") for c in current or [] if c.get("user_id") == user_id), None)
            pending = {
                **row,
                "is_active": True,
                "created_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "profiles": mine or self._anonymous(),
            }
            return [pending] + list(current or [])

        async def remote(before: Any, after: Any) -> None:
            await self.store.insert(self.table, row)

        ok = await self._mutate(
            Mutation(f"comment on restaurant {self.restaurant_id}", apply, remote),
            success=("comments.added", "comments.addedDesc"),
            failure="comments.addError",
        )
        if ok:
            await self.refresh()
        return ok
