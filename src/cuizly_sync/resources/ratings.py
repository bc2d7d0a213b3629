# src/cuizly_sync/resources/ratings.py
from __future__ import annotations

"""
ratings.py

Public ratings of one restaurant (table `ratings`). Readable without a
session; adding a rating needs one. Each row is decorated with the rater's
public display name (rpc `get_public_user_names`), falling back to an
anonymous placeholder when the lookup fails or the user has none.
"""

import datetime
from typing import Any, Dict, List, Optional

from cuizly_sync.auth import SessionProvider
from cuizly_sync.core.identity import Order, RowFilter
from cuizly_sync.core.mutator import Mutation
from cuizly_sync.errors import RemoteStoreError
from cuizly_sync.logging_utils import get_logger
from cuizly_sync.messages import t
from cuizly_sync.resources.base import SyncedResource
from cuizly_sync.store.base import RowStore

logger = get_logger("ratings")

Rating = Dict[str, Any]

MIN_SCORE = 1
MAX_SCORE = 5


class RatingsResource(SyncedResource[List[Rating]]):
    resource_type = "ratings"
    table = "ratings"
    poll_setting = "ratings_poll_seconds"
    requires_session = False

    def __init__(self, store: RowStore, sessions: SessionProvider, restaurant_id: str, **kwargs: Any) -> None:
        self.restaurant_id = restaurant_id
        super().__init__(store, sessions, **kwargs)

    def default_value(self) -> List[Rating]:
        return []

    def sub_filter(self) -> Optional[str]:
        return self.restaurant_id

    def predicate(self) -> Optional[RowFilter]:
        return RowFilter.eq("restaurant_id", self.restaurant_id)

    async def fetch(self) -> List[Rating]:
        if not self.restaurant_id:
            return []
        rows = await self.store.select(
            self.table,
            [RowFilter.eq("restaurant_id", self.restaurant_id)],
            order=[Order("created_at", descending=True)],
        )
        if not rows:
            return []
        return await self._with_public_names(rows)

    async def _with_public_names(self, rows: List[Rating]) -> List[Rating]:
        user_ids = list(dict.fromkeys(r["user_id"] for r in rows if r.get("user_id")))
        names: List[Dict[str, Any]] = []
        try:
            names = await self.store.rpc("get_public_user_names", {"user_ids": user_ids}) or []
        except RemoteStoreError as exc:
            # Ratings still render, just without names
            logger.warning(
                "Public names lookup failed for %s: %s",
                self.identity.key,
                exc,
                extra={
                    "invoking_func": "RatingsResource.fetch",
                    "invoking_purpose": "Attach public display names to ratings",
                    "next_step": "Fall back to anonymous names",
                    "resolution": "",
                },
            )
        by_user = {n.get("user_id"): n for n in names}
        return [{**r, "profiles": by_user.get(r.get("user_id")) or self._anonymous(r.get("user_id"))} for r in rows]

    def _anonymous(self, user_id: Optional[str]) -> Dict[str, Any]:
        lang = self.settings.language
        return {
            "user_id": user_id,
            "display_name": t("ratings.anonymousUser", lang),
            "username": t("ratings.anonymous", lang),
        }

    async def refresh(self) -> bool:
        ok = await super().refresh()
        if not ok and self.last_error is not None:
            self.toast("error.title", "ratings.loadError", error=True)
        return ok

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @property
    def ratings(self) -> List[Rating]:
        return list(self.value)

    @property
    def total(self) -> int:
        return len(self.value)

    @property
    def average(self) -> float:
        scores = [r.get("rating") or 0 for r in self.value]
        if not scores:
            return 0.0
        return round(sum(scores) / len(scores), 1)

    async def user_rating(self) -> Optional[Rating]:
        """The signed-in user's rating of this restaurant, straight from the store."""
        user_id = await self.sessions.current_user_id()
        if not user_id or not self.restaurant_id:
            return None
        try:
            rows = await self.store.select(
                self.table,
                [RowFilter.eq("user_id", user_id), RowFilter.eq("restaurant_id", self.restaurant_id)],
                limit=1,
            )
        except RemoteStoreError:
            return None
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    async def add_rating(self, score: int, comment: Optional[str] = None) -> bool:
        """Create or replace the signed-in user's rating (score 1..5)."""
        user_id = await self.sessions.current_user_id()
        if not user_id or not self.restaurant_id:
            return False

        def apply(current: Optional[List[Rating]]) -> List[Rating]:
            if not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
                raise ValueError(f"Rating must be between {MIN_SCORE} and {MAX_SCORE}, got {score!r}")
            rows = list(current or [])
            existing = next((r for r in rows if r.get("user_id") == user_id), None)
            row = {
                **(existing or {}),
                "user_id": user_id,
                "restaurant_id": self.restaurant_id,
                "rating": score,
                "comment": comment,
                "created_at": (existing or {}).get("created_at")
                or datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "profiles": (existing or {}).get("profiles") or self._anonymous(user_id),
            }
            return [row] + [r for r in rows if r.get("user_id") != user_id]

        async def remote(before: Any, after: Any) -> None:
            await self.store.upsert(
                self.table,
                {"user_id": user_id, "restaurant_id": self.restaurant_id, "rating": score, "comment": comment},
                on_conflict="user_id,restaurant_id",
            )

        ok = await self._mutate(
            Mutation(f"rate restaurant {self.restaurant_id}", apply, remote),
            success=("ratings.added", "ratings.thanks"),
            failure="ratings.addError",
        )
        if ok:
            await self.refresh()
        return ok
