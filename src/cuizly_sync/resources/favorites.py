# src/cuizly_sync/resources/favorites.py
from __future__ import annotations

"""
favorites.py

The signed-in user's favorite restaurants (table `user_favorites`).

  value      list of restaurant ids, in the order the store returns them
  toggle()   optimistic add / remove, serialized so double taps end in the
             state the user asked for last
  channel    every change on the user's rows triggers a reload
  polling    none by default (mount + push)
"""

from typing import List, Optional

from cuizly_sync.core.identity import RowFilter
from cuizly_sync.core.mutator import Mutation
from cuizly_sync.resources.base import SyncedResource


class FavoritesResource(SyncedResource[List[str]]):
    resource_type = "favorites"
    table = "user_favorites"
    poll_setting = "favorites_poll_seconds"

    def default_value(self) -> List[str]:
        return []

    async def fetch(self) -> List[str]:
        rows = await self.store.select(
            self.table,
            [RowFilter.eq("user_id", self.user_id)],
            columns="restaurant_id",
        )
        return [row["restaurant_id"] for row in rows]

    @property
    def favorites(self) -> List[str]:
        return list(self.value)

    def is_favorite(self, restaurant_id: str) -> bool:
        return restaurant_id in self.value

    async def toggle(self, restaurant_id: str) -> bool:
        """Add or remove `restaurant_id`. Returns False (and notifies) on failure."""
        if not restaurant_id:
            return False
        added = False

        def apply(current: Optional[List[str]]) -> List[str]:
            nonlocal added
            ids = list(current or [])
            added = restaurant_id not in ids
            return ids + [restaurant_id] if added else [i for i in ids if i != restaurant_id]

        async def remote(before: Optional[List[str]], after: Optional[List[str]]) -> None:
            if added:
                await self.store.insert(
                    self.table, {"user_id": self.user_id, "restaurant_id": restaurant_id}
                )
            else:
                await self.store.delete(
                    self.table,
                    [RowFilter.eq("user_id", self.user_id), RowFilter.eq("restaurant_id", restaurant_id)],
                )

        ok = await self._mutate(
            Mutation(f"toggle favorite {restaurant_id}", apply, remote),
            failure="favorites.error",
        )
        if ok:
            self.toast("favorites.added" if added else "favorites.removed")
        return ok
