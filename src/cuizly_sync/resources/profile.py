# src/cuizly_sync/resources/profile.py
from __future__ import annotations

"""
profile.py

The signed-in user's profile row (table `profiles`, one row per user_id).

  value     the row, or None when the user has no profile yet
  polling   every settings.profile_poll_seconds (60s by default), on top of push
  update()  optimistic merge + upsert on user_id
  user_type falls back to "consumer" when unknown
"""

import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from cuizly_sync.core.identity import RowFilter
from cuizly_sync.core.mutator import Mutation
from cuizly_sync.errors import CuizlySyncError
from cuizly_sync.resources.base import SyncedResource

if TYPE_CHECKING:
    from cuizly_sync.storage import ObjectStorage

Profile = Dict[str, Any]

USER_TYPES = ("consumer", "restaurant_owner")
DEFAULT_USER_TYPE = "consumer"

# Columns a user may edit on their own profile
EDITABLE_FIELDS = frozenset(
    {"first_name", "last_name", "phone", "username", "display_name", "chef_emoji_color", "avatar_url", "user_type"}
)


class ProfileResource(SyncedResource[Optional[Profile]]):
    resource_type = "profile"
    table = "profiles"
    poll_setting = "profile_poll_seconds"

    def default_value(self) -> Optional[Profile]:
        return None

    async def fetch(self) -> Optional[Profile]:
        rows = await self.store.select(self.table, [RowFilter.eq("user_id", self.user_id)], limit=1)
        return rows[0] if rows else None

    @property
    def profile(self) -> Optional[Profile]:
        return self.value

    @property
    def user_type(self) -> str:
        user_type = (self.value or {}).get("user_type")
        return user_type if user_type in USER_TYPES else DEFAULT_USER_TYPE

    @property
    def is_consumer(self) -> bool:
        return self.user_type == "consumer"

    @property
    def is_restaurant_owner(self) -> bool:
        return self.user_type == "restaurant_owner"

    async def update(self, **fields: Any) -> bool:
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Profile fields not editable: {sorted(unknown)}")
        if not fields:
            return True

        def apply(current: Optional[Profile]) -> Profile:
            if "user_type" in fields and fields["user_type"] not in USER_TYPES:
                raise ValueError(f"Unknown user_type {fields['user_type']!r}")
            return {**(current or {"user_id": self.user_id}), **fields}

        async def remote(before: Any, after: Any) -> None:
            await self.store.upsert(self.table, {"user_id": self.user_id, **fields}, on_conflict="user_id")

        return await self._mutate(
            Mutation(f"update profile ({', '.join(sorted(fields))})", apply, remote),
            success=("profile.updated", "profile.updatedDesc"),
            failure="profile.error",
        )

    async def upload_avatar(self, storage: "ObjectStorage", data: bytes, extension: str = "jpg") -> Optional[str]:
        """Upload a new avatar and point the profile at it. Returns the public URL."""
        if not self.user_id:
            return None
        stamp = int(datetime.datetime.now(datetime.timezone.utc).timestamp() * 1000)
        path = f"{self.user_id}/avatar-{stamp}.{extension.lstrip('.')}"
        try:
            url = await storage.upload(path, data, content_type=f"image/{extension.lstrip('.')}")
        except CuizlySyncError as exc:
            self.slot.set_error(exc)
            self.toast("error.title", "profile.error", error=True)
            return None
        return url if await self.update(avatar_url=url) else None
