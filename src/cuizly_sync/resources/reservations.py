# src/cuizly_sync/resources/reservations.py
from __future__ import annotations

"""
reservations.py

Reservations seen by a consumer (for_user_id) or by a restaurant owner
(restaurant_id), ordered by reservation_date then reservation_time.
With neither filter the list stays empty. Every write is followed by a
reload so server-side fields (id, status, timestamps) land in the slot.
"""

import datetime
from typing import Any, Dict, List, Optional

from cuizly_sync.auth import SessionProvider
from cuizly_sync.core.identity import Order, RowFilter, matches_all
from cuizly_sync.core.mutator import Mutation
from cuizly_sync.resources.base import SyncedResource
from cuizly_sync.store.base import RowStore

Reservation = Dict[str, Any]

STATUSES = ("pending", "confirmed", "cancelled", "completed", "no_show")
REQUIRED_FIELDS = ("restaurant_id", "reservation_date", "reservation_time", "party_size", "customer_name", "customer_email")


def _sort_key(row: Reservation) -> tuple:
    return (str(row.get("reservation_date") or ""), str(row.get("reservation_time") or ""))


class ReservationsResource(SyncedResource[List[Reservation]]):
    resource_type = "reservations"
    table = "reservations"
    poll_setting = "reservations_poll_seconds"
    requires_session = False

    def __init__(
        self,
        store: RowStore,
        sessions: SessionProvider,
        *,
        for_user_id: Optional[str] = None,
        restaurant_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.for_user_id = for_user_id
        self.restaurant_id = restaurant_id
        super().__init__(store, sessions, **kwargs)

    def default_value(self) -> List[Reservation]:
        return []

    def sub_filter(self) -> Optional[str]:
        return f"user={self.for_user_id or '-'},restaurant={self.restaurant_id or '-'}"

    def filters(self) -> List[RowFilter]:
        filters = []
        if self.for_user_id:
            filters.append(RowFilter.eq("user_id", self.for_user_id))
        if self.restaurant_id:
            filters.append(RowFilter.eq("restaurant_id", self.restaurant_id))
        return filters

    def predicate(self) -> Optional[RowFilter]:
        # Realtime takes a single filter; the restaurant view is the busier one
        if self.restaurant_id:
            return RowFilter.eq("restaurant_id", self.restaurant_id)
        if self.for_user_id:
            return RowFilter.eq("user_id", self.for_user_id)
        return None

    async def fetch(self) -> List[Reservation]:
        filters = self.filters()
        if not filters:
            return []
        return await self.store.select(
            self.table,
            filters,
            order=[Order("reservation_date"), Order("reservation_time")],
        )

    async def _open_channel(self) -> None:
        if self.filters():
            await super()._open_channel()

    @property
    def reservations(self) -> List[Reservation]:
        return list(self.value)

    def upcoming(self) -> List[Reservation]:
        return [r for r in self.value if r.get("status") in ("pending", "confirmed")]

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    async def create(self, data: Reservation) -> Optional[Reservation]:
        """Insert a reservation (status pending). Returns the stored row, or None on failure."""
        created: Optional[Reservation] = None

        def apply(current: Optional[List[Reservation]]) -> List[Reservation]:
            missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
            if missing:
                raise ValueError(f"Reservation is missing {', '.join(missing)}")
            if not isinstance(data["party_size"], int) or data["party_size"] < 1:
                raise ValueError(f"party_size must be a positive integer, got {data['party_size']!r}")
            rows = list(current or [])
            if matches_all(self.filters(), data):
                rows.append({**data, "status": "pending"})
            return sorted(rows, key=_sort_key)

        async def remote(before: Any, after: Any) -> None:
            nonlocal created
            rows = await self.store.insert(self.table, {k: v for k, v in data.items() if k != "status"})
            created = rows[0] if rows else None

        ok = await self._mutate(
            Mutation("create reservation", apply, remote),
            success=("reservations.created", None),
            failure="reservations.error",
        )
        if ok:
            await self.refresh()
        return created if ok else None

    async def update(self, reservation_id: str, **updates: Any) -> bool:
        if "status" in updates and updates["status"] not in STATUSES:
            raise ValueError(f"Unknown reservation status {updates['status']!r}")
        return await self._write(
            reservation_id,
            updates,
            description=f"update reservation {reservation_id}",
            success="reservations.updated",
        )

    async def cancel(self, reservation_id: str, reason: Optional[str] = None) -> bool:
        updates = {
            "status": "cancelled",
            "cancelled_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "cancellation_reason": reason,
        }
        return await self._write(
            reservation_id,
            updates,
            description=f"cancel reservation {reservation_id}",
            success="reservations.cancelled",
        )

    async def _write(self, reservation_id: str, updates: Dict[str, Any], *, description: str, success: str) -> bool:
        if not updates:
            return True

        def apply(current: Optional[List[Reservation]]) -> List[Reservation]:
            return [{**r, **updates} if r.get("id") == reservation_id else r for r in (current or [])]

        async def remote(before: Any, after: Any) -> None:
            await self.store.update(self.table, updates, [RowFilter.eq("id", reservation_id)])

        ok = await self._mutate(
            Mutation(description, apply, remote),
            success=(success, None),
            failure="reservations.error",
        )
        if ok:
            await self.refresh()
        return ok
