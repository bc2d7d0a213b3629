# src/cuizly_sync/resources/offers.py
from __future__ import annotations

"""
offers.py

Active restaurant offers (table `offers`), newest first, optionally limited
to one category. Readable without a session. Each offer carries a compact
`restaurant` block taken from the joined `restaurants` row.

Any change on the table triggers a reload; the channel is not filtered, so
an offer moving into or out of the category is picked up too.
"""

from typing import Any, Dict, List, Optional

from cuizly_sync.auth import SessionProvider
from cuizly_sync.core.identity import Order, RowFilter
from cuizly_sync.resources.base import SyncedResource
from cuizly_sync.store.base import RowStore

Offer = Dict[str, Any]

OFFER_COLUMNS = "*, restaurants!restaurant_id(name, cuisine_type, price_range)"
OFFER_FIELDS = (
    "id",
    "restaurant_id",
    "title",
    "description",
    "discount_percentage",
    "discount_amount",
    "valid_until",
    "category",
)


def format_offer(row: Dict[str, Any]) -> Offer:
    offer: Offer = {name: row.get(name) for name in OFFER_FIELDS}
    restaurant = row.get("restaurants")
    if restaurant:
        offer["restaurant"] = {
            "name": restaurant.get("name"),
            "cuisine_type": restaurant.get("cuisine_type") or [],
            "price_range": restaurant.get("price_range"),
        }
    else:
        offer["restaurant"] = None
    return offer


class OffersResource(SyncedResource[List[Offer]]):
    resource_type = "offers"
    table = "offers"
    poll_setting = "offers_poll_seconds"
    requires_session = False

    def __init__(
        self,
        store: RowStore,
        sessions: SessionProvider,
        category: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.category = category
        super().__init__(store, sessions, **kwargs)

    def default_value(self) -> List[Offer]:
        return []

    def sub_filter(self) -> Optional[str]:
        return self.category

    def predicate(self) -> Optional[RowFilter]:
        return None

    def filters(self) -> List[RowFilter]:
        filters = [RowFilter.eq("is_active", True)]
        if self.category:
            filters.append(RowFilter.eq("category", self.category))
        return filters

    async def fetch(self) -> List[Offer]:
        rows = await self.store.select(
            self.table,
            self.filters(),
            columns=OFFER_COLUMNS,
            order=[Order("created_at", descending=True)],
        )
        return [format_offer(row) for row in rows]

    @property
    def offers(self) -> List[Offer]:
        return list(self.value)

    def for_restaurant(self, restaurant_id: str) -> List[Offer]:
        return [o for o in self.value if o.get("restaurant_id") == restaurant_id]
