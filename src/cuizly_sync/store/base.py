# src/cuizly_sync/store/base.py
from __future__ import annotations

"""
base.py

Purpose:
    The RowStore protocol: everything the sync layer needs from the remote
    row store. SupabaseRowStore implements it for production; tests use an
    in-memory implementation.

    All calls are session scoped by the underlying client (row-level
    security is enforced server-side). Implementations raise
    RemoteStoreError on failure.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from cuizly_sync.core.identity import Order, RowFilter
from cuizly_sync.core.subscriptions import ChangeEvent

Row = Dict[str, Any]

# status in {"SUBSCRIBED", "CHANNEL_ERROR", "TIMED_OUT", "CLOSED"}
StatusCallback = Callable[..., None]


class RowStore(Protocol):
    async def select(
        self,
        table: str,
        filters: Sequence[RowFilter] = (),
        *,
        columns: str = "*",
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> List[Row]: ...

    async def insert(self, table: str, rows: Row | Sequence[Row]) -> List[Row]: ...

    async def update(self, table: str, values: Row, filters: Sequence[RowFilter]) -> List[Row]: ...

    async def upsert(
        self,
        table: str,
        rows: Row | Sequence[Row],
        *,
        on_conflict: Optional[str] = None,
    ) -> List[Row]: ...

    async def delete(self, table: str, filters: Sequence[RowFilter]) -> List[Row]: ...

    async def rpc(self, fn: str, params: Optional[Row] = None) -> Any: ...

    async def open_channel(
        self,
        channel_id: str,
        table: str,
        predicate: Optional[RowFilter],
        events: Sequence[str],
        on_event: Callable[[ChangeEvent], None],
        on_status: StatusCallback,
    ) -> Any: ...

    async def close_channel(self, channel: Any) -> None: ...
