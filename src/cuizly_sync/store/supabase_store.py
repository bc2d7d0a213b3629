# src/cuizly_sync/store/supabase_store.py
from __future__ import annotations

"""
supabase_store.py

Purpose:
    RowStore implementation over the async supabase-py client.

      - PostgREST queries are built from typed RowFilter / Order descriptors
      - errors are wrapped into RemoteStoreError (PGRST116 = "no rows" -> [])
      - realtime postgres_changes payloads are normalized into ChangeEvent

Note:
    Uses whatever session the client carries, so row-level security applies
    exactly as it does for the web app. Do not hand a service-role client to
    code serving end users.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from supabase import AsyncClient

from cuizly_sync.core.identity import Order, RowFilter
from cuizly_sync.core.subscriptions import ChangeEvent
from cuizly_sync.errors import RemoteStoreError
from cuizly_sync.logging_utils import get_logger
from cuizly_sync.store.base import Row, StatusCallback

logger = get_logger("supabase_store")

NO_ROWS_CODE = "PGRST116"


def _apply_filters(query: Any, filters: Sequence[RowFilter]) -> Any:
    for f in filters:
        if f.operator == "in":
            query = query.in_(f.column, list(f.value))
        else:
            query = getattr(query, f.operator)(f.column, f.value)
    return query


def normalize_change_payload(table: str, payload: Mapping[str, Any]) -> ChangeEvent:
    """
    Turn a realtime postgres_changes payload into a ChangeEvent.

    realtime-py nests the change under "data" with record / old_record;
    the JS-style shape (eventType / new / old) is accepted too.
    """
    data = payload.get("data", payload) if isinstance(payload, Mapping) else {}
    event_type = str(data.get("type") or data.get("eventType") or "").upper()
    new = data.get("record") if "record" in data else data.get("new")
    old = data.get("old_record") if "old_record" in data else data.get("old")
    return ChangeEvent(
        table=data.get("table") or table,
        event_type=event_type,
        new=new or None,
        old=old or None,
    )


class SupabaseRowStore:
    def __init__(self, client: AsyncClient, *, schema: str = "public") -> None:
        self.client = client
        self.schema = schema

    async def _execute(self, what: str, make_call: Callable[[], Awaitable[Any]]) -> Any:
        try:
            res = await make_call()
        except Exception as exc:  # noqa: BLE001
            code = getattr(exc, "code", None)
            if code == NO_ROWS_CODE:
                return []
            logger.warning(
                "Supabase %s failed: %s",
                what,
                exc,
                extra={
                    "invoking_func": "SupabaseRowStore._execute",
                    "invoking_purpose": "Run a PostgREST call",
                    "next_step": "Raise RemoteStoreError to the caller",
                    "resolution": "Check RLS policies / schema / connectivity",
                },
            )
            raise RemoteStoreError(
                f"{what} failed: {getattr(exc, 'message', None) or exc}",
                code=code,
                details=getattr(exc, "details", None),
            ) from exc
        return res.data if res is not None and res.data is not None else []

    # ------------------------------------------------------------------
    # PostgREST
    # ------------------------------------------------------------------
    async def select(
        self,
        table: str,
        filters: Sequence[RowFilter] = (),
        *,
        columns: str = "*",
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> List[Row]:
        query = _apply_filters(self.client.table(table).select(columns), filters)
        for o in order:
            query = query.order(o.column, desc=o.descending)
        if limit is not None:
            query = query.limit(limit)
        return await self._execute(f"select {table}", query.execute)

    async def insert(self, table: str, rows: Row | Sequence[Row]) -> List[Row]:
        return await self._execute(f"insert {table}", self.client.table(table).insert(rows).execute)

    async def update(self, table: str, values: Row, filters: Sequence[RowFilter]) -> List[Row]:
        if not filters:
            raise RemoteStoreError(f"Refusing unfiltered update on {table}")
        query = _apply_filters(self.client.table(table).update(values), filters)
        return await self._execute(f"update {table}", query.execute)

    async def upsert(
        self,
        table: str,
        rows: Row | Sequence[Row],
        *,
        on_conflict: Optional[str] = None,
    ) -> List[Row]:
        kwargs: Dict[str, Any] = {}
        if on_conflict:
            kwargs["on_conflict"] = on_conflict
        return await self._execute(
            f"upsert {table}", self.client.table(table).upsert(rows, **kwargs).execute
        )

    async def delete(self, table: str, filters: Sequence[RowFilter]) -> List[Row]:
        if not filters:
            raise RemoteStoreError(f"Refusing unfiltered delete on {table}")
        query = _apply_filters(self.client.table(table).delete(), filters)
        return await self._execute(f"delete {table}", query.execute)

    async def rpc(self, fn: str, params: Optional[Row] = None) -> Any:
        return await self._execute(f"rpc {fn}", self.client.rpc(fn, params or {}).execute)

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------
    async def open_channel(
        self,
        channel_id: str,
        table: str,
        predicate: Optional[RowFilter],
        events: Sequence[str],
        on_event: Callable[[ChangeEvent], None],
        on_status: StatusCallback,
    ) -> Any:
        channel = self.client.channel(channel_id)

        def _callback(payload: Mapping[str, Any]) -> None:
            on_event(normalize_change_payload(table, payload))

        for event in events:
            kwargs: Dict[str, Any] = {"table": table, "schema": self.schema}
            if predicate is not None:
                kwargs["filter"] = predicate.to_realtime()
            channel = channel.on_postgres_changes(event, callback=_callback, **kwargs)

        def _status(state: Any, err: Optional[Exception] = None) -> None:
            on_status(str(getattr(state, "value", state)), err)

        try:
            await channel.subscribe(_status)
        except Exception as exc:  # noqa: BLE001
            raise RemoteStoreError(f"subscribe {channel_id} failed: {exc}") from exc
        return channel

    async def close_channel(self, channel: Any) -> None:
        if channel is None:
            return
        await self.client.remove_channel(channel)
