"""
conftest.py

In-memory stand-ins for the remote row store and the session provider, plus
fixtures shared by the test modules. Async code is driven with asyncio.run()
inside plain test functions.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from cuizly_sync.auth import SessionEvent
from cuizly_sync.config import SyncSettings
from cuizly_sync.core.identity import Order, RowFilter, matches_all
from cuizly_sync.core.subscriptions import ChangeEvent
from cuizly_sync.errors import RemoteStoreError
from cuizly_sync.notifier import RecordingNotifier

Row = Dict[str, Any]


@dataclass
class FakeChannel:
    channel_id: str
    table: str
    predicate: Optional[RowFilter]
    events: Sequence[str]
    on_event: Callable[[ChangeEvent], None]
    on_status: Callable[..., None]
    closed: bool = False


@dataclass
class _Failure:
    op: str
    table: Optional[str]
    remaining: int
    error: BaseException = field(default_factory=lambda: RemoteStoreError("injected failure"))


class FakeRowStore:
    """RowStore over dicts in memory. Every call yields to the event loop once."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Row]] = defaultdict(list)
        # Column defaults applied on insert, per table (server-side defaults)
        self.defaults: Dict[str, Row] = {}
        self.channels: List[FakeChannel] = []
        self.calls: List[tuple] = []
        self.rpc_calls: List[tuple] = []
        self.public_names: Dict[str, Row] = {}
        self.activity: List[Row] = []
        self.latency = 0.0
        self._failures: List[_Failure] = []
        self._ids = itertools.count(1)
        self.rpcs: Dict[str, Callable[[Row], Any]] = {
            "mark_notification_read": self._mark_notification_read,
            "mark_all_notifications_read": self._mark_all_notifications_read,
            "get_public_user_names": self._get_public_user_names,
            "log_user_activity": self._log_user_activity,
        }

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------
    def seed(self, table: str, *rows: Row) -> None:
        for row in rows:
            self.tables[table].append(dict(row))

    def fail_next(self, op: str, *, table: Optional[str] = None, times: int = 1, error: Optional[BaseException] = None) -> None:
        failure = _Failure(op, table, times)
        if error is not None:
            failure.error = error
        self._failures.append(failure)

    def count(self, op: str, table: Optional[str] = None) -> int:
        return sum(1 for c in self.calls if c[0] == op and (table is None or c[1] == table))

    @property
    def open_channels(self) -> List[FakeChannel]:
        return [c for c in self.channels if not c.closed]

    def emit(self, table: str, event_type: str, new: Optional[Row] = None, old: Optional[Row] = None) -> None:
        event = ChangeEvent(table=table, event_type=event_type, new=new, old=old)
        for channel in self.open_channels:
            if channel.table == table:
                channel.on_event(event)

    def set_status(self, status: str) -> None:
        for channel in self.open_channels:
            channel.on_status(status, None)

    async def _enter(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        await asyncio.sleep(self.latency)
        for failure in self._failures:
            if failure.op == op and failure.table in (None, table) and failure.remaining > 0:
                failure.remaining -= 1
                raise failure.error

    # ------------------------------------------------------------------
    # RowStore
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
        await self._enter("select", table)
        rows = [copy.deepcopy(r) for r in self.tables[table] if matches_all(filters, r)]
        for o in reversed(order):
            rows.sort(key=lambda r: (r.get(o.column) is None, r.get(o.column)), reverse=o.descending)
        if limit is not None:
            rows = rows[:limit]
        # "*, joined(...)" keeps every column; seeded rows carry the joined block themselves
        if not columns.lstrip().startswith("*"):
            keep = [c.strip() for c in columns.split(",")]
            rows = [{c: r.get(c) for c in keep} for r in rows]
        return rows

    async def insert(self, table: str, rows: Row | Sequence[Row]) -> List[Row]:
        await self._enter("insert", table)
        created = []
        for row in [rows] if isinstance(rows, dict) else rows:
            stored = {**self.defaults.get(table, {}), **row}
            stored.setdefault("id", f"{table}-{next(self._ids)}")
            self.tables[table].append(stored)
            created.append(copy.deepcopy(stored))
        return created

    async def update(self, table: str, values: Row, filters: Sequence[RowFilter]) -> List[Row]:
        await self._enter("update", table)
        updated = []
        for row in self.tables[table]:
            if matches_all(filters, row):
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated

    async def upsert(self, table: str, rows: Row | Sequence[Row], *, on_conflict: Optional[str] = None) -> List[Row]:
        await self._enter("upsert", table)
        keys = [k.strip() for k in (on_conflict or "id").split(",")]
        result = []
        for row in [rows] if isinstance(rows, dict) else rows:
            existing = next(
                (r for r in self.tables[table] if all(r.get(k) == row.get(k) for k in keys)),
                None,
            )
            if existing is None:
                existing = {"id": f"{table}-{next(self._ids)}", **self.defaults.get(table, {})}
                self.tables[table].append(existing)
            existing.update(row)
            result.append(copy.deepcopy(existing))
        return result

    async def delete(self, table: str, filters: Sequence[RowFilter]) -> List[Row]:
        await self._enter("delete", table)
        removed = [r for r in self.tables[table] if matches_all(filters, r)]
        self.tables[table] = [r for r in self.tables[table] if not matches_all(filters, r)]
        return removed

    async def rpc(self, fn: str, params: Optional[Row] = None) -> Any:
        await self._enter("rpc", fn)
        self.rpc_calls.append((fn, dict(params or {})))
        handler = self.rpcs.get(fn)
        if handler is None:
            raise RemoteStoreError(f"Unknown rpc {fn}")
        return handler(params or {})

    async def open_channel(self, channel_id, table, predicate, events, on_event, on_status) -> FakeChannel:
        await self._enter("open_channel", table)
        channel = FakeChannel(channel_id, table, predicate, tuple(events), on_event, on_status)
        self.channels.append(channel)
        on_status("SUBSCRIBED", None)
        return channel

    async def close_channel(self, channel: FakeChannel) -> None:
        self.calls.append(("close_channel", channel.table))
        channel.closed = True

    # ------------------------------------------------------------------
    # Server-side functions
    # ------------------------------------------------------------------
    def _mark_notification_read(self, params: Row) -> None:
        for row in self.tables["notifications"]:
            if row.get("id") == params["p_notification_id"]:
                row["is_read"] = True

    def _mark_all_notifications_read(self, params: Row) -> None:
        for row in self.tables["notifications"]:
            row["is_read"] = True

    def _get_public_user_names(self, params: Row) -> List[Row]:
        return [self.public_names[u] for u in params.get("user_ids", []) if u in self.public_names]

    def _log_user_activity(self, params: Row) -> None:
        self.activity.append(dict(params))


class FakeSessionProvider:
    def __init__(self, user_id: Optional[str] = None) -> None:
        self.user_id = user_id
        self._listeners: List[Callable[[SessionEvent, Optional[str]], None]] = []

    async def current_user_id(self) -> Optional[str]:
        return self.user_id

    async def access_token(self) -> Optional[str]:
        return f"token-{self.user_id}" if self.user_id else None

    def on_change(self, listener):
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def sign_in(self, user_id: str) -> None:
        self.user_id = user_id
        for listener in list(self._listeners):
            listener(SessionEvent.SIGNED_IN, user_id)

    async def sign_out(self) -> None:
        self.user_id = None
        for listener in list(self._listeners):
            listener(SessionEvent.SIGNED_OUT, None)


async def settle(seconds: float = 0.01) -> None:
    """Let tasks spawned by event handlers (reloads, user switches) finish."""
    await asyncio.sleep(seconds)


@pytest.fixture
def store() -> FakeRowStore:
    return FakeRowStore()


@pytest.fixture
def sessions() -> FakeSessionProvider:
    return FakeSessionProvider("u1")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(profile_poll_seconds=0, reload_backoff_seconds=0, activity_flush_seconds=0)
