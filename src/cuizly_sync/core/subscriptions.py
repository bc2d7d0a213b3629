# src/cuizly_sync/core/subscriptions.py
from __future__ import annotations

"""
subscriptions.py

Purpose:
    Own the realtime channels opened on behalf of mounted views.

    One SubscriptionHandle per (resource identity, table) per view. A handle
    moves through:

        UNSUBSCRIBED -> SUBSCRIBING -> SUBSCRIBED
                     -> (ERROR -> RECONNECTING -> SUBSCRIBED)*
                     -> CLOSED (terminal)

    Reconnection is done by the transport; the manager only tracks state and
    tells the owner when a channel came back so it can reconcile whatever it
    may have missed.

    Events are triggers, not truth: delivery is at-least-once and can be
    duplicated or reordered across reconnects, so handlers reconcile or
    patch idempotently.
"""

import contextlib
import datetime
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, Mapping, Optional, Sequence, Tuple

from cuizly_sync.core.identity import ResourceIdentity, RowFilter
from cuizly_sync.errors import RemoteStoreError, ScopeClosedError
from cuizly_sync.logging_utils import get_logger

if TYPE_CHECKING:
    from cuizly_sync.core.lifetime import ViewScope
    from cuizly_sync.store.base import RowStore

logger = get_logger("subscriptions")

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE", "*")


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str                            # INSERT | UPDATE | DELETE
    new: Optional[Mapping[str, Any]] = None    # full row for INSERT / UPDATE
    old: Optional[Mapping[str, Any]] = None    # primary key (or full row) for UPDATE / DELETE
    received_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @property
    def carries_full_row(self) -> bool:
        if self.event_type == "DELETE":
            return bool(self.old)
        return bool(self.new)

    @property
    def row_id(self) -> Optional[Any]:
        for row in (self.new, self.old):
            if row and row.get("id") is not None:
                return row["id"]
        return None


class SubscriptionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


EventHandler = Callable[[ChangeEvent], None]


@dataclass(eq=False)
class SubscriptionHandle:
    channel_id: str
    identity: ResourceIdentity
    table: str
    predicate: Optional[RowFilter]
    on_event: EventHandler
    events: Tuple[str, ...] = ("*",)
    on_reconnect: Optional[Callable[[], None]] = None
    state: SubscriptionState = SubscriptionState.UNSUBSCRIBED
    channel: Any = None
    delivered: int = 0


class SubscriptionManager:
    def __init__(self, store: "RowStore") -> None:
        self.store = store
        self._handles: Dict[str, SubscriptionHandle] = {}
        self._counter = itertools.count(1)
        # Lifetime totals, useful to assert subscribe/unsubscribe pairing
        self.opened_total = 0
        self.closed_total = 0

    @property
    def open_count(self) -> int:
        return len(self._handles)

    def handles(self) -> Sequence[SubscriptionHandle]:
        return list(self._handles.values())

    # ------------------------------------------------------------------
    # Subscribe / unsubscribe
    # ------------------------------------------------------------------
    async def subscribe(
        self,
        identity: ResourceIdentity,
        table: str,
        on_event: EventHandler,
        *,
        predicate: Optional[RowFilter] = None,
        events: Sequence[str] = ("*",),
        on_reconnect: Optional[Callable[[], None]] = None,
    ) -> SubscriptionHandle:
        for ev in events:
            if ev not in EVENT_TYPES:
                raise ValueError(f"Unknown change event {ev!r}; expected one of {EVENT_TYPES}")

        if any(h.identity == identity and h.table == table for h in self._handles.values()):
            logger.debug(
                "Duplicate subscription for %s on %s",
                identity.key,
                table,
                extra={
                    "invoking_func": "SubscriptionManager.subscribe",
                    "invoking_purpose": "Open a realtime channel for a view",
                    "next_step": "Open anyway; delivery is deduplicated per connection",
                    "resolution": "Mount each resource once per view",
                },
            )

        handle = SubscriptionHandle(
            channel_id=f"{identity.key}:{table}:{next(self._counter)}",
            identity=identity,
            table=table,
            predicate=predicate,
            on_event=on_event,
            events=tuple(events),
            on_reconnect=on_reconnect,
        )
        handle.state = SubscriptionState.SUBSCRIBING

        try:
            handle.channel = await self.store.open_channel(
                handle.channel_id,
                table,
                predicate,
                handle.events,
                lambda event: self._dispatch(handle, event),
                lambda status, err=None: self._on_status(handle, status, err),
            )
        except Exception as exc:  # noqa: BLE001
            handle.state = SubscriptionState.CLOSED
            logger.error(
                "Failed to open channel %s: %s",
                handle.channel_id,
                exc,
                extra={
                    "invoking_func": "SubscriptionManager.subscribe",
                    "invoking_purpose": "Open a realtime channel for a view",
                    "next_step": "Rely on polling / manual refresh for this view",
                    "resolution": "Check realtime is enabled for the table",
                },
            )
            if isinstance(exc, RemoteStoreError):
                raise
            raise RemoteStoreError(f"Could not open channel {handle.channel_id}: {exc}") from exc

        if handle.state == SubscriptionState.SUBSCRIBING:
            handle.state = SubscriptionState.SUBSCRIBED
        self._handles[handle.channel_id] = handle
        self.opened_total += 1

        logger.info(
            "Channel %s open (filter=%s, events=%s)",
            handle.channel_id,
            predicate.to_realtime() if predicate else "*",
            ",".join(handle.events),
            extra={
                "invoking_func": "SubscriptionManager.subscribe",
                "invoking_purpose": "Open a realtime channel for a view",
                "next_step": "Route change events to the resource",
                "resolution": "",
            },
        )
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Close the handle's channel. Returns False if it was already closed."""
        if handle.state == SubscriptionState.CLOSED:
            return False
        handle.state = SubscriptionState.CLOSED
        self._handles.pop(handle.channel_id, None)
        self.closed_total += 1

        try:
            await self.store.close_channel(handle.channel)
        except Exception as exc:  # noqa: BLE001
            # Channel is gone from our bookkeeping either way; the transport drops it on disconnect.
            logger.warning(
                "Error closing channel %s: %s",
                handle.channel_id,
                exc,
                extra={
                    "invoking_func": "SubscriptionManager.unsubscribe",
                    "invoking_purpose": "Release a realtime channel on view teardown",
                    "next_step": "Continue teardown",
                    "resolution": "",
                },
            )
        logger.debug(
            "Channel %s closed after %d events",
            handle.channel_id,
            handle.delivered,
            extra={
                "invoking_func": "SubscriptionManager.unsubscribe",
                "invoking_purpose": "Release a realtime channel on view teardown",
                "next_step": "",
                "resolution": "",
            },
        )
        return True

    async def bind(self, scope: "ViewScope", identity: ResourceIdentity, table: str, on_event: EventHandler, **kwargs: Any) -> SubscriptionHandle:
        """Subscribe and register the matching unsubscribe on the view scope."""
        if not scope.alive:
            raise ScopeClosedError(f"Cannot subscribe {identity.key} on closed scope '{scope.name}'")
        handle = await self.subscribe(identity, table, on_event, **kwargs)
        scope.push_async_callback(self.unsubscribe, handle)
        return handle

    @contextlib.asynccontextmanager
    async def subscription(
        self,
        identity: ResourceIdentity,
        table: str,
        on_event: EventHandler,
        **kwargs: Any,
    ) -> AsyncIterator[SubscriptionHandle]:
        handle = await self.subscribe(identity, table, on_event, **kwargs)
        try:
            yield handle
        finally:
            await self.unsubscribe(handle)

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------
    def _dispatch(self, handle: SubscriptionHandle, event: ChangeEvent) -> None:
        if handle.state == SubscriptionState.CLOSED:
            return
        if event.event_type not in handle.events and "*" not in handle.events:
            return
        if handle.predicate is not None:
            row = event.new if event.event_type != "DELETE" else event.old
            # DELETE payloads may only carry the primary key; let those through
            if row and handle.predicate.column in row and not handle.predicate.matches(row):
                return

        handle.delivered += 1
        logger.debug(
            "Event %s on %s via %s",
            event.event_type,
            event.table,
            handle.channel_id,
            extra={
                "invoking_func": "SubscriptionManager._dispatch",
                "invoking_purpose": "Route a change event to its resource",
                "next_step": "Reconcile or patch the cache slot",
                "resolution": "",
            },
        )
        try:
            handle.on_event(event)
        except Exception:  # noqa: BLE001
            logger.error(
                "Event handler failed on %s",
                handle.channel_id,
                exc_info=True,
                extra={
                    "invoking_func": "SubscriptionManager._dispatch",
                    "invoking_purpose": "Route a change event to its resource",
                    "next_step": "Keep the channel open; next reconciliation restores state",
                    "resolution": "Fix the resource event handler",
                },
            )

    def _on_status(self, handle: SubscriptionHandle, status: str, err: Optional[BaseException] = None) -> None:
        if handle.state == SubscriptionState.CLOSED:
            return
        status = (status or "").upper()

        if status == "SUBSCRIBED":
            was_down = handle.state in (SubscriptionState.ERROR, SubscriptionState.RECONNECTING)
            handle.state = SubscriptionState.SUBSCRIBED
            if was_down:
                logger.info(
                    "Channel %s reconnected",
                    handle.channel_id,
                    extra={
                        "invoking_func": "SubscriptionManager._on_status",
                        "invoking_purpose": "Track channel health",
                        "next_step": "Reconcile to catch events missed while down",
                        "resolution": "",
                    },
                )
                if handle.on_reconnect is not None:
                    handle.on_reconnect()
        elif status in ("CHANNEL_ERROR", "TIMED_OUT", "ERROR"):
            handle.state = SubscriptionState.ERROR
            logger.warning(
                "Channel %s error (%s): %s",
                handle.channel_id,
                status,
                err,
                extra={
                    "invoking_func": "SubscriptionManager._on_status",
                    "invoking_purpose": "Track channel health",
                    "next_step": "Wait for transport reconnection",
                    "resolution": "",
                },
            )
            handle.state = SubscriptionState.RECONNECTING
        elif status == "CLOSED":
            # Closed by the server / transport, not by us: the transport rejoins
            handle.state = SubscriptionState.RECONNECTING
