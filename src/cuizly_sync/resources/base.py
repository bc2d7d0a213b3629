# src/cuizly_sync/resources/base.py
from __future__ import annotations

"""
base.py

Purpose:
    SyncedResource wires the core pieces for one logical resource:

        CacheSlot            last-known-good value for (resource, user, sub-filter)
        Reconciler           authoritative reloads: mount, poll, push, rollback
        OptimisticMutator    serialized optimistic writes
        SubscriptionManager  one realtime channel per mounted view

    Subclasses describe the resource (table, default value, fetch, patch) and
    expose user actions built on _mutate(). Public methods are the error
    boundary: failures become slot state (last_error) and user-facing
    toasts, never exceptions.

Lifecycle:
    async with ViewScope("dashboard") as scope:
        favorites = FavoritesResource(store, sessions)
        await favorites.mount(scope)      # load + channel + polling + session listener
        ...
    # scope exit: channel closed, polling cancelled, slot discarded
"""

import asyncio
import contextlib
from typing import Any, AsyncIterator, Generic, Optional, Sequence, Tuple, TypeVar

from cuizly_sync.auth import SessionEvent, SessionProvider
from cuizly_sync.config import SyncSettings
from cuizly_sync.core.cache_slot import CacheSlot, SlotSnapshot
from cuizly_sync.core.identity import ResourceIdentity, RowFilter
from cuizly_sync.core.lifetime import ViewScope
from cuizly_sync.core.mutator import Mutation, OptimisticMutator
from cuizly_sync.core.reconciler import Reconciler
from cuizly_sync.core.subscriptions import ChangeEvent, SubscriptionHandle, SubscriptionManager
from cuizly_sync.errors import CuizlySyncError, ScopeClosedError
from cuizly_sync.logging_utils import get_logger
from cuizly_sync.messages import t
from cuizly_sync.notifier import LoggingNotifier, Notifier, Toast
from cuizly_sync.store.base import RowStore

logger = get_logger("base")

T = TypeVar("T")


class SyncedResource(Generic[T]):
    resource_type: str = ""
    table: str = ""
    events: Tuple[str, ...] = ("*",)
    # Name of the SyncSettings attribute holding this resource's poll interval
    poll_setting: Optional[str] = None
    # Signed-out sessions keep the default value and open no channel
    requires_session: bool = True

    def __init__(
        self,
        store: RowStore,
        sessions: SessionProvider,
        *,
        settings: Optional[SyncSettings] = None,
        notifier: Optional[Notifier] = None,
        subscriptions: Optional[SubscriptionManager] = None,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.settings = settings or SyncSettings()
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.subscriptions = subscriptions or SubscriptionManager(store)

        self.user_id: Optional[str] = None
        self._scope: Optional[ViewScope] = None
        self._handle: Optional[SubscriptionHandle] = None
        # Session events are applied one at a time, in arrival order
        self._switch_lock = asyncio.Lock()
        self._build_slot()

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------
    def default_value(self) -> T:
        raise NotImplementedError

    async def fetch(self) -> T:
        """Authoritative read. Only called with a session when requires_session."""
        raise NotImplementedError

    def sub_filter(self) -> Optional[str]:
        return None

    def predicate(self) -> Optional[RowFilter]:
        return RowFilter.eq("user_id", self.user_id) if self.user_id else None

    def patch(self, current: Optional[T], event: ChangeEvent) -> Optional[T]:
        """Return the patched value, or None to fall back to a full reload."""
        return None

    def on_change_event(self, event: ChangeEvent) -> None:
        """Side effects of a pushed change (toasts, counters). Default: none."""

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(self.resource_type, self.user_id, self.sub_filter())

    def read(self) -> SlotSnapshot[T]:
        return self.slot.read()

    @property
    def value(self) -> T:
        value = self.slot.value
        return self.default_value() if value is None else value

    @property
    def loading(self) -> bool:
        return self.slot.read().is_loading

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.slot.read().last_error

    @property
    def mounted_scope(self) -> Optional[ViewScope]:
        return self._scope if self._scope is not None and self._scope.alive else None

    def _build_slot(self) -> None:
        self.slot: CacheSlot[T] = CacheSlot(self.identity, self.default_value())
        self.reconciler: Reconciler[T] = Reconciler(
            self.slot,
            self._fetch_for_slot,
            retries=self.settings.reload_retries,
            backoff=self.settings.reload_backoff_seconds,
            patch=self.patch,
        )
        self.mutator: OptimisticMutator[T] = OptimisticMutator(self.slot, self.reconciler)

    async def _fetch_for_slot(self) -> Optional[T]:
        if self.requires_session and not self.user_id:
            return self.default_value()
        scope = self.mounted_scope
        if scope is None:
            return await self.fetch()
        # None once the view is gone; the closed slot ignores it
        return await scope.run(self.fetch())

    # ------------------------------------------------------------------
    # Mount / unmount
    # ------------------------------------------------------------------
    async def mount(self, scope: ViewScope) -> None:
        if not scope.alive:
            raise ScopeClosedError(f"Cannot mount {self.resource_type} on a closed scope")
        if self.mounted_scope is not None:
            raise RuntimeError(f"{self.resource_type} is already mounted")

        self._scope = scope
        self.user_id = await self.sessions.current_user_id()
        self._build_slot()
        # LIFO: registered first, released last
        scope.callback(self._discard_slot)

        await self.refresh()
        await self._open_channel()

        interval = getattr(self.settings, self.poll_setting, 0.0) if self.poll_setting else 0.0
        self.reconciler.start_polling(scope, interval)

        scope.callback(self.sessions.on_change(self._on_session_change))
        logger.info(
            "Mounted %s (user=%s)",
            self.identity.key,
            self.user_id or "-",
            extra={
                "invoking_func": "SyncedResource.mount",
                "invoking_purpose": "Attach a synced resource to a view",
                "next_step": "Serve reads from the cache slot",
                "resolution": "",
            },
        )

    @contextlib.asynccontextmanager
    async def mounted(self, scope: Optional[ViewScope] = None) -> AsyncIterator["SyncedResource[T]"]:
        """Mount on `scope`, or on a private scope closed when the block exits."""
        if scope is not None:
            await self.mount(scope)
            yield self
            return
        async with ViewScope(self.resource_type) as own:
            await self.mount(own)
            yield self

    def _discard_slot(self) -> None:
        self.slot.close()
        self._handle = None
        self._scope = None

    async def _open_channel(self) -> None:
        scope = self.mounted_scope
        if scope is None or self._handle is not None:
            return
        if self.requires_session and not self.user_id:
            return
        try:
            self._handle = await self.subscriptions.bind(
                scope,
                self.identity,
                self.table,
                self._on_event,
                predicate=self.predicate(),
                events=self.events,
                on_reconnect=self._request_reload,
            )
        except CuizlySyncError as exc:
            # Realtime is a convenience; the slot still works with reloads / polling
            self.slot.set_error(exc)

    async def _close_channel(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            await self.subscriptions.unsubscribe(handle)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    async def refresh(self) -> bool:
        """Reload from the row store. Never raises; check last_error on False."""
        return await self.reconciler.reload()

    def _request_reload(self) -> None:
        scope = self.mounted_scope
        if scope is not None:
            self.reconciler.request_reload(scope)

    def _on_event(self, event: ChangeEvent) -> None:
        self.on_change_event(event)
        if not self.reconciler.try_patch(event):
            self._request_reload()

    def _on_session_change(self, event: SessionEvent, user_id: Optional[str]) -> None:
        scope = self.mounted_scope
        if scope is None:
            return
        if event == SessionEvent.SIGNED_OUT:
            scope.spawn(self._switch_user(None))
        elif event in (SessionEvent.SIGNED_IN, SessionEvent.USER_UPDATED) and user_id != self.user_id:
            scope.spawn(self._switch_user(user_id))

    async def _switch_user(self, user_id: Optional[str]) -> None:
        async with self._switch_lock:
            if user_id is not None and user_id == self.user_id and self._handle is not None:
                return
            await self._close_channel()
            self.user_id = user_id
            self.slot.identity = self.identity
            # Loads still running were fetched for the previous owner
            self.slot.invalidate()
            if user_id is None:
                self.slot.write(self.default_value())
                self.slot.set_error(None)
                return
            await self.refresh()
            await self._open_channel()

    # ------------------------------------------------------------------
    # Mutations (error boundary)
    # ------------------------------------------------------------------
    def toast(self, title_key: str, description_key: Optional[str] = None, *, error: bool = False) -> None:
        lang = self.settings.language
        self.notifier.notify(
            Toast(
                title=t(title_key, lang),
                description=t(description_key, lang) if description_key else None,
                variant="destructive" if error else "default",
            )
        )

    async def _mutate(
        self,
        mutation: Mutation[T],
        *,
        success: Optional[Tuple[str, Optional[str]]] = None,
        failure: str = "sync.loadError",
    ) -> bool:
        if self.requires_session and not self.user_id:
            return False
        try:
            await self.mutator.submit(mutation)
        except (CuizlySyncError, ValueError) as exc:
            logger.warning(
                "%s on %s failed: %s",
                mutation.description,
                self.identity.key,
                exc,
                extra={
                    "invoking_func": "SyncedResource._mutate",
                    "invoking_purpose": "Run a user action on a synced resource",
                    "next_step": "Notify the user; slot already rolled back",
                    "resolution": "",
                },
            )
            if isinstance(exc, ValueError) and not isinstance(exc, CuizlySyncError):
                self.slot.set_error(exc)
            self.toast("error.title", failure, error=True)
            return False
        if success is not None:
            self.toast(success[0], success[1])
        return True


def rows_without(rows: Sequence[dict], row_id: Any) -> list:
    return [r for r in rows if r.get("id") != row_id]
