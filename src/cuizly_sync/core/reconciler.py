# src/cuizly_sync/core/reconciler.py
from __future__ import annotations

"""
reconciler.py

Purpose:
    Replace a cache slot's value with freshly fetched authoritative state.

    Three triggers, one component:
      - explicit:     reload() (mount, manual refresh, mutation rollback)
      - time-based:   start_polling(scope, interval) as a safety net for missed pushes
      - event-based:  handle_event(event) reloads, or patches in place when a
                      `patch` function is configured and the event carries the row

    Failure policy:
      A reload that fails is retried `retries` times with `backoff` seconds
      between attempts. When every attempt fails the slot keeps its last
      value, is_loading goes back to False and last_error is set. Nothing is
      raised to the caller.
"""

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, Optional, TypeVar

from cuizly_sync.core.cache_slot import CacheSlot
from cuizly_sync.core.subscriptions import ChangeEvent
from cuizly_sync.errors import RemoteStoreError
from cuizly_sync.logging_utils import get_logger

if TYPE_CHECKING:
    from cuizly_sync.core.lifetime import ViewScope

logger = get_logger("reconciler")

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[T]]
# (current value, event) -> patched value, or None when the event cannot be applied locally
Patcher = Callable[[Optional[T], ChangeEvent], Optional[T]]


class Reconciler(Generic[T]):
    def __init__(
        self,
        slot: CacheSlot[T],
        fetch: Fetcher,
        *,
        retries: int = 2,
        backoff: float = 1.0,
        patch: Optional[Patcher] = None,
    ) -> None:
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.slot = slot
        self.fetch = fetch
        self.retries = retries
        self.backoff = backoff
        self.patch = patch
        self.attempts_total = 0
        self._poll_task: Optional[asyncio.Task] = None
        self._reload_task: Optional[asyncio.Task] = None
        self._dirty = False

    # ------------------------------------------------------------------
    # Explicit reload
    # ------------------------------------------------------------------
    async def reload(self) -> bool:
        """Fetch and apply authoritative state. Returns True when applied."""
        ticket = self.slot.start_load()
        last_exc: Optional[BaseException] = None

        for attempt in range(self.retries + 1):
            self.attempts_total += 1
            try:
                result = await self.fetch()
            except asyncio.CancelledError:
                self.slot.finish_load(ticket)
                raise
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                logger.warning(
                    "Reload of %s failed (attempt %d/%d): %s",
                    self.slot.identity.key,
                    attempt + 1,
                    self.retries + 1,
                    exc,
                    extra={
                        "invoking_func": "Reconciler.reload",
                        "invoking_purpose": "Refresh a cache slot from the row store",
                        "next_step": "Retry after backoff" if attempt < self.retries else "Give up; keep last value",
                        "resolution": "",
                    },
                )
                if attempt < self.retries and self.backoff > 0:
                    await asyncio.sleep(self.backoff)
                continue

            applied = self.slot.finish_load(ticket, result)
            logger.debug(
                "Reload of %s %s (version=%d)",
                self.slot.identity.key,
                "applied" if applied else "discarded",
                self.slot.version,
                extra={
                    "invoking_func": "Reconciler.reload",
                    "invoking_purpose": "Refresh a cache slot from the row store",
                    "next_step": "",
                    "resolution": "",
                },
            )
            return applied

        if isinstance(last_exc, RemoteStoreError):
            error = last_exc
        else:
            error = RemoteStoreError(f"Reload of {self.slot.identity.key} failed: {last_exc}")
            error.__cause__ = last_exc
        self.slot.finish_load(ticket, error=error)
        logger.error(
            "Giving up on %s after %d attempts",
            self.slot.identity.key,
            self.retries + 1,
            extra={
                "invoking_func": "Reconciler.reload",
                "invoking_purpose": "Refresh a cache slot from the row store",
                "next_step": "Keep last-known value; next poll / event retries",
                "resolution": "Check connectivity and RLS policies",
            },
        )
        return False

    # ------------------------------------------------------------------
    # Event-based
    # ------------------------------------------------------------------
    def try_patch(self, event: ChangeEvent) -> bool:
        """Apply `event` to the slot synchronously. False when a reload is needed."""
        if self.patch is None or not event.carries_full_row:
            return False
        patched = self.patch(self.slot.value, event)
        if patched is None:
            return False
        if patched != self.slot.value:
            self.slot.write(patched)
        return True

    async def handle_event(self, event: ChangeEvent) -> bool:
        """Patch in place when possible, otherwise reload."""
        if self.try_patch(event):
            return True
        return await self.reload()

    def request_reload(self, scope: "ViewScope") -> asyncio.Task:
        """
        Schedule a reload inside `scope`, coalescing bursts: events arriving
        while a reload runs trigger exactly one more reload afterwards.
        """
        if self._reload_task is not None and not self._reload_task.done():
            self._dirty = True
            return self._reload_task
        self._dirty = False
        self._reload_task = scope.spawn(self._reload_until_clean(), name=f"reload:{self.slot.identity.key}")
        return self._reload_task

    async def _reload_until_clean(self) -> None:
        while True:
            await self.reload()
            if not self._dirty:
                return
            self._dirty = False

    # ------------------------------------------------------------------
    # Time-based
    # ------------------------------------------------------------------
    def start_polling(self, scope: "ViewScope", interval: float) -> Optional[asyncio.Task]:
        """Poll every `interval` seconds for as long as `scope` is alive. 0 disables."""
        if interval <= 0:
            return None
        if self._poll_task is not None and not self._poll_task.done():
            return self._poll_task
        self._poll_task = scope.spawn(
            self._poll_loop(interval),
            name=f"poll:{self.slot.identity.key}",
        )
        return self._poll_task

    async def _poll_loop(self, interval: float) -> None:
        logger.debug(
            "Polling %s every %.1fs",
            self.slot.identity.key,
            interval,
            extra={
                "invoking_func": "Reconciler._poll_loop",
                "invoking_purpose": "Periodic safety-net reconciliation",
                "next_step": "Sleep then reload",
                "resolution": "",
            },
        )
        while True:
            await asyncio.sleep(interval)
            await self.reload()
