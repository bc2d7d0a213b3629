# src/cuizly_sync/activity.py
from __future__ import annotations

"""
activity.py

Purpose:
    Queue user activity events (page views, page exits, custom events) and
    send them in batches through rpc `log_user_activity`.

    - flush() sends every queued event concurrently; if any send fails the
      whole batch goes back to the head of the queue, in order.
    - page_view() first queues a `page_exit` for the previous page when the
      user stayed there more than one second.
    - start(scope) flushes every `flush_interval` seconds while the scope is
      alive, and once more (after a final page_exit) when it closes.

Usage:
    tracker = ActivityTracker(store)
    async with ViewScope("app") as scope:
        tracker.start(scope)
        tracker.page_view("/restaurants", "Restaurants")
        tracker.track("search", {"query": "sushi"})
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from cuizly_sync.config import SyncSettings
from cuizly_sync.core.lifetime import ViewScope
from cuizly_sync.logging_utils import get_logger
from cuizly_sync.store.base import RowStore

logger = get_logger("activity")

RPC_NAME = "log_user_activity"
# Shorter stays are not worth a page_exit event
MIN_PAGE_SECONDS = 1


@dataclass
class ActivityEvent:
    event_type: str
    page_url: str
    event_data: Dict[str, Any] = field(default_factory=dict)
    page_title: Optional[str] = None
    referrer: Optional[str] = None
    duration_seconds: Optional[int] = None

    def to_params(self, session_id: str) -> Dict[str, Any]:
        return {
            "p_session_id": session_id,
            "p_event_type": self.event_type,
            "p_event_data": self.event_data or {},
            "p_page_url": self.page_url,
            "p_page_title": self.page_title,
            "p_referrer": self.referrer,
            "p_duration_seconds": self.duration_seconds,
        }


class ActivityTracker:
    def __init__(
        self,
        store: RowStore,
        session_id: Optional[str] = None,
        *,
        flush_interval: Optional[float] = None,
        settings: Optional[SyncSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.session_id = session_id or str(uuid.uuid4())
        settings = settings or SyncSettings()
        self.flush_interval = settings.activity_flush_seconds if flush_interval is None else flush_interval
        self._clock = clock
        self._queue: List[ActivityEvent] = []
        self._page_url = "/"
        self._page_title: Optional[str] = None
        self._referrer: Optional[str] = None
        self._page_started = clock()

    @property
    def queue(self) -> List[ActivityEvent]:
        return list(self._queue)

    @property
    def current_page(self) -> str:
        return self._page_url

    def track(self, event_type: str, data: Optional[Dict[str, Any]] = None, **extra: Any) -> ActivityEvent:
        event = ActivityEvent(
            event_type=event_type,
            page_url=extra.get("page_url") or self._page_url,
            event_data=dict(data or {}),
            page_title=extra.get("page_title", self._page_title),
            referrer=extra.get("referrer", self._referrer),
            duration_seconds=extra.get("duration_seconds"),
        )
        self._queue.append(event)
        return event

    def _queue_page_exit(self) -> None:
        duration = int(self._clock() - self._page_started)
        if duration > MIN_PAGE_SECONDS:
            self.track("page_exit", duration_seconds=duration)

    def page_view(self, url: str, title: Optional[str] = None, referrer: Optional[str] = None) -> None:
        self._queue_page_exit()
        self._referrer = referrer if referrer is not None else self._page_url
        self._page_url = url
        self._page_title = title
        self._page_started = self._clock()
        self.track("page_view")

    async def flush(self) -> int:
        """Send queued events. Returns how many were sent (0 when the batch was re-queued)."""
        if not self._queue:
            return 0
        batch, self._queue = self._queue, []
        try:
            await asyncio.gather(*(self.store.rpc(RPC_NAME, e.to_params(self.session_id)) for e in batch))
        except Exception as exc:  # noqa: BLE001
            self._queue[:0] = batch
            logger.warning(
                "Activity flush of %d events failed: %s",
                len(batch),
                exc,
                extra={
                    "invoking_func": "ActivityTracker.flush",
                    "invoking_purpose": "Send batched activity events",
                    "next_step": "Events re-queued for the next flush",
                    "resolution": "",
                },
            )
            return 0
        logger.debug(
            "Flushed %d activity events",
            len(batch),
            extra={
                "invoking_func": "ActivityTracker.flush",
                "invoking_purpose": "Send batched activity events",
                "next_step": "",
                "resolution": "",
            },
        )
        return len(batch)

    def start(self, scope: ViewScope) -> Optional[asyncio.Task]:
        scope.push_async_callback(self._final_flush)
        if self.flush_interval <= 0:
            return None
        return scope.spawn(self._flush_loop(), name=f"activity:{self.session_id}")

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            await self.flush()

    async def _final_flush(self) -> None:
        self._queue_page_exit()
        await self.flush()
