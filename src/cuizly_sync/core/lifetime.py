# src/cuizly_sync/core/lifetime.py
from __future__ import annotations

"""
lifetime.py

Purpose:
    ViewScope is the lifetime token of a mounted view. Everything a view
    acquires (realtime channels, polling loops, listeners) is registered on
    the scope and released when the `async with` block exits, on every exit
    path including exceptions and cancellation.

    Async work bound to the scope through run() has its result dropped when
    the scope closed while the work was in flight.

Usage:
    async with ViewScope("favorites-page") as scope:
        await favorites.mount(scope)
        ...
"""

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set, TypeVar

from cuizly_sync.errors import ScopeClosedError
from cuizly_sync.logging_utils import get_logger

logger = get_logger("lifetime")

R = TypeVar("R")


class ViewScope:
    def __init__(self, name: str = "view") -> None:
        self.name = name
        self._stack = contextlib.AsyncExitStack()
        self._tasks: Set[asyncio.Task] = set()
        self._alive = False
        self._closed = False

    @property
    def alive(self) -> bool:
        return self._alive

    async def __aenter__(self) -> "ViewScope":
        if self._closed:
            raise ScopeClosedError(f"Scope '{self.name}' cannot be reopened")
        await self._stack.__aenter__()
        self._alive = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        await self.close()
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._alive = False
        self._closed = True

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        # Cleanups run LIFO: channels close before slots are discarded
        await self._stack.aclose()
        logger.debug(
            "Scope '%s' closed",
            self.name,
            extra={
                "invoking_func": "ViewScope.close",
                "invoking_purpose": "Release everything a view acquired",
                "next_step": "",
                "resolution": "",
            },
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def _ensure_alive(self) -> None:
        if not self._alive:
            raise ScopeClosedError(f"Scope '{self.name}' is not active")

    def push_async_callback(self, callback: Callable[..., Awaitable[Any]], *args: Any) -> None:
        self._ensure_alive()
        self._stack.push_async_callback(callback, *args)

    def callback(self, callback: Callable[..., Any], *args: Any) -> None:
        self._ensure_alive()
        self._stack.callback(callback, *args)

    # ------------------------------------------------------------------
    # Work bound to the scope
    # ------------------------------------------------------------------
    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> asyncio.Task:
        """Start a background task that is cancelled when the scope closes."""
        if not self._alive:
            coro.close()
            raise ScopeClosedError(f"Scope '{self.name}' is not active")
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, awaitable: Awaitable[R]) -> Optional[R]:
        """
        Await `awaitable`; return its result only if the scope is still alive.

        The request itself is not aborted when the scope closes midway; its
        result is simply ignored.
        """
        result = await awaitable
        if not self._alive:
            logger.debug(
                "Dropping result delivered after scope '%s' closed",
                self.name,
                extra={
                    "invoking_func": "ViewScope.run",
                    "invoking_purpose": "Ignore async results after view teardown",
                    "next_step": "",
                    "resolution": "result_dropped",
                },
            )
            return None
        return result
