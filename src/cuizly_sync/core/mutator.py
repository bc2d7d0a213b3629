# src/cuizly_sync/core/mutator.py
from __future__ import annotations

"""
mutator.py

Purpose:
    Optimistic mutations on a cache slot, serialized per resource identity.

    Flow for one mutation:
        1. wait for earlier mutations on the same slot (FIFO)
        2. compute the optimistic value from the *current* slot value
        3. write it to the slot (views update immediately)
        4. run the remote write
        5. success -> nothing else (reconciliation confirms it later)
           failure -> write the rollback value, full reload, set last_error,
                      raise RemoteStoreError to the caller

    Because step 2 happens only once the previous mutation resolved, two
    rapid toggles end in the state the user asked for last.

    States (MutationState):
        IDLE             nothing running
        MUTATING         one mutation in flight
        MUTATING_QUEUED  one in flight, at least one waiting
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from cuizly_sync.core.cache_slot import CacheSlot
from cuizly_sync.core.reconciler import Reconciler
from cuizly_sync.errors import RemoteStoreError
from cuizly_sync.logging_utils import get_logger

logger = get_logger("mutator")

T = TypeVar("T")


@dataclass(frozen=True)
class Mutation(Generic[T]):
    """Pure description of a user action on a slot."""

    description: str
    # current value -> optimistic value (may raise ValueError to reject the action)
    apply: Callable[[Optional[T]], Optional[T]]
    # (value before, optimistic value) -> remote write
    remote: Callable[[Optional[T], Optional[T]], Awaitable[Any]]


@dataclass
class PendingMutation(Generic[T]):
    description: str
    optimistic_value: Optional[T]
    rollback_value: Optional[T]
    remote_operation: Callable[[], Awaitable[Any]]


class MutationState(str, Enum):
    IDLE = "idle"
    MUTATING = "mutating"
    MUTATING_QUEUED = "mutating_queued"


class OptimisticMutator(Generic[T]):
    def __init__(self, slot: CacheSlot[T], reconciler: Reconciler[T]) -> None:
        self.slot = slot
        self.reconciler = reconciler
        self._lock = asyncio.Lock()
        self._pending = 0

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def state(self) -> MutationState:
        if self._pending == 0:
            return MutationState.IDLE
        if self._pending == 1:
            return MutationState.MUTATING
        return MutationState.MUTATING_QUEUED

    async def submit(self, mutation: Mutation[T]) -> Any:
        """Apply `mutation` optimistically and return the remote result."""
        self._pending += 1
        try:
            async with self._lock:
                return await self._run(mutation)
        finally:
            self._pending -= 1

    async def _run(self, mutation: Mutation[T]) -> Any:
        before = self.slot.value
        optimistic = mutation.apply(before)

        pending: PendingMutation[T] = PendingMutation(
            description=mutation.description,
            optimistic_value=optimistic,
            rollback_value=before,
            remote_operation=lambda: mutation.remote(before, optimistic),
        )
        self.slot.write(pending.optimistic_value)

        try:
            result = await pending.remote_operation()
        except asyncio.CancelledError:
            self.slot.write(pending.rollback_value)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Mutation '%s' on %s failed: %s",
                pending.description,
                self.slot.identity.key,
                exc,
                extra={
                    "invoking_func": "OptimisticMutator.submit",
                    "invoking_purpose": "Apply an optimistic mutation",
                    "next_step": "Roll back and reload authoritative state",
                    "resolution": "",
                },
            )
            self.slot.write(pending.rollback_value)
            await self.reconciler.reload()

            if isinstance(exc, RemoteStoreError):
                error = exc
            else:
                error = RemoteStoreError(f"{pending.description} failed: {exc}")
                error.__cause__ = exc
            self.slot.set_error(error)
            raise error

        logger.debug(
            "Mutation '%s' on %s committed",
            pending.description,
            self.slot.identity.key,
            extra={
                "invoking_func": "OptimisticMutator.submit",
                "invoking_purpose": "Apply an optimistic mutation",
                "next_step": "",
                "resolution": "",
            },
        )
        return result
