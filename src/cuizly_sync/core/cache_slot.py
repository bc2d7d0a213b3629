# src/cuizly_sync/core/cache_slot.py
from __future__ import annotations

"""
cache_slot.py

Purpose:
    In-memory container for the last-known-good value of one synced resource.

    - read() never blocks and returns an immutable SlotSnapshot
    - write() replaces the value synchronously (no network)
    - start_load() / finish_load() do the loading-flag bookkeeping

    Stale responses:
        start_load() hands out a LoadTicket stamped with the slot's write
        generation and a load sequence number. finish_load() discards a
        result (and returns False) when
          - a local write or invalidate() happened after the load started, or
          - a load that started later has already been applied.
        `version` only moves when an authoritative result is actually applied.

    Listeners are notified synchronously after every state change.
"""

from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, TypeVar

from cuizly_sync.core.identity import ResourceIdentity
from cuizly_sync.logging_utils import get_logger

logger = get_logger("cache_slot")

T = TypeVar("T")

_UNSET = object()


@dataclass(frozen=True)
class SlotSnapshot(Generic[T]):
    value: Optional[T]
    is_loading: bool
    last_error: Optional[BaseException]
    version: int


@dataclass(frozen=True)
class LoadTicket:
    generation: int
    sequence: int


Listener = Callable[[SlotSnapshot], None]


class CacheSlot(Generic[T]):
    def __init__(self, identity: ResourceIdentity, initial: Optional[T] = None) -> None:
        self.identity = identity
        self._value: Optional[T] = initial
        self._is_loading = False
        self._last_error: Optional[BaseException] = None
        self._version = 0

        # Bumped by every write; loads started before a write are stale
        self._generation = 0
        # Loads in flight; only the latest one may clear is_loading
        self._load_sequence = 0
        # Sequence of the newest load applied so far; older results are stale
        self._applied_sequence = 0
        self._listeners: List[Listener] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def read(self) -> SlotSnapshot[T]:
        return SlotSnapshot(
            value=self._value,
            is_loading=self._is_loading,
            last_error=self._last_error,
            version=self._version,
        )

    @property
    def value(self) -> Optional[T]:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def write(self, value: Optional[T]) -> None:
        """Replace the value locally (optimistic write, event patch, rollback)."""
        if self._closed:
            return
        self._generation += 1
        self._value = value
        self._notify()

    def set_error(self, error: Optional[BaseException]) -> None:
        self._last_error = error
        self._notify()

    def invalidate(self) -> None:
        """Make every load in flight stale (the slot now serves another identity)."""
        self._generation += 1

    def start_load(self) -> LoadTicket:
        self._load_sequence += 1
        self._is_loading = True
        self._notify()
        return LoadTicket(generation=self._generation, sequence=self._load_sequence)

    def finish_load(
        self,
        ticket: LoadTicket,
        result: object = _UNSET,
        *,
        error: Optional[BaseException] = None,
    ) -> bool:
        """
        Complete a load started with start_load().

        Returns True when `result` was applied as the new authoritative value.
        Errors are recorded without touching the value.
        """
        if self._closed:
            # View is gone; results delivered after teardown are ignored
            return False

        if ticket.sequence == self._load_sequence:
            self._is_loading = False

        stale = ticket.generation != self._generation or ticket.sequence < self._applied_sequence

        if error is not None:
            # A newer load already answered; its outcome stands
            if not stale:
                self._last_error = error
            self._notify()
            return False

        if result is _UNSET:
            self._notify()
            return False

        if stale:
            logger.debug(
                "Discarding stale load for %s (load %d, generation %d; applied load %d, generation %d)",
                self.identity.key,
                ticket.sequence,
                ticket.generation,
                self._applied_sequence,
                self._generation,
                extra={
                    "invoking_func": "CacheSlot.finish_load",
                    "invoking_purpose": "Apply an authoritative reload",
                    "next_step": "Keep newer local value; next reconciliation refreshes it",
                    "resolution": "stale_discarded",
                },
            )
            self._notify()
            return False

        # Keep the current object when content is unchanged
        if result != self._value:
            self._value = result  # type: ignore[assignment]
        self._applied_sequence = ticket.sequence
        self._version += 1
        self._last_error = None
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------
    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.read()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.error(
                    "Cache slot listener failed for %s",
                    self.identity.key,
                    exc_info=True,
                    extra={
                        "invoking_func": "CacheSlot._notify",
                        "invoking_purpose": "Notify views of a slot change",
                        "next_step": "Continue with remaining listeners",
                        "resolution": "Fix the listener callback",
                    },
                )
