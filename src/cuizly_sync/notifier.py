"""
notifier.py

User-facing notifications ("toasts"). Resources report outcomes through a
Notifier; the default one writes them to the structured log, UIs and bots
plug in their own.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from cuizly_sync.logging_utils import get_logger

logger = get_logger("notifier")


@dataclass
class Toast:
    title: str
    description: Optional[str] = None
    variant: str = "default"  # "default" | "destructive"


class Notifier(Protocol):
    def notify(self, toast: Toast) -> None: ...


class LoggingNotifier:
    def notify(self, toast: Toast) -> None:
        log = logger.warning if toast.variant == "destructive" else logger.info
        log(
            "%s%s",
            toast.title,
            f" - {toast.description}" if toast.description else "",
            extra={
                "invoking_func": "LoggingNotifier.notify",
                "invoking_purpose": "Surface a user-facing message",
                "next_step": "",
                "resolution": "",
            },
        )


@dataclass
class RecordingNotifier:
    """Keeps every toast in memory (tests, batch jobs that report at the end)."""

    toasts: List[Toast] = field(default_factory=list)

    def notify(self, toast: Toast) -> None:
        self.toasts.append(toast)

    @property
    def titles(self) -> List[str]:
        return [t.title for t in self.toasts]
