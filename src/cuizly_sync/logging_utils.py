# logging_utils.py
"""
logging_utils.py

Central logging utilities for cuizly-sync.

Every module gets its logger through get_logger() so that a single
StructuredFormatter renders one pipe-delimited line per record:

<RunId>|<Date>|<Time>|<Level>|<File:Line>|<Module.Func>|<ModulePurpose>|
<InvokingFunc>|<InvokingFuncPurpose>|<Detail>|<NextStep>|<Resolution>|<END>

Context is passed through `extra`:

    logger.warning(
        "Reload failed for %s",
        identity.key,
        extra={
            "invoking_func": "Reconciler.reload",
            "invoking_purpose": "Refresh a cache slot from the row store",
            "next_step": "Retry after backoff",
            "resolution": "",
        },
    )

Scripts that are not module-oriented can use log_info / log_error with
explicit keyword context instead.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Dict, Optional

LOG_RUN_ID: str = uuid.uuid4().hex[:8]
# Alias used by scripts and banners
RUN_ID: str = LOG_RUN_ID

# High-level purposes by module name (record.module)
MODULE_PURPOSES: Dict[str, str] = {
    "config": "Load settings and create the Supabase client from environment variables",
    "cache_slot": "Hold last-known-good state for one synced resource",
    "mutator": "Apply optimistic mutations and roll them back on remote failure",
    "reconciler": "Reload authoritative state from the row store (retry, poll, push)",
    "subscriptions": "Own realtime channels for mounted views",
    "lifetime": "Bind async work to the lifetime of a mounted view",
    "supabase_store": "Row store adapter over supabase-py (PostgREST + realtime)",
    "auth": "Expose the current session and session changes",
    "storage": "Upload files to Supabase storage buckets",
    "functions": "Call Supabase edge functions and pass vendor errors through",
    "voice": "Chain voice assistant chat and text-to-speech edge functions",
    "base": "Synced resource wiring: slot + mutator + reconciler + channel",
    "favorites": "Keep the user's favorite restaurants in sync",
    "notifications": "Keep the user's notifications in sync",
    "profile": "Keep the user's profile in sync",
    "ratings": "Keep a restaurant's ratings in sync",
    "reservations": "Keep reservations in sync for a consumer or a restaurant",
    "offers": "Keep active restaurant offers in sync",
    "comments": "Keep a restaurant's comments and their authors in sync",
    "activity": "Batch and flush user activity events",
    "notifier": "Deliver user-facing notifications",
    "watch_resources": "CLI watching favorites and notifications of the current user",
}


def get_module_purpose(module_name: str) -> str:
    return MODULE_PURPOSES.get(module_name, "")


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter that emits a single '|' separated line conforming
    to the log template described in the module docstring.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        dt = datetime.datetime.fromtimestamp(record.created)
        date_str = dt.strftime("%Y-%m-%d")
        time_str = dt.strftime("%H:%M:%S")

        # Run / execution id can be overridden per record via extra={"run_id": ...}
        run_id = getattr(record, "run_id", RUN_ID)

        code_location = f"{record.filename}:{record.lineno}"
        module_name = record.module
        module_purpose = get_module_purpose(module_name)

        invoking_func = getattr(record, "invoking_func", "")
        invoking_purpose = getattr(record, "invoking_purpose", "")
        next_step = getattr(record, "next_step", "")
        resolution = getattr(record, "resolution", "")

        detail = record.getMessage()
        if record.exc_info:
            detail = f"{detail} | EXC={self.formatException(record.exc_info)!r}"

        return (
            f"{run_id}|{date_str}|{time_str}|{record.levelname}|{code_location}|"
            f"{module_name}.{record.funcName}|{module_purpose}|"
            f"{invoking_func}|{invoking_purpose}|"
            f"{detail}|{next_step}|{resolution}|<END>"
        )


def init_logging(level: int = logging.INFO) -> None:
    """
    Initialize the root logger once with StructuredFormatter.

    Modules call get_logger() instead of logging.basicConfig() so
    configuration stays central.
    """
    root = logging.getLogger()
    if root.handlers:
        # Already configured (pytest, REPL, host application)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    root.setLevel(level)

    # supabase-py logs every HTTP request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger that renders through StructuredFormatter."""
    init_logging()
    return logging.getLogger(name)


# ---------------------------------------------------------------------------
# Keyword helpers for scripts
# ---------------------------------------------------------------------------
_script_logger = logging.getLogger("cuizly_sync.scripts")


def _log(
    level: int,
    message: str,
    *,
    invoking_function: str = "",
    invoking_purpose: str = "",
    next_step: str = "",
    resolution: str = "",
    exc: Optional[BaseException] = None,
) -> None:
    init_logging()
    _script_logger.log(
        level,
        message if exc is None else f"{message} | EXC={exc!r}",
        extra={
            "invoking_func": invoking_function,
            "invoking_purpose": invoking_purpose,
            "next_step": next_step,
            "resolution": resolution,
        },
        stacklevel=3,
    )


def log_info(
    message: str,
    *,
    invoking_function: str = "",
    invoking_purpose: str = "",
    next_step: str = "",
    resolution: str = "",
) -> None:
    _log(
        logging.INFO,
        message,
        invoking_function=invoking_function,
        invoking_purpose=invoking_purpose,
        next_step=next_step,
        resolution=resolution,
    )


def log_error(
    message: str,
    *,
    invoking_function: str = "",
    invoking_purpose: str = "",
    next_step: str = "",
    resolution: str = "",
    exc: Optional[BaseException] = None,
) -> None:
    _log(
        logging.ERROR,
        message,
        invoking_function=invoking_function,
        invoking_purpose=invoking_purpose,
        next_step=next_step,
        resolution=resolution,
        exc=exc,
    )
