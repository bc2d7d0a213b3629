# src/cuizly_sync/errors.py
from __future__ import annotations

"""
errors.py

Purpose:
    Error taxonomy shared by every layer.

      - SessionError       no session / expired session (callers fall back to defaults)
      - RemoteStoreError   row store, storage or realtime failure (retried, then surfaced)
      - VendorError        third-party API errors passed through verbatim (429, 402, ...)
      - InvalidFilterError malformed filter descriptor, raised at construction
      - ConfigError        invalid environment configuration
      - ScopeClosedError   work submitted to a view that is already torn down

Core components raise these; the resource layer converts them into
slot state and user notifications.
"""

from typing import Any, Optional


class CuizlySyncError(Exception):
    """Base class for every error raised by cuizly_sync."""


class ConfigError(CuizlySyncError):
    pass


class SessionError(CuizlySyncError):
    pass


class InvalidFilterError(CuizlySyncError, ValueError):
    pass


class ScopeClosedError(CuizlySyncError):
    pass


class RemoteStoreError(CuizlySyncError):
    """A row store / storage call failed. `code` carries the PostgREST code when known."""

    def __init__(self, message: str, *, code: Optional[str] = None, details: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.details = details


class VendorError(CuizlySyncError):
    """Error returned by an edge function / vendor API, kept verbatim."""

    def __init__(self, status: int, message: str, *, payload: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.payload = payload

    def __str__(self) -> str:
        return f"[{self.status}] {self.message}"


class RateLimitError(VendorError):
    pass


class PaymentRequiredError(VendorError):
    pass
