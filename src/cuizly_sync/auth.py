"""
auth.py

Session access for the sync layer: who is signed in, and when that changes.
Resources use the user id as the owner of their ResourceIdentity; a missing
session is not an error for them, they just keep their default value.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional, Protocol

from supabase import AsyncClient

from cuizly_sync.errors import SessionError
from cuizly_sync.logging_utils import get_logger

logger = get_logger("auth")


class SessionEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


# (event, user id or None)
SessionListener = Callable[[SessionEvent, Optional[str]], None]


class SessionProvider(Protocol):
    async def current_user_id(self) -> Optional[str]: ...

    async def access_token(self) -> Optional[str]: ...

    def on_change(self, listener: SessionListener) -> Callable[[], None]: ...

    async def sign_out(self) -> None: ...


async def require_user_id(sessions: SessionProvider) -> str:
    user_id = await sessions.current_user_id()
    if not user_id:
        raise SessionError("No active session")
    return user_id


def _user_id(session: Any) -> Optional[str]:
    user = getattr(session, "user", None)
    return getattr(user, "id", None) if user is not None else None


class SupabaseSessionProvider:
    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def current_user_id(self) -> Optional[str]:
        try:
            session = await self.client.auth.get_session()
        except Exception as exc:  # noqa: BLE001
            # Expired / corrupted session behaves like "signed out"
            logger.warning(
                "Could not read session: %s",
                exc,
                extra={
                    "invoking_func": "SupabaseSessionProvider.current_user_id",
                    "invoking_purpose": "Resolve the signed-in user",
                    "next_step": "Treat as signed out",
                    "resolution": "Sign in again",
                },
            )
            return None
        return _user_id(session) if session else None

    async def access_token(self) -> Optional[str]:
        try:
            session = await self.client.auth.get_session()
        except Exception:  # noqa: BLE001
            return None
        return getattr(session, "access_token", None) if session else None

    def on_change(self, listener: SessionListener) -> Callable[[], None]:
        def _callback(event: Any, session: Any) -> None:
            try:
                mapped = SessionEvent(str(getattr(event, "value", event)))
            except ValueError:
                logger.debug(
                    "Ignoring auth event %s",
                    event,
                    extra={
                        "invoking_func": "SupabaseSessionProvider.on_change",
                        "invoking_purpose": "Forward session changes to resources",
                        "next_step": "",
                        "resolution": "",
                    },
                )
                return
            listener(mapped, _user_id(session) if session else None)

        subscription = self.client.auth.on_auth_state_change(_callback)
        return subscription.unsubscribe

    async def sign_out(self) -> None:
        await self.client.auth.sign_out()
