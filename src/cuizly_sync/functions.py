# src/cuizly_sync/functions.py
from __future__ import annotations

"""
functions.py

Purpose:
    Call Supabase edge functions over HTTP (httpx).

      POST {SUPABASE_URL}/functions/v1/{name}
      headers: apikey, Authorization: Bearer <session token or anon key>

    Vendor errors are passed through, not retried:
      429 -> RateLimitError       (localized "rate limited" + server message)
      402 -> PaymentRequiredError (localized "payment required" + server message)
      other >= 400 -> VendorError
    Transport failures (DNS, TLS, timeouts) become RemoteStoreError.
"""

from typing import Any, Dict, Optional

import httpx

from cuizly_sync.auth import SessionProvider
from cuizly_sync.config import SyncSettings, supabase_key, supabase_url
from cuizly_sync.errors import PaymentRequiredError, RateLimitError, RemoteStoreError, VendorError
from cuizly_sync.logging_utils import get_logger
from cuizly_sync.messages import t

logger = get_logger("functions")


def _server_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(payload, dict):
        return str(payload.get("error") or payload.get("message") or payload)
    return str(payload)


class EdgeFunctionClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        sessions: Optional[SessionProvider] = None,
        *,
        settings: Optional[SyncSettings] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.sessions = sessions
        self.settings = settings or SyncSettings()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=self.settings.functions_timeout_seconds)

    @classmethod
    def from_env(cls, sessions: Optional[SessionProvider] = None, *, settings: Optional[SyncSettings] = None) -> "EdgeFunctionClient":
        return cls(supabase_url(), supabase_key(), sessions, settings=settings)

    async def __aenter__(self) -> "EdgeFunctionClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    def url_for(self, name: str) -> str:
        return f"{self.base_url}/functions/v1/{name}"

    async def _headers(self) -> Dict[str, str]:
        token = await self.sessions.access_token() if self.sessions is not None else None
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
            "Content-Type": "application/json",
        }

    async def invoke(self, name: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """POST `body` to edge function `name` and return its decoded JSON."""
        try:
            response = await self.http.post(
                self.url_for(name),
                json=body or {},
                headers=await self._headers(),
                timeout=self.settings.functions_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Edge function %s unreachable: %s",
                name,
                exc,
                extra={
                    "invoking_func": "EdgeFunctionClient.invoke",
                    "invoking_purpose": "Call a Supabase edge function",
                    "next_step": "Report the failure to the caller",
                    "resolution": "Check network / SUPABASE_URL",
                },
            )
            raise RemoteStoreError(f"Edge function {name} unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise self._vendor_error(name, response)

        try:
            return response.json()
        except ValueError as exc:
            raise VendorError(response.status_code, f"{name} returned a non-JSON body") from exc

    def _vendor_error(self, name: str, response: httpx.Response) -> VendorError:
        status = response.status_code
        server = _server_message(response)
        lang = self.settings.language

        if status == 429:
            error: VendorError = RateLimitError(status, f"{t('vendor.rateLimited', lang)} ({server})", payload=server)
        elif status == 402:
            error = PaymentRequiredError(status, f"{t('vendor.paymentRequired', lang)} ({server})", payload=server)
        else:
            error = VendorError(status, server or t("vendor.error", lang), payload=server)

        logger.warning(
            "Edge function %s failed: %s",
            name,
            error,
            extra={
                "invoking_func": "EdgeFunctionClient.invoke",
                "invoking_purpose": "Call a Supabase edge function",
                "next_step": "Pass the vendor error through to the caller",
                "resolution": "Retry later" if status == 429 else "",
            },
        )
        return error
