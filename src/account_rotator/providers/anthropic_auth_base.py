# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..accounts.types import Account
from ..core.constants import (
    CLIENT_ID,
    REFRESH_MAX_RETRIES,
    REFRESH_TIMEOUT_SECONDS,
    TOKEN_URL,
)
from ..error_handler import is_transient_status, mask_credential
from ..failure_logger import log_refresh_failure

lib_logger = logging.getLogger("account_rotator")

# Upper bound for a single backoff sleep, including server Retry-After hints
MAX_BACKOFF_SECONDS = 30

PersistCallback = Callable[[Account], Awaitable[Any]]


@dataclass
class RefreshOutcome:
    """Result of ensuring an account has a usable access token."""

    ok: bool
    status_code: Optional[int] = None
    refreshed: bool = False
    error: Optional[str] = None


class CredentialRefresher:
    """
    Keeps account access tokens valid.

    Refresh tokens are single-use, so a successful exchange is persisted
    through ``persist`` before the new token is handed out.
    """

    def __init__(
        self,
        persist: Optional[PersistCallback] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        token_url: str = TOKEN_URL,
        client_id: str = CLIENT_ID,
        max_retries: int = REFRESH_MAX_RETRIES,
        timeout: float = REFRESH_TIMEOUT_SECONDS,
    ):
        self._persist = persist
        self._http_client = http_client
        self.token_url = token_url
        self.client_id = client_id
        self.max_retries = max(1, max_retries)
        self.timeout = timeout

        self._refresh_locks: Dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()  # Protects the locks dict

    async def _get_lock(self, name: str) -> asyncio.Lock:
        async with self._locks_lock:
            if name not in self._refresh_locks:
                self._refresh_locks[name] = asyncio.Lock()
            return self._refresh_locks[name]

    async def ensure_fresh(
        self, account: Account, now: Optional[float] = None
    ) -> RefreshOutcome:
        """
        Make sure ``account`` holds an unexpired access token.

        Args:
            account: Account to check; updated in place on refresh
            now: Current time, defaults to time.time()

        Returns:
            RefreshOutcome with ok=False and the HTTP status on failure
        """
        if account.is_access_valid(now):
            return RefreshOutcome(ok=True)

        async with await self._get_lock(account.name):
            # Another task may have refreshed while we waited
            if account.is_access_valid(now):
                return RefreshOutcome(ok=True)
            return await self._refresh(account)

    async def _refresh(self, account: Account) -> RefreshOutcome:
        if not account.refresh:
            lib_logger.error(f"No refresh token for account '{account.name}'")
            log_refresh_failure(account.name, None, None, attempt=0)
            return RefreshOutcome(ok=False, error="missing refresh token")

        lib_logger.debug(
            f"Refreshing access token for '{account.name}' "
            f"(refresh {mask_credential(account.refresh)})"
        )

        if self._http_client is not None:
            return await self._exchange(self._http_client, account)
        async with httpx.AsyncClient() as client:
            return await self._exchange(client, account)

    async def _exchange(
        self, client: httpx.AsyncClient, account: Account
    ) -> RefreshOutcome:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": account.refresh,
            "client_id": self.client_id,
        }

        status_code: Optional[int] = None
        last_error: Optional[Exception] = None
        response_text: Optional[str] = None
        token_data: Optional[Dict[str, Any]] = None
        attempt = 0

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await client.post(
                    self.token_url,
                    headers=headers,
                    json=payload,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                token_data = response.json()
                status_code = response.status_code
                break

            except httpx.HTTPStatusError as e:
                last_error = e
                status_code = e.response.status_code
                response_text = e.response.text
                lib_logger.error(
                    f"HTTP {status_code} refreshing '{account.name}': {response_text}"
                )
                if is_transient_status(status_code) and attempt < self.max_retries:
                    await asyncio.sleep(self._backoff(attempt, e.response))
                    continue
                break

            except httpx.RequestError as e:
                last_error = e
                status_code = None
                lib_logger.warning(
                    f"Network error refreshing '{account.name}' "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self._backoff(attempt))
                    continue
                break

            except ValueError as e:
                # Success status with an unparsable body
                last_error = e
                break

        if not self._apply_tokens(account, token_data):
            if token_data is not None:
                last_error = ValueError("token response missing access_token/expires_in")
            log_refresh_failure(
                account.name,
                account.refresh,
                status_code,
                attempt,
                error=last_error,
                response_text=response_text,
            )
            return RefreshOutcome(
                ok=False,
                status_code=status_code,
                error=str(last_error) if last_error else None,
            )

        if self._persist is not None:
            saved = await self._persist(account)
            if saved is False:
                lib_logger.error(
                    f"Refreshed '{account.name}' but could not persist the new tokens"
                )

        lib_logger.info(f"Refreshed access token for '{account.name}'")
        return RefreshOutcome(ok=True, status_code=status_code, refreshed=True)

    @staticmethod
    def _apply_tokens(account: Account, token_data: Optional[Dict[str, Any]]) -> bool:
        if not isinstance(token_data, dict):
            return False
        access = token_data.get("access_token")
        expires_in = token_data.get("expires_in")
        if not access or not isinstance(expires_in, (int, float)):
            return False

        account.access = access
        account.refresh = token_data.get("refresh_token") or account.refresh
        account.expires_at = time.time() + expires_in
        return True

    @staticmethod
    def _backoff(attempt: int, response: Optional[httpx.Response] = None) -> float:
        wait = 2 ** (attempt - 1)
        if response is not None and response.status_code == 429:
            try:
                wait = int(response.headers.get("Retry-After", wait))
            except ValueError:
                pass
        return min(MAX_BACKOFF_SECONDS, max(0, wait))
