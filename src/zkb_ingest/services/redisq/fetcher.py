"""
Killmail Fetcher.

Fetches full killmail data from ESI. Event sources only announce a kill
id and hash; the detail record must be fetched separately.
"""

from __future__ import annotations

import re
from typing import Any

import httpx

from ...core.constants import ESI_BASE_URL, ESI_KILLMAIL_PATH, USER_AGENT
from ...core.errors import PermanentContentError, TransientFetchError
from ...core.logging import get_logger
from ...core.retry import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_WAIT,
    DEFAULT_MIN_WAIT,
    async_retrying,
    classify_status,
    parse_retry_after,
)

logger = get_logger(__name__)

_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{40}$")


class KillmailFetcher:
    """
    Async ESI killmail fetcher with bounded retry.

    Transient failures (network error, timeout, 408/429/5xx) are retried
    with exponential backoff and jitter up to max_attempts, then surface
    as TransientFetchError. Definitive failures (404 and other 4xx, a
    body that is not a JSON object) raise PermanentContentError on the
    first attempt.

    Usage:
        async with KillmailFetcher() as fetcher:
            record = await fetcher.fetch(100, "ab" * 20)
    """

    def __init__(
        self,
        base_url: str = ESI_BASE_URL,
        user_agent: str = USER_AGENT,
        timeout: float = 30.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_wait: float = DEFAULT_MIN_WAIT,
        max_wait: float = DEFAULT_MAX_WAIT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Any) -> KillmailFetcher:
        return cls(
            base_url=settings.esi_base_url,
            user_agent=settings.user_agent,
            timeout=settings.fetch_timeout,
            max_attempts=settings.effective_max_attempts,
            min_wait=settings.fetch_min_wait,
            max_wait=settings.fetch_max_wait,
        )

    async def __aenter__(self) -> KillmailFetcher:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json",
                },
                follow_redirects=True,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def killmail_url(self, kill_id: int, kill_hash: str) -> str:
        return self.base_url + ESI_KILLMAIL_PATH.format(kill_id=kill_id, hash=kill_hash)

    async def fetch(self, kill_id: int, kill_hash: str) -> dict[str, Any]:
        """
        Fetch the full killmail record.

        Args:
            kill_id: Killmail ID
            kill_hash: 40-hex-digit killmail hash from zKillboard

        Returns:
            The ESI killmail JSON object

        Raises:
            TransientFetchError: Retry budget exhausted
            PermanentContentError: Not found, rejected, or malformed
        """
        if not _HASH_PATTERN.match(kill_hash or ""):
            raise PermanentContentError(f"invalid killmail hash {kill_hash!r}", kill_id=kill_id)

        async for attempt in async_retrying(
            max_attempts=self.max_attempts,
            min_wait=self.min_wait,
            max_wait=self.max_wait,
        ):
            with attempt:
                return await self._fetch_once(kill_id, kill_hash)

        # async_retrying re-raises the last error, so the loop never falls through
        raise TransientFetchError("retry loop exited without a result", kill_id=kill_id)

    async def _fetch_once(self, kill_id: int, kill_hash: str) -> dict[str, Any]:
        if self._client is None:
            raise RuntimeError("Fetcher not open. Use 'async with KillmailFetcher()'.")

        url = self.killmail_url(kill_id, kill_hash)
        try:
            response = await self._client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise TransientFetchError(
                "ESI request timed out", kill_id=kill_id, original_error=e
            ) from e
        except httpx.RequestError as e:
            raise TransientFetchError(
                f"ESI request failed: {e}", kill_id=kill_id, original_error=e
            ) from e

        status = classify_status(response.status_code)
        if status == "transient":
            raise TransientFetchError(
                f"ESI returned {response.status_code}",
                kill_id=kill_id,
                status_code=response.status_code,
                retry_after=parse_retry_after(response.headers),
            )
        if status == "permanent":
            raise PermanentContentError(
                f"ESI returned {response.status_code}",
                kill_id=kill_id,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PermanentContentError(
                "ESI returned a non-JSON body",
                kill_id=kill_id,
                status_code=response.status_code,
                original_error=e,
            ) from e

        if not isinstance(data, dict):
            raise PermanentContentError(
                "ESI returned a non-object body",
                kill_id=kill_id,
                status_code=response.status_code,
            )

        return data
