"""
RedisQ Event Source.

Long-polls zKillboard's RedisQ endpoint and yields kill announcements.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from ...core.errors import ConnectivityError
from ...core.logging import get_logger
from ...core.retry import parse_retry_after
from .models import KillEvent, MalformedEnvelopeError, RedisQConfig, SourceStatus

logger = get_logger(__name__)

DEFAULT_RATE_LIMIT_BACKOFF = 30.0
MAX_ERROR_BACKOFF = 30.0


def build_http_client(user_agent: str, read_timeout: float = 60.0) -> httpx.AsyncClient:
    """Create the shared zKillboard/ESI client configuration."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10.0, read=read_timeout, write=10.0, pool=10.0),
        headers={
            "User-Agent": user_agent,
            "Accept": "application/json",
        },
        follow_redirects=True,
    )


@dataclass
class RedisQEventSource:
    """
    RedisQ long-poll event source.

    Iterating yields one KillEvent per announced kill until stop() is
    called. Network failures pause the loop with exponential backoff and
    never end the iteration. Malformed packages are logged and dropped.
    """

    config: RedisQConfig
    client: httpx.AsyncClient | None = None

    # Runtime state
    _owns_client: bool = False
    _stopping: bool = False
    _running: bool = False
    _consecutive_errors: int = 0
    _last_poll_time: datetime | None = None
    _events_yielded: int = 0
    _envelopes_dropped: int = 0
    _sleep_task: asyncio.Task | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.config.queue_id:
            self.config.queue_id = f"zkb-ingest-{uuid.uuid4().hex[:8]}"
            logger.info("Generated new queue ID: %s", self.config.queue_id)

    def __aiter__(self) -> AsyncIterator[KillEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[KillEvent]:
        """Yield kill events until stopped."""
        if self.client is None:
            self.client = build_http_client(self.config.user_agent)
            self._owns_client = True

        self._running = True
        try:
            while not self._stopping:
                try:
                    event = await self.poll_once()
                    self._consecutive_errors = 0
                except (httpx.RequestError, ConnectivityError) as e:
                    self._consecutive_errors += 1
                    backoff = min(MAX_ERROR_BACKOFF, 2.0**self._consecutive_errors)
                    logger.warning(
                        "RedisQ poll error (consecutive=%d), pausing %.0fs: %s",
                        self._consecutive_errors,
                        backoff,
                        e,
                    )
                    await self._pause(backoff)
                    continue

                if event is not None:
                    self._events_yielded += 1
                    yield event
        finally:
            self._running = False

    async def poll_once(self) -> KillEvent | None:
        """
        Execute a single poll to RedisQ.

        Returns:
            The announced kill, or None for a quiet period, a rate limit
            pause, or a dropped envelope.

        Raises:
            ConnectivityError: Unexpected HTTP status from RedisQ
            httpx.RequestError: Network failure other than a read timeout
        """
        if self.client is None:
            raise RuntimeError("RedisQ client not open")

        params = {
            "queueID": self.config.queue_id,
            "ttw": str(self.config.ttw),
        }

        try:
            response = await self.client.get(self.config.url, params=params)
        except httpx.ReadTimeout:
            # Long poll expired with nothing to deliver
            return None
        self._last_poll_time = datetime.now(timezone.utc)

        if response.status_code == 429:
            backoff = parse_retry_after(response.headers) or DEFAULT_RATE_LIMIT_BACKOFF
            logger.warning("RedisQ rate limited (429), backing off %.1fs", backoff)
            await self._pause(float(backoff))
            return None

        if response.status_code != 200:
            raise ConnectivityError(f"RedisQ returned {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            self._envelopes_dropped += 1
            logger.warning("RedisQ returned a non-JSON body, dropping")
            return None

        package = data.get("package") if isinstance(data, dict) else None
        if package is None:
            # No kill available (normal during quiet periods)
            return None

        try:
            return KillEvent.from_redisq_package(package, received_at=time.time())
        except MalformedEnvelopeError as e:
            self._envelopes_dropped += 1
            logger.warning("Dropping malformed RedisQ package: %s", e)
            return None

    async def _pause(self, seconds: float) -> None:
        """Sleep that stop() can cut short."""
        if self._stopping or seconds <= 0:
            return
        self._sleep_task = asyncio.ensure_future(asyncio.sleep(seconds))
        try:
            await self._sleep_task
        except asyncio.CancelledError:
            if not self._stopping:
                raise
        finally:
            self._sleep_task = None

    def stop(self) -> None:
        """Ask the iteration to end after the poll in progress."""
        self._stopping = True
        if self._sleep_task is not None:
            self._sleep_task.cancel()

    async def close(self) -> None:
        """Release the HTTP client if this source created it."""
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None
            self._owns_client = False

    def get_status(self) -> SourceStatus:
        """Get current source status."""
        return SourceStatus(
            is_running=self._running,
            queue_id=self.config.queue_id,
            last_poll_time=self._last_poll_time,
            events_yielded=self._events_yielded,
            envelopes_dropped=self._envelopes_dropped,
            consecutive_errors=self._consecutive_errors,
        )
