"""
Backfill Event Source from zKillboard History.

zKillboard publishes one file per day mapping every kill id of that day
to its hash. Replaying those files through the pipeline backfills a date
range; the dedup gate skips kills that are already stored.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import httpx

from ...core.logging import get_logger
from .models import KillEvent, MalformedEnvelopeError, SourceStatus
from .poller import build_http_client

logger = get_logger(__name__)

# Days fetched at once
DEFAULT_DAY_CONCURRENCY = 3


def iter_days(first: date, last: date) -> list[date]:
    """Inclusive list of days from first to last."""
    if last < first:
        raise ValueError(f"last day {last} is before first day {first}")
    return [first + timedelta(days=n) for n in range((last - first).days + 1)]


@dataclass
class HistoryEventSource:
    """
    Finite event source over an inclusive range of days.

    Up to day_concurrency days are fetched at once; events still come out
    day by day. A day that cannot be fetched or decoded is logged and
    skipped; the iteration continues with the next day.
    """

    first: date
    last: date
    url_template: str
    user_agent: str = ""
    client: httpx.AsyncClient | None = None
    day_concurrency: int = DEFAULT_DAY_CONCURRENCY

    # Runtime state
    _owns_client: bool = False
    _stopping: bool = False
    _running: bool = False
    _events_yielded: int = 0
    _envelopes_dropped: int = 0
    _days_failed: int = 0

    def __post_init__(self) -> None:
        # Validates the range up front
        self._days = iter_days(self.first, self.last)
        if self.day_concurrency < 1:
            raise ValueError("day_concurrency must be at least 1")

    @classmethod
    def from_settings(cls, settings: Any, first: date, last: date) -> HistoryEventSource:
        return cls(
            first=first,
            last=last,
            url_template=settings.history_url,
            user_agent=settings.user_agent,
        )

    def __aiter__(self) -> AsyncIterator[KillEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[KillEvent]:
        """Yield one event per history entry, day by day, ascending kill id."""
        if self.client is None:
            self.client = build_http_client(self.user_agent, read_timeout=60.0)
            self._owns_client = True

        self._running = True
        try:
            for start in range(0, len(self._days), self.day_concurrency):
                if self._stopping:
                    break
                batch = self._days[start : start + self.day_concurrency]
                results = await asyncio.gather(*(self.fetch_day(day) for day in batch))

                for day, entries in zip(batch, results):
                    if self._stopping:
                        break
                    if entries is None:
                        self._days_failed += 1
                        continue

                    logger.info("History %s: %d kills", day.isoformat(), len(entries))
                    for event in self._decode_entries(day, entries):
                        if self._stopping:
                            break
                        self._events_yielded += 1
                        yield event
        finally:
            self._running = False

    async def fetch_day(self, day: date) -> dict[str, Any] | None:
        """
        Fetch one day's id-to-hash map.

        Returns:
            The map, or None if the day could not be fetched.
        """
        if self.client is None:
            raise RuntimeError("History client not open")

        url = self.url_template.format(day=day.strftime("%Y%m%d"))
        try:
            response = await self.client.get(url)
        except httpx.RequestError as e:
            logger.warning("History fetch failed for %s: %s", day.isoformat(), e)
            return None

        if response.status_code != 200:
            logger.warning(
                "History fetch for %s returned %d", day.isoformat(), response.status_code
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("History for %s is not JSON", day.isoformat())
            return None

        if not isinstance(data, dict):
            logger.warning("History for %s is not an object", day.isoformat())
            return None

        return data

    def _decode_entries(self, day: date, entries: dict[str, Any]) -> list[KillEvent]:
        events: list[KillEvent] = []
        for kill_id, kill_hash in entries.items():
            try:
                events.append(KillEvent.from_history_entry(kill_id, kill_hash))
            except MalformedEnvelopeError as e:
                self._envelopes_dropped += 1
                logger.warning("Dropping malformed history entry on %s: %s", day.isoformat(), e)
        events.sort(key=lambda ev: ev.kill_id)
        return events

    def stop(self) -> None:
        """Ask the iteration to end before the next event."""
        self._stopping = True

    async def close(self) -> None:
        """Release the HTTP client if this source created it."""
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None
            self._owns_client = False

    def get_status(self) -> SourceStatus:
        return SourceStatus(
            is_running=self._running,
            events_yielded=self._events_yielded,
            envelopes_dropped=self._envelopes_dropped,
            consecutive_errors=self._days_failed,
        )
