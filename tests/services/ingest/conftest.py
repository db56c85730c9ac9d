"""Fixtures for ingest pipeline tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from zkb_ingest.core.errors import PermanentContentError, StoreIntegrityError
from zkb_ingest.services.killmail_store import (
    KillmailHeader,
    Participant,
    PersistOutcome,
    SQLiteKillmailStore,
    StoreStats,
)


class ListSource:
    """
    Event source over a fixed list.

    With block_at_end the iteration waits for stop() after the last event,
    like a live stream in a quiet period.
    """

    def __init__(self, events: list, block_at_end: bool = False):
        self.events = list(events)
        self.block_at_end = block_at_end
        self.stopped = False
        self._stop_event = asyncio.Event()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            if self.stopped:
                return
            yield event
        if self.block_at_end:
            await self._stop_event.wait()

    def stop(self) -> None:
        self.stopped = True
        self._stop_event.set()


class FakeFetcher:
    """
    ESI stand-in keyed by kill id.

    A value that is an exception is raised; an unknown id is a 404.
    When gate is set, every fetch waits on it first.
    """

    def __init__(self, records: dict[int, Any] | None = None, gate: asyncio.Event | None = None):
        self.records = dict(records or {})
        self.gate = gate
        self.calls: list[int] = []

    async def fetch(self, kill_id: int, kill_hash: str) -> dict[str, Any]:
        self.calls.append(kill_id)
        if self.gate is not None:
            await self.gate.wait()
        value = self.records.get(kill_id)
        if value is None:
            raise PermanentContentError("ESI returned 404", kill_id=kill_id, status_code=404)
        if isinstance(value, BaseException):
            raise value
        return value


class MemoryKillmailStore:
    """In-memory KillmailStore with the same duplicate rules as SQLite."""

    def __init__(self):
        self.killmails: dict[int, KillmailHeader] = {}
        self.participants: dict[int, list[Participant]] = {}
        self.hashes: set[bytes] = set()
        self.persist_calls = 0

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def persist(self, fingerprint, header, participants) -> PersistOutcome:
        self.persist_calls += 1
        if sum(1 for p in participants if p.is_victim) != 1:
            raise StoreIntegrityError("expected exactly one victim", kill_id=header.killmail_id)
        if fingerprint in self.hashes or header.killmail_id in self.killmails:
            return PersistOutcome.DUPLICATE
        self.killmails[header.killmail_id] = header
        self.participants[header.killmail_id] = list(participants)
        self.hashes.add(bytes(fingerprint))
        return PersistOutcome.INSERTED

    async def fingerprint_exists(self, fingerprint: bytes) -> bool:
        return fingerprint in self.hashes

    async def get_killmail(self, killmail_id: int) -> KillmailHeader | None:
        return self.killmails.get(killmail_id)

    async def get_participants(self, killmail_id: int) -> list[Participant]:
        return list(self.participants.get(killmail_id, []))

    async def get_stats(self) -> StoreStats:
        times = sorted(h.killmail_time for h in self.killmails.values())
        return StoreStats(
            total_killmails=len(self.killmails),
            total_participants=sum(len(p) for p in self.participants.values()),
            total_hashes=len(self.hashes),
            oldest_killmail_time=times[0] if times else None,
            newest_killmail_time=times[-1] if times else None,
            schema_version=0,
            database_size_bytes=0,
        )


@pytest.fixture
def memory_store() -> MemoryKillmailStore:
    return MemoryKillmailStore()


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> AsyncGenerator[SQLiteKillmailStore, None]:
    """Initialized store on a temporary database."""
    store = SQLiteKillmailStore(db_path=tmp_path / "ingest.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def list_source():
    """Factory: list_source(events, block_at_end=False)."""
    return ListSource


@pytest.fixture
def fake_fetcher():
    """Factory: fake_fetcher({kill_id: record_or_exception}, gate=None)."""
    return FakeFetcher
