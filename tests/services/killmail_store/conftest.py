"""Fixtures for killmail_store tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from zkb_ingest.services.killmail_store import (
    KillmailHeader,
    Participant,
    SQLiteKillmailStore,
)


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_killmails.db"


@pytest_asyncio.fixture
async def store(temp_db_path: Path) -> AsyncGenerator[SQLiteKillmailStore, None]:
    """Create and initialize a test store."""
    store = SQLiteKillmailStore(db_path=temp_db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def sample_header() -> KillmailHeader:
    """Killmail 100 in Jita."""
    return KillmailHeader(
        killmail_id=100,
        killmail_time="2021-10-01T00:00:00Z",
        solar_system_id=30000142,
    )


@pytest.fixture
def sample_participants() -> list[Participant]:
    """Victim character 1 in ship 99, one attacker character 2."""
    return [
        Participant(
            killmail_id=100,
            character_id=1,
            corporation_id=None,
            alliance_id=None,
            ship_type_id=99,
            damage=500,
            is_victim=True,
        ),
        Participant(
            killmail_id=100,
            character_id=2,
            corporation_id=None,
            alliance_id=None,
            ship_type_id=None,
            damage=500,
            is_victim=False,
        ),
    ]


@pytest.fixture
def sample_fingerprint() -> bytes:
    return bytes.fromhex("ab" * 20)
