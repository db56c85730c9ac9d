"""
zkb-ingest Test Suite - Shared Fixtures and Configuration
"""

from __future__ import annotations

import json
from typing import Any

import pytest

# =============================================================================
# Killmail Fixtures
# =============================================================================

SAMPLE_HASH = "ab" * 20


def make_esi_killmail(
    killmail_id: int = 100,
    killmail_time: str = "2021-10-01T00:00:00Z",
    solar_system_id: int = 30000142,
    victim: dict[str, Any] | None = None,
    attackers: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build an ESI /killmails/{id}/{hash}/ response body."""
    return {
        "killmail_id": killmail_id,
        "killmail_time": killmail_time,
        "solar_system_id": solar_system_id,
        "victim": victim
        if victim is not None
        else {"character_id": 1, "ship_type_id": 99, "damage_taken": 500},
        "attackers": attackers
        if attackers is not None
        else [{"character_id": 2, "damage_done": 500, "final_blow": True}],
    }


def make_package(kill_id: int = 100, kill_hash: str = SAMPLE_HASH) -> dict[str, Any]:
    """Build a RedisQ package."""
    return {
        "killID": kill_id,
        "zkb": {
            "locationID": 40009082,
            "hash": kill_hash,
            "fittedValue": 10000.0,
            "totalValue": 15000.0,
            "points": 1,
            "npc": False,
            "solo": True,
            "awox": False,
        },
    }


def make_event(kill_id: int = 100, kill_hash: str = SAMPLE_HASH):
    """Build a KillEvent the way an event source would."""
    from zkb_ingest.services.redisq.models import KillEvent

    return KillEvent.from_redisq_package(make_package(kill_id, kill_hash), received_at=0.0)


def hash_for(kill_id: int) -> str:
    """Deterministic 40-hex-digit hash per kill id."""
    return f"{kill_id:040x}"


@pytest.fixture
def esi_killmail() -> dict[str, Any]:
    """The killmail 100 record: victim character 1, one attacker character 2."""
    return make_esi_killmail()


@pytest.fixture
def redisq_package() -> dict[str, Any]:
    return make_package()


@pytest.fixture
def redisq_response(redisq_package) -> bytes:
    return json.dumps({"package": redisq_package}).encode()


# =============================================================================
# Singleton Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_all_singletons():
    """
    Reset module-level singletons between tests.

    Settings must be reset first; logging reads its level from settings.
    """

    def do_reset():
        from zkb_ingest.core.config import reset_settings
        from zkb_ingest.core.logging import reset_logging

        reset_settings()
        reset_logging()

    do_reset()
    yield
    do_reset()


@pytest.fixture
def killmail_factory():
    """Factory for ESI killmail bodies: killmail_factory(killmail_id=..., attackers=...)."""
    return make_esi_killmail


@pytest.fixture
def event_factory():
    """Factory for KillEvents: event_factory(kill_id, kill_hash)."""
    return make_event


@pytest.fixture
def package_factory():
    """Factory for RedisQ packages."""
    return make_package


@pytest.fixture
def hash_factory():
    """Deterministic hash per kill id."""
    return hash_for
