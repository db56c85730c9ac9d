"""
Killmail Store Protocol Interface.

This file defines the abstract interface for killmail storage implementations.

The protocol lets the pipeline take its store as an injected collaborator,
so tests can substitute an in-memory fake for the SQLite implementation.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class KillmailHeader:
    """One row of the killmails table. Write-once."""

    killmail_id: int
    killmail_time: str  # ISO-8601, stored exactly as received
    solar_system_id: int


@dataclass(frozen=True)
class Participant:
    """
    One row of the participants table.

    Unique on (killmail_id, character_id, is_victim). character_id is None
    for NPC or structure attackers, and NULLs never collide on that key.
    """

    killmail_id: int
    character_id: int | None
    corporation_id: int | None
    alliance_id: int | None
    ship_type_id: int | None
    damage: int
    is_victim: bool


@dataclass(frozen=True)
class ParsedKillmail:
    """A validated killmail: header plus participants, victim first."""

    header: KillmailHeader
    participants: tuple[Participant, ...] = field(default_factory=tuple)

    @property
    def killmail_id(self) -> int:
        return self.header.killmail_id

    @property
    def victim(self) -> Participant:
        return next(p for p in self.participants if p.is_victim)

    @property
    def attackers(self) -> list[Participant]:
        return [p for p in self.participants if not p.is_victim]


class PersistOutcome(str, Enum):
    """Result of a successful persist call."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"  # fingerprint or killmail id already stored; nothing written


@dataclass
class StoreStats:
    """Storage statistics for observability."""

    total_killmails: int
    total_participants: int
    total_hashes: int
    oldest_killmail_time: str | None
    newest_killmail_time: str | None
    schema_version: int
    database_size_bytes: int

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Protocol Interface
# =============================================================================


@runtime_checkable
class KillmailStore(Protocol):
    """
    Abstract interface for killmail storage.

    Design notes:
    - killmail_id is globally unique (assigned by CCP)
    - Fingerprints are the 20-byte killmail hash; the store owns the
      authoritative seen-set
    - persist is the only write path and is all-or-nothing
    """

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the store, running migrations if needed.

        Must be called before any other operations.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        ...

    # -------------------------------------------------------------------------
    # Write Path
    # -------------------------------------------------------------------------

    @abstractmethod
    async def persist(
        self,
        fingerprint: bytes,
        header: KillmailHeader,
        participants: list[Participant] | tuple[Participant, ...],
    ) -> PersistOutcome:
        """
        Atomically write a killmail and record its fingerprint.

        Re-checks the fingerprint and the header id inside the unit of work;
        either one already present yields DUPLICATE with nothing written.
        Otherwise header, participants and the dedup record commit together.

        Raises:
            StoreIntegrityError: Any other constraint failure (rolled back)
        """
        ...

    # -------------------------------------------------------------------------
    # Read Path
    # -------------------------------------------------------------------------

    @abstractmethod
    async def fingerprint_exists(self, fingerprint: bytes) -> bool:
        """Check whether a fingerprint has been recorded."""
        ...

    @abstractmethod
    async def get_killmail(self, killmail_id: int) -> KillmailHeader | None:
        """Get a killmail header by id."""
        ...

    @abstractmethod
    async def get_participants(self, killmail_id: int) -> list[Participant]:
        """Get a killmail's participants, victim first, then attackers in source order."""
        ...

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Get storage statistics for observability."""
        ...
