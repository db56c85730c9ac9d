"""
Killmail Store - Persistent Storage for Ingested Killmails.

Normalized relational storage for killmails fetched from ESI: one header
row per killmail, one row per participant, and one dedup record per
ingested killmail hash, all written in a single transaction.

Key Components:
- SQLiteKillmailStore: SQLite implementation with WAL mode
- MigrationRunner: Versioned SQL schema migrations
- Protocol classes: KillmailHeader, Participant, ParsedKillmail, etc.

Usage:
    from zkb_ingest.services.killmail_store import SQLiteKillmailStore

    store = SQLiteKillmailStore()
    await store.initialize()

    outcome = await store.persist(fingerprint, parsed.header, parsed.participants)

    stats = await store.get_stats()
"""

from .migrations import MigrationRunner
from .protocol import (
    KillmailHeader,
    KillmailStore,
    ParsedKillmail,
    Participant,
    PersistOutcome,
    StoreStats,
)
from .sqlite import SQLiteKillmailStore

__all__ = [
    # Store implementation
    "SQLiteKillmailStore",
    "MigrationRunner",
    # Protocol
    "KillmailStore",
    "KillmailHeader",
    "Participant",
    "ParsedKillmail",
    "PersistOutcome",
    "StoreStats",
]
