"""
zkb-ingest - EVE Online Killmail Ingestion

Streams killmail announcements from zKillboard, fetches each killmail
from ESI, and stores it exactly once as normalized rows in SQLite.

Usage as library:
    from zkb_ingest.services.ingest import IngestPipeline
    from zkb_ingest.services.killmail_store import SQLiteKillmailStore
    from zkb_ingest.services.redisq import KillmailFetcher, RedisQEventSource

Usage as CLI:
    python -m zkb_ingest stream
    python -m zkb_ingest backfill --first 2021-10-01 --last 2021-10-03
    python -m zkb_ingest status

Package structure:
    zkb_ingest/
    ├── core/              # Config, logging, retry policy, errors
    ├── commands/          # CLI command implementations
    └── services/
        ├── redisq/        # Event sources, ESI fetcher, normalizer
        ├── killmail_store/  # SQLite store and migrations
        └── ingest/        # Dedup gate, intake queue, worker pipeline
"""

__version__ = "1.0.0"
