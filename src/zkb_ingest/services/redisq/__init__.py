"""
zKillboard Event Sources and ESI Enrichment.

Streams kill announcements from zKillboard (RedisQ long-poll or daily
history files), fetches the full killmail from ESI, and validates it
into store rows.
"""

from __future__ import annotations

__all__ = [
    # Models
    "KillEvent",
    "MalformedEnvelopeError",
    "RedisQConfig",
    "SourceStatus",
    # Sources
    "RedisQEventSource",
    "HistoryEventSource",
    # Enrichment
    "KillmailFetcher",
    # Processing
    "parse_killmail",
]


def __getattr__(name: str):
    """Lazy import components to avoid circular imports."""
    if name in ("KillEvent", "MalformedEnvelopeError", "RedisQConfig", "SourceStatus"):
        from . import models

        return getattr(models, name)

    if name == "RedisQEventSource":
        from .poller import RedisQEventSource

        return RedisQEventSource

    if name == "HistoryEventSource":
        from .history import HistoryEventSource

        return HistoryEventSource

    if name == "KillmailFetcher":
        from .fetcher import KillmailFetcher

        return KillmailFetcher

    if name == "parse_killmail":
        from .processor import parse_killmail

        return parse_killmail

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
