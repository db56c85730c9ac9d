"""
zkb-ingest Services.

Event sources and ESI enrichment (redisq), persistent storage
(killmail_store) and the ingest pipeline that connects them (ingest).
"""

from __future__ import annotations

__all__ = [
    "ingest",
    "killmail_store",
    "redisq",
]
