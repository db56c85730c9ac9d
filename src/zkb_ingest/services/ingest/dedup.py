"""
Killmail Deduplication Gate.

The fingerprint of a kill event is its killmail hash: CCP derives it from
the killmail content, so the same kill announced twice (or by two
sources) carries the same hash, and it is what ESI keys the fetch on.

The gate is a fast path only. A positive answer skips enrichment; a
negative answer is re-checked inside the store's persist transaction,
which is the authority.
"""

from __future__ import annotations

from collections import OrderedDict

from ...core.constants import KILLMAIL_HASH_BYTES
from ...core.errors import PermanentContentError
from ...core.logging import get_logger
from ..killmail_store.protocol import KillmailStore
from ..redisq.models import KillEvent, MalformedEnvelopeError

logger = get_logger(__name__)

DEFAULT_CACHE_SIZE = 10_000


def fingerprint(event: KillEvent) -> bytes:
    """
    Derive the 20-byte content fingerprint of an event.

    Raises:
        PermanentContentError: The envelope carries no valid hash
    """
    try:
        kill_hash = event.zkb_hash
    except MalformedEnvelopeError as e:
        raise PermanentContentError(str(e), kill_id=event.kill_id, original_error=e) from e

    if len(kill_hash) != KILLMAIL_HASH_BYTES * 2:
        raise PermanentContentError(
            f"killmail hash must be {KILLMAIL_HASH_BYTES * 2} hex digits, got {kill_hash!r}",
            kill_id=event.kill_id,
        )
    try:
        return bytes.fromhex(kill_hash)
    except ValueError as e:
        raise PermanentContentError(
            f"killmail hash is not hex: {kill_hash!r}", kill_id=event.kill_id, original_error=e
        ) from e


class Deduplicator:
    """
    Seen-set gate backed by the store.

    Keeps a bounded LRU of fingerprints known to be stored so redelivered
    events skip the store round trip. The store is injected, never global.
    """

    def __init__(self, store: KillmailStore, cache_size: int = DEFAULT_CACHE_SIZE):
        self.store = store
        self.cache_size = cache_size
        self._recent: OrderedDict[bytes, None] = OrderedDict()
        self.cache_hits = 0
        self.store_hits = 0
        self.misses = 0

    async def already_seen(self, fp: bytes) -> bool:
        """Point-in-time check; a False answer is not a reservation."""
        if fp in self._recent:
            self._recent.move_to_end(fp)
            self.cache_hits += 1
            return True

        if await self.store.fingerprint_exists(fp):
            self._remember(fp)
            self.store_hits += 1
            return True

        self.misses += 1
        return False

    def record(self, fp: bytes) -> None:
        """Remember a fingerprint the store has accepted or already held."""
        self._remember(fp)

    def _remember(self, fp: bytes) -> None:
        self._recent[fp] = None
        self._recent.move_to_end(fp)
        while len(self._recent) > self.cache_size:
            self._recent.popitem(last=False)

    def __len__(self) -> int:
        return len(self._recent)

    def get_stats(self) -> dict:
        return {
            "cached": len(self._recent),
            "cache_hits": self.cache_hits,
            "store_hits": self.store_hits,
            "misses": self.misses,
        }
