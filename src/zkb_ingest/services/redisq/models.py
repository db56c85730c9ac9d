"""
RedisQ Data Models.

Data classes for kill announcements received from an event source and
for the source configuration.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Any


class MalformedEnvelopeError(ValueError):
    """A transport envelope could not be decoded into a kill event."""


@dataclass(frozen=True)
class KillEvent:
    """
    Kill announcement from an event source.

    Carries the kill id and the envelope bytes. The envelope is the zKillboard
    package: {"killID": 123, "zkb": {"hash": "...", ...}}. Full killmail
    data is fetched from ESI using the hash.
    """

    kill_id: int
    payload: bytes
    received_at: float = field(default_factory=time.time, compare=False)

    @cached_property
    def envelope(self) -> dict[str, Any]:
        """Decoded envelope JSON."""
        try:
            data = json.loads(self.payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedEnvelopeError(f"envelope is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("envelope is not a JSON object")
        return data

    @property
    def zkb_hash(self) -> str:
        """The killmail hash announced with this kill, or "" if absent."""
        zkb = self.envelope.get("zkb")
        if not isinstance(zkb, dict):
            return ""
        value = zkb.get("hash")
        return value if isinstance(value, str) else ""

    @classmethod
    def from_redisq_package(cls, package: Any, received_at: float | None = None) -> KillEvent:
        """
        Create a KillEvent from a RedisQ package.

        Handles both old and new (2025+) RedisQ formats:
        - New format: {"killID": 123, "zkb": {...}}
        - Old format: {"killmail": {"killmail_id": 123}, "zkb": {...}}

        Args:
            package: The 'package' dict from a RedisQ response
            received_at: Unix timestamp when received (defaults to now)

        Raises:
            MalformedEnvelopeError: Missing kill id or missing hash
        """
        if not isinstance(package, dict):
            raise MalformedEnvelopeError("package is not a JSON object")

        kill_id = package.get("killID")
        if kill_id is None:
            killmail = package.get("killmail")
            if isinstance(killmail, dict):
                kill_id = killmail.get("killmail_id")

        if isinstance(kill_id, bool) or not isinstance(kill_id, int) or kill_id <= 0:
            raise MalformedEnvelopeError(f"invalid kill id: {kill_id!r}")

        zkb = package.get("zkb")
        if not isinstance(zkb, dict) or not isinstance(zkb.get("hash"), str) or not zkb["hash"]:
            raise MalformedEnvelopeError(f"kill {kill_id} has no zkb hash")

        envelope = {"killID": kill_id, "zkb": zkb}
        return cls(
            kill_id=kill_id,
            payload=json.dumps(envelope, separators=(",", ":")).encode(),
            received_at=received_at if received_at is not None else time.time(),
        )

    @classmethod
    def from_history_entry(
        cls, kill_id: Any, kill_hash: Any, received_at: float | None = None
    ) -> KillEvent:
        """
        Create a KillEvent from one entry of a zKillboard history day.

        History files map kill id (as a string key) to hash.
        """
        try:
            numeric_id = int(kill_id)
        except (TypeError, ValueError) as e:
            raise MalformedEnvelopeError(f"invalid kill id: {kill_id!r}") from e
        return cls.from_redisq_package(
            {"killID": numeric_id, "zkb": {"hash": kill_hash}},
            received_at=received_at,
        )


@dataclass
class RedisQConfig:
    """
    Configuration for the RedisQ event source.

    Loaded from ZkbSettings.
    """

    url: str
    queue_id: str = ""
    ttw: int = 10
    user_agent: str = ""

    @classmethod
    def from_settings(cls, settings: Any, queue_id: str = "") -> RedisQConfig:
        """
        Create config from ZkbSettings.

        Args:
            settings: ZkbSettings instance
            queue_id: Queue ID override (empty to use settings, then generate)
        """
        return cls(
            url=settings.redisq_url,
            queue_id=queue_id or settings.redisq_queue_id,
            ttw=settings.redisq_ttw,
            user_agent=settings.user_agent,
        )


@dataclass
class SourceStatus:
    """Status snapshot of an event source."""

    is_running: bool = False
    queue_id: str = ""
    last_poll_time: datetime | None = None
    events_yielded: int = 0
    envelopes_dropped: int = 0
    consecutive_errors: int = 0

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "is_running": self.is_running,
            "queue_id": self.queue_id,
            "last_poll_time": self.last_poll_time.isoformat() if self.last_poll_time else None,
            "events_yielded": self.events_yielded,
            "envelopes_dropped": self.envelopes_dropped,
            "consecutive_errors": self.consecutive_errors,
        }
