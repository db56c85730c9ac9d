"""
Tests for RedisQ data models.
"""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from zkb_ingest.services.redisq.models import (
    KillEvent,
    MalformedEnvelopeError,
    RedisQConfig,
    SourceStatus,
)

HASH = "ab" * 20


class TestKillEventFromPackage:
    """Test KillEvent.from_redisq_package."""

    def test_new_format(self, redisq_package):
        event = KillEvent.from_redisq_package(redisq_package, received_at=1.5)

        assert event.kill_id == 100
        assert event.zkb_hash == HASH
        assert event.received_at == 1.5
        assert event.envelope["killID"] == 100
        assert event.envelope["zkb"]["totalValue"] == 15000.0

    def test_legacy_format(self):
        package = {"killmail": {"killmail_id": 555}, "zkb": {"hash": HASH}}

        event = KillEvent.from_redisq_package(package)

        assert event.kill_id == 555
        assert event.envelope == {"killID": 555, "zkb": {"hash": HASH}}

    def test_payload_is_compact_json(self):
        event = KillEvent.from_redisq_package({"killID": 7, "zkb": {"hash": HASH}})

        assert event.payload == b'{"killID":7,"zkb":{"hash":"' + HASH.encode() + b'"}}'

    def test_received_at_not_part_of_equality(self):
        a = KillEvent.from_redisq_package({"killID": 7, "zkb": {"hash": HASH}}, received_at=1.0)
        b = KillEvent.from_redisq_package({"killID": 7, "zkb": {"hash": HASH}}, received_at=2.0)

        assert a == b

    @pytest.mark.parametrize(
        "package",
        [
            None,
            [],
            {"zkb": {"hash": HASH}},
            {"killID": 0, "zkb": {"hash": HASH}},
            {"killID": -4, "zkb": {"hash": HASH}},
            {"killID": True, "zkb": {"hash": HASH}},
            {"killID": "100", "zkb": {"hash": HASH}},
            {"killID": 100},
            {"killID": 100, "zkb": {}},
            {"killID": 100, "zkb": {"hash": ""}},
            {"killID": 100, "zkb": "nope"},
        ],
    )
    def test_malformed_package_rejected(self, package):
        with pytest.raises(MalformedEnvelopeError):
            KillEvent.from_redisq_package(package)


class TestKillEventEnvelope:
    """Test lazy envelope decoding."""

    def test_non_json_payload(self):
        event = KillEvent(kill_id=1, payload=b"\xff not json")

        with pytest.raises(MalformedEnvelopeError):
            _ = event.envelope

    def test_non_object_payload(self):
        event = KillEvent(kill_id=1, payload=b"[1, 2]")

        with pytest.raises(MalformedEnvelopeError):
            _ = event.envelope

    def test_missing_hash_is_empty(self):
        event = KillEvent(kill_id=1, payload=json.dumps({"killID": 1}).encode())

        assert event.zkb_hash == ""


class TestKillEventFromHistory:
    def test_string_key(self):
        event = KillEvent.from_history_entry("12345", HASH, received_at=0.0)

        assert event.kill_id == 12345
        assert event.zkb_hash == HASH

    def test_bad_key(self):
        with pytest.raises(MalformedEnvelopeError):
            KillEvent.from_history_entry("abc", HASH)

    def test_bad_hash(self):
        with pytest.raises(MalformedEnvelopeError):
            KillEvent.from_history_entry("12345", None)


class TestRedisQConfig:
    def test_from_settings_prefers_override(self):
        settings = SimpleNamespace(
            redisq_url="https://example.test/listen.php",
            redisq_queue_id="from-settings",
            redisq_ttw=5,
            user_agent="ua",
        )

        config = RedisQConfig.from_settings(settings, queue_id="override")

        assert config.url == "https://example.test/listen.php"
        assert config.queue_id == "override"
        assert config.ttw == 5
        assert config.user_agent == "ua"

    def test_from_settings_falls_back(self):
        settings = SimpleNamespace(
            redisq_url="u", redisq_queue_id="from-settings", redisq_ttw=10, user_agent=""
        )

        assert RedisQConfig.from_settings(settings).queue_id == "from-settings"


def test_source_status_to_dict():
    status = SourceStatus(is_running=True, queue_id="q", events_yielded=3)

    data = status.to_dict()

    assert data["is_running"] is True
    assert data["queue_id"] == "q"
    assert data["events_yielded"] == 3
    assert data["last_poll_time"] is None
