"""
Tests for zkb-ingest Structured Logging.

Tests logger configuration, formatters, and utility functions.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from unittest import mock

import pytest


def _record(msg: str = "Test message", level: int = logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="zkb_ingest.services.ingest.pipeline",
        level=level,
        pathname="pipeline.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# =============================================================================
# ZkbFormatter Tests
# =============================================================================


class TestZkbFormatter:
    """Test ZkbFormatter class."""

    def test_text_format_basic(self):
        """Text format includes level and module."""
        from zkb_ingest.core.logging import ZkbFormatter

        formatted = ZkbFormatter(json_output=False).format(_record())

        assert formatted.startswith("[ZKB INFO] [pipeline] Test message")

    def test_text_format_appends_extra_fields(self):
        from zkb_ingest.core.logging import ZkbFormatter

        formatted = ZkbFormatter(json_output=False).format(
            _record("Kill failed", kill_id=101, stage="fetch")
        )

        assert "kill_id=101" in formatted
        assert "stage=fetch" in formatted

    def test_text_format_with_exception(self):
        from zkb_ingest.core.logging import ZkbFormatter

        try:
            raise ValueError("boom")
        except ValueError:
            record = _record("Failed", level=logging.ERROR, exc_info=sys.exc_info())

        formatted = ZkbFormatter(json_output=False).format(record)

        assert "[ZKB ERROR]" in formatted
        assert "ValueError: boom" in formatted

    def test_json_format(self):
        from zkb_ingest.core.logging import ZkbFormatter

        formatted = ZkbFormatter(json_output=True).format(
            _record("Kill failed", level=logging.WARNING, kill_id=101, fingerprint="ab" * 20)
        )
        data = json.loads(formatted)

        assert data["level"] == "WARNING"
        assert data["logger"] == "zkb_ingest.services.ingest.pipeline"
        assert data["message"] == "Kill failed"
        assert data["kill_id"] == 101
        assert data["fingerprint"] == "ab" * 20
        assert "timestamp" in data

    def test_json_format_serializes_unknown_types(self):
        from pathlib import Path

        from zkb_ingest.core.logging import ZkbFormatter

        formatted = ZkbFormatter(json_output=True).format(_record(path=Path("/tmp/x.db")))

        assert json.loads(formatted)["path"] == "/tmp/x.db"


# =============================================================================
# Logger Factory Tests
# =============================================================================


class TestGetLogger:
    """Test get_logger and module state."""

    def test_get_logger_is_cached(self):
        from zkb_ingest.core.logging import get_logger

        assert get_logger("zkb_ingest.test_cached") is get_logger("zkb_ingest.test_cached")

    def test_get_logger_uses_settings_level(self):
        from zkb_ingest.core.config import reset_settings
        from zkb_ingest.core.logging import get_logger

        with mock.patch.dict(os.environ, {"ZKB_LOG_LEVEL": "ERROR"}, clear=True):
            reset_settings()
            logger = get_logger("zkb_ingest.test_level_error")

        assert logger.level == logging.ERROR
        assert logger.propagate is False

    def test_reset_logging_restores_propagation(self, caplog: pytest.LogCaptureFixture):
        from zkb_ingest.core.logging import get_logger, reset_logging

        logger = get_logger("zkb_ingest.test_reset")
        assert logger.propagate is False

        reset_logging()

        assert logger.propagate is True
        assert logger.level == logging.NOTSET
        with caplog.at_level(logging.INFO):
            logger.info("visible to caplog")
        assert "visible to caplog" in caplog.text
