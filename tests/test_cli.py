"""
Tests for the zkb-ingest command line.

Tests parser wiring, command results, and one backfill run end to end.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

import pytest
from pytest_httpx import HTTPXMock

from zkb_ingest.__main__ import build_parser, main
from zkb_ingest.commands import ingest


class TestParser:
    def test_subcommands_registered(self):
        parser = build_parser()

        args = parser.parse_args(["stream", "--queue-id", "q1", "--workers", "2"])
        assert args.func is ingest.cmd_stream
        assert args.queue_id == "q1"
        assert args.workers == 2

        args = parser.parse_args(["backfill", "--first", "2024-01-15"])
        assert args.func is ingest.cmd_backfill
        assert args.last is None

        args = parser.parse_args(["status", "--database", "/tmp/x.db"])
        assert args.func is ingest.cmd_status

    def test_backfill_requires_first(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["backfill"])

    def test_help(self, capsys):
        assert main(["help"]) == 0
        assert "backfill --first DAY" in capsys.readouterr().out

    def test_no_command_shows_help(self, capsys):
        assert main([]) == 0
        assert "zkb-ingest" in capsys.readouterr().out


class TestStatus:
    def test_missing_database(self, tmp_path: Path, capsys):
        exit_code = main(["status", "--database", str(tmp_path / "none.db")])

        assert exit_code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["error"] == "no_database"

    def test_existing_database(self, tmp_path: Path):
        from zkb_ingest.services.killmail_store import SQLiteKillmailStore

        db_path = tmp_path / "killmails.db"

        async def create():
            async with SQLiteKillmailStore(db_path=db_path):
                pass

        asyncio.run(create())

        result = ingest.cmd_status(argparse.Namespace(database=str(db_path)))

        assert result["database"] == str(db_path)
        assert result["total_killmails"] == 0
        assert result["schema_version"] == 1


class TestBackfill:
    def _args(self, tmp_path: Path, first: str, last: str | None = None) -> argparse.Namespace:
        return argparse.Namespace(
            first=first,
            last=last,
            database=str(tmp_path / "killmails.db"),
            workers=2,
            queue_size=10,
        )

    def test_invalid_date(self, tmp_path: Path):
        result = ingest.cmd_backfill(self._args(tmp_path, "15/01/2024"))

        assert result["error"] == "invalid_date"

    def test_reversed_range(self, tmp_path: Path):
        result = ingest.cmd_backfill(self._args(tmp_path, "2024-01-16", "2024-01-15"))

        assert result["error"] == "invalid_range"

    def test_backfill_one_day(
        self, tmp_path: Path, httpx_mock: HTTPXMock, killmail_factory, hash_factory
    ):
        httpx_mock.add_response(
            url="https://zkillboard.com/api/history/20240115.json",
            json={"100": hash_factory(100), "101": hash_factory(101)},
        )
        httpx_mock.add_response(
            url=f"https://esi.evetech.net/latest/killmails/100/{hash_factory(100)}/",
            json=killmail_factory(killmail_id=100),
        )
        httpx_mock.add_response(
            url=f"https://esi.evetech.net/latest/killmails/101/{hash_factory(101)}/",
            status_code=404,
        )

        result = ingest.cmd_backfill(self._args(tmp_path, "20240115"))

        assert result["status"] == "complete"
        assert result["first"] == result["last"] == "2024-01-15"
        assert result["stats"]["received"] == 2
        assert result["stats"]["persisted"] == 1
        assert result["stats"]["permanent_failures"] == 1

        status = ingest.cmd_status(argparse.Namespace(database=result["database"]))
        assert status["total_killmails"] == 1
        assert status["total_hashes"] == 1
