#!/usr/bin/env python3
"""
zkb-ingest CLI Entry Point

Provides the command-line interface for the killmail ingest pipeline.
Run with: python -m zkb_ingest <command> [args]
"""

from __future__ import annotations

import argparse
import json
import sys

from .core.formatters import get_utc_timestamp


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


# =============================================================================
# Built-in Commands
# =============================================================================


def cmd_help(args: argparse.Namespace) -> dict:
    """Show help message."""
    help_text = """
zkb-ingest - EVE Online killmail ingestion
-------------------------------------------------------------------

Ingest Commands:
  stream [opts]              Ingest the live zKillboard RedisQ stream
                             --queue-id ID, --workers N, --queue-size N
                             Stops cleanly on Ctrl+C / SIGTERM
  backfill --first DAY       Ingest zKillboard history for a day range
           [--last DAY]      Days are YYYY-MM-DD, range is inclusive

Store Commands:
  status                     Show killmail store statistics

Common Options:
  --database PATH            SQLite database (default: cache/killmails.db)

Environment:
  ZKB_LOG_LEVEL              DEBUG, INFO, WARNING (default), ERROR
  ZKB_LOG_JSON               Emit JSON log lines on stderr
  ZKB_DATABASE               Database path override
  ZKB_NO_RETRY               Disable ESI fetch retries
-------------------------------------------------------------------
"""
    print(help_text)
    return {}


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="zkb-ingest",
        description="zkb-ingest - EVE Online killmail ingestion into SQLite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    help_parser = subparsers.add_parser("help", help="Show help message")
    help_parser.set_defaults(func=cmd_help)

    from .commands import ingest

    ingest.register_parsers(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Default to help if no command
    if not args.command:
        cmd_help(args)
        return 0

    if not hasattr(args, "func"):
        output_error(
            f"Unknown command: {args.command}",
            error_type="unknown_command",
            hint="Run 'zkb-ingest help' for usage",
        )

    try:
        result = args.func(args)

        if isinstance(result, dict) and result:
            output_json(result)

            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
