"""
zkb-ingest Commands

Command implementations for the CLI. Each module registers its parsers
through register_parsers(subparsers).
"""
