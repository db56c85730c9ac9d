"""
zkb-ingest Core

Configuration, logging, retry policy and the error taxonomy shared by the
event sources, the fetcher, the store and the pipeline.
"""

from .config import ZkbSettings, get_settings, reset_settings
from .errors import (
    ConnectivityError,
    DuplicateWriteError,
    IngestError,
    KillmailValidationError,
    PermanentContentError,
    StoreIntegrityError,
    TransientFetchError,
)
from .logging import get_logger

__all__ = [
    "ConnectivityError",
    "DuplicateWriteError",
    "IngestError",
    "KillmailValidationError",
    "PermanentContentError",
    "StoreIntegrityError",
    "TransientFetchError",
    "ZkbSettings",
    "get_logger",
    "get_settings",
    "reset_settings",
]
