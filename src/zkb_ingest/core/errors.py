"""
zkb-ingest Error Taxonomy

Every failure that crosses a pipeline stage boundary is an IngestError
subclass. Callers branch on the type (or on ``retryable``), never on the
message text.

    IngestError
    ├── TransientFetchError      retry budget exhausted on a transient fault
    ├── PermanentContentError    the content can never be ingested
    │   └── KillmailValidationError
    ├── DuplicateWriteError      the store already holds this killmail
    ├── StoreIntegrityError      a write violated a store constraint
    └── ConnectivityError        an event source lost its upstream
"""

from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for ingestion failures."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        kill_id: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.message: str = message
        self.kill_id: Optional[int] = kill_id
        self.original_error: Optional[BaseException] = original_error
        super().__init__(message)


class TransientFetchError(IngestError):
    """
    A fetch failed in a way that may succeed later.

    Raised by a single attempt for network errors, timeouts, 429 and 5xx,
    and re-raised once the retry budget is spent. The event is not
    recorded, so a redelivery may succeed.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        kill_id: Optional[int] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, kill_id=kill_id, original_error=original_error)
        self.status_code: Optional[int] = status_code
        self.retry_after: Optional[int] = retry_after


class PermanentContentError(IngestError):
    """The upstream definitively rejected the request, or the content is unusable."""

    def __init__(
        self,
        message: str,
        kill_id: Optional[int] = None,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, kill_id=kill_id, original_error=original_error)
        self.status_code: Optional[int] = status_code


class KillmailValidationError(PermanentContentError):
    """A killmail record failed normalization."""

    def __init__(self, message: str, kill_id: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message, kill_id=kill_id)
        self.field: Optional[str] = field


class DuplicateWriteError(IngestError):
    """The fingerprint or killmail id is already present at commit time."""


class StoreIntegrityError(IngestError):
    """A write was rejected by a store constraint other than the dedup keys."""


class ConnectivityError(IngestError):
    """An event source could not reach its upstream."""

    retryable = True
