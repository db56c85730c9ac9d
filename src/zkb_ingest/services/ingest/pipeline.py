"""
Killmail Ingest Pipeline.

One feeder task drains an event source into the intake queue; a pool of
workers takes events off the queue and runs each through

    fingerprint -> dedup gate -> ESI fetch -> normalize -> persist

independently. Every failure is contained to its event and tallied; a
worker never dies on a bad killmail.

Stopping:
    request_stop() is the single cooperative-cancellation entry point.
    The feeder stops pulling from the source at once. Each worker finishes
    the event it holds (fetch through persist, or rollback) and exits.
    Events still queued are abandoned unrecorded, so a redelivery will
    pick them up. A second request_stop() cancels the workers outright;
    an interrupted persist rolls back and its event counts as abandoned.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol

from ...core.errors import (
    PermanentContentError,
    StoreIntegrityError,
    TransientFetchError,
)
from ...core.logging import get_logger
from ..killmail_store.protocol import KillmailStore, PersistOutcome
from ..redisq.models import KillEvent
from ..redisq.processor import parse_killmail
from .dedup import Deduplicator, fingerprint
from .queue import DEFAULT_QUEUE_SIZE, IntakeQueue, QueueClosedError

logger = get_logger(__name__)

DEFAULT_WORKERS = 4


class Fetcher(Protocol):
    async def fetch(self, kill_id: int, kill_hash: str) -> dict[str, Any]: ...


class ProcessOutcome(str, Enum):
    """What happened to one event."""

    PERSISTED = "persisted"
    DUPLICATE = "duplicate"  # store already held it at commit time
    SKIPPED_SEEN = "skipped_seen"  # dedup gate short-circuit, no fetch
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"
    INTEGRITY_FAILURE = "integrity_failure"


@dataclass
class PipelineStats:
    """Outcome counters for one pipeline run."""

    received: int = 0
    persisted: int = 0
    duplicate: int = 0
    skipped_seen: int = 0
    transient_failures: int = 0
    permanent_failures: int = 0
    integrity_failures: int = 0
    unexpected_errors: int = 0
    abandoned: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    def record(self, outcome: ProcessOutcome) -> None:
        if outcome is ProcessOutcome.PERSISTED:
            self.persisted += 1
        elif outcome is ProcessOutcome.DUPLICATE:
            self.duplicate += 1
        elif outcome is ProcessOutcome.SKIPPED_SEEN:
            self.skipped_seen += 1
        elif outcome is ProcessOutcome.TRANSIENT_FAILURE:
            self.transient_failures += 1
        elif outcome is ProcessOutcome.PERMANENT_FAILURE:
            self.permanent_failures += 1
        elif outcome is ProcessOutcome.INTEGRITY_FAILURE:
            self.integrity_failures += 1

    @property
    def processed(self) -> int:
        return (
            self.persisted
            + self.duplicate
            + self.skipped_seen
            + self.transient_failures
            + self.permanent_failures
            + self.integrity_failures
        )

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        result = asdict(self)
        result["processed"] = self.processed
        if self.finished_at is not None:
            result["elapsed_seconds"] = round(self.finished_at - self.started_at, 3)
        return result


class IngestPipeline:
    """
    Worker pool that ingests kill events exactly once.

    The store, fetcher and deduplicator are injected; the pipeline does
    not open or close them.

    Usage:
        async with KillmailFetcher() as fetcher:
            pipeline = IngestPipeline(source, fetcher, store)
            stats = await pipeline.run()
    """

    def __init__(
        self,
        source: AsyncIterable[KillEvent],
        fetcher: Fetcher,
        store: KillmailStore,
        deduplicator: Deduplicator | None = None,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.source = source
        self.fetcher = fetcher
        self.store = store
        self.deduplicator = deduplicator or Deduplicator(store)
        self.workers = workers
        self.queue = IntakeQueue(maxsize=queue_size)
        self.stats = PipelineStats()
        self._stop_event = asyncio.Event()
        self._feeder: asyncio.Task | None = None
        self._worker_tasks: list[asyncio.Task] = []
        self._running = False

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def request_stop(self) -> None:
        """
        Ask a running pipeline to stop.

        Safe to call from a signal handler on the event loop. The first
        call lets workers finish the event they hold; a repeated call
        cancels them.
        """
        if self._stop_event.is_set():
            busy = [t for t in self._worker_tasks if not t.done()]
            if busy:
                logger.warning("Stop requested again, cancelling %d workers", len(busy))
                for task in busy:
                    task.cancel()
            return
        logger.info("Stop requested")
        self._stop_event.set()
        stop_source = getattr(self.source, "stop", None)
        if callable(stop_source):
            stop_source()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def is_running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Run Loop
    # -------------------------------------------------------------------------

    async def run(self) -> PipelineStats:
        """
        Run until the source is exhausted and the queue drained, or until stopped.

        Returns:
            Outcome counters for this run
        """
        if self._running:
            raise RuntimeError("Pipeline already running")
        self._running = True

        self._feeder = asyncio.create_task(self._feed(), name="zkb-feeder")
        worker_tasks = [
            asyncio.create_task(self._work(n), name=f"zkb-worker-{n}")
            for n in range(self.workers)
        ]
        self._worker_tasks = worker_tasks
        workers_done = asyncio.ensure_future(
            asyncio.gather(*worker_tasks, return_exceptions=True)
        )
        stop_wait = asyncio.create_task(self._stop_event.wait())

        try:
            await asyncio.wait({workers_done, stop_wait}, return_when=asyncio.FIRST_COMPLETED)

            if not workers_done.done():
                # Stop requested while workers are still busy
                self._feeder.cancel()
                await asyncio.gather(self._feeder, return_exceptions=True)
                self.stats.abandoned += await self.queue.abandon()
                await workers_done

            for result in workers_done.result():
                if isinstance(result, Exception):
                    raise result
        finally:
            stop_wait.cancel()
            pending = [t for t in (self._feeder, *worker_tasks) if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, stop_wait, workers_done, return_exceptions=True)
            self._running = False
            self.stats.finished_at = time.time()

        logger.info(
            "Pipeline finished: %d received, %d persisted, %d duplicate, %d skipped, "
            "%d transient, %d permanent, %d integrity, %d abandoned",
            self.stats.received,
            self.stats.persisted,
            self.stats.duplicate,
            self.stats.skipped_seen,
            self.stats.transient_failures,
            self.stats.permanent_failures,
            self.stats.integrity_failures,
            self.stats.abandoned,
        )
        return self.stats

    async def _feed(self) -> None:
        """Drain the source into the intake queue."""
        iterator = self.source.__aiter__()
        try:
            async for event in iterator:
                if self._stop_event.is_set():
                    break
                await self.queue.put(event)
                self.stats.received += 1
        except QueueClosedError:
            pass
        except Exception:
            logger.exception("Event source failed; no further events will be read")
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
            await self.queue.close()

    async def _work(self, worker_id: int) -> None:
        """Process events until the queue is closed and empty."""
        while True:
            event = await self.queue.get()
            if event is None:
                logger.debug("Worker %d exiting", worker_id)
                return
            try:
                outcome = await self.process_event(event)
            except asyncio.CancelledError:
                self.stats.abandoned += 1
                raise
            self.stats.record(outcome)

    # -------------------------------------------------------------------------
    # Per-Event Processing
    # -------------------------------------------------------------------------

    async def process_event(self, event: KillEvent) -> ProcessOutcome:
        """
        Run one event through the pipeline.

        Never raises for a bad event: every failure maps to an outcome and
        a log line carrying the kill id, fingerprint and failing stage.
        Cancellation propagates.
        """
        stage = "fingerprint"
        fp_hex: str | None = None
        try:
            fp = fingerprint(event)
            fp_hex = fp.hex()

            stage = "dedup"
            if await self.deduplicator.already_seen(fp):
                logger.debug("Kill %d already seen, skipping", event.kill_id)
                return ProcessOutcome.SKIPPED_SEEN

            stage = "fetch"
            record = await self.fetcher.fetch(event.kill_id, event.zkb_hash)

            stage = "normalize"
            parsed = parse_killmail(record, expected_kill_id=event.kill_id)

            stage = "persist"
            outcome = await self.store.persist(fp, parsed.header, parsed.participants)
            self.deduplicator.record(fp)

            if outcome is PersistOutcome.INSERTED:
                logger.debug(
                    "Persisted kill %d (%d participants)",
                    event.kill_id,
                    len(parsed.participants),
                )
                return ProcessOutcome.PERSISTED
            return ProcessOutcome.DUPLICATE

        except TransientFetchError as e:
            logger.warning(
                "Kill %d: transient failure, left for redelivery: %s",
                event.kill_id,
                e.message,
                extra=self._context(event, fp_hex, stage),
            )
            return ProcessOutcome.TRANSIENT_FAILURE
        except StoreIntegrityError as e:
            logger.error(
                "Kill %d: store rejected write: %s",
                event.kill_id,
                e.message,
                extra=self._context(event, fp_hex, stage),
            )
            return ProcessOutcome.INTEGRITY_FAILURE
        except PermanentContentError as e:
            logger.warning(
                "Kill %d: permanent failure: %s",
                event.kill_id,
                e.message,
                extra=self._context(event, fp_hex, stage),
            )
            return ProcessOutcome.PERMANENT_FAILURE
        except Exception:
            self.stats.unexpected_errors += 1
            logger.exception(
                "Kill %d: unexpected error",
                event.kill_id,
                extra=self._context(event, fp_hex, stage),
            )
            return ProcessOutcome.PERMANENT_FAILURE

    @staticmethod
    def _context(event: KillEvent, fp_hex: str | None, stage: str) -> dict[str, Any]:
        return {"kill_id": event.kill_id, "fingerprint": fp_hex, "stage": stage}
