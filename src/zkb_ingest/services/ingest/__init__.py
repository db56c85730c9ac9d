"""
Killmail Ingest Pipeline.

Wires an event source, the dedup gate, the ESI fetcher, the normalizer
and the killmail store into a worker pool with exactly-once persistence.

Usage:
    from zkb_ingest.services.ingest import IngestPipeline

    pipeline = IngestPipeline(source, fetcher, store, workers=4)
    stats = await pipeline.run()
"""

from .dedup import Deduplicator, fingerprint
from .pipeline import IngestPipeline, PipelineStats, ProcessOutcome
from .queue import IntakeMetrics, IntakeQueue, QueueClosedError

__all__ = [
    "Deduplicator",
    "fingerprint",
    "IngestPipeline",
    "PipelineStats",
    "ProcessOutcome",
    "IntakeQueue",
    "IntakeMetrics",
    "QueueClosedError",
]
