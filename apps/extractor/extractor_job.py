"""
Extraction Job - Incremental Dispensing Sync

One run walks every store known upstream and, for each store that already has
records in the sink, pages through the events that follow its checkpoint:

    checkpoint -> fetch page after cursor -> persist page -> cursor = page max -> ...

until upstream answers with an empty page.

Error scopes:
- UpstreamFormatError, RecordFormatError, PersistenceError stop the current
  store only; the next run resumes from the same checkpoint
- UpstreamTransportError (and anything unexpected) stops the whole run

Stores without a checkpoint are skipped, never backfilled from zero.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol

from utils.config import Settings, get_settings
from utils.db import DispensingRepository, get_conn, init_schema
from utils.errors import PARTITION_SCOPED_ERRORS, UpstreamFormatError, UpstreamTransportError
from utils.icad_client import IcadClient
from utils.payload import Page
from utils.schemas import DispensingRecord, Partition
from utils.signer import RequestSigner, load_vectors

logger = logging.getLogger(__name__)


class PageSource(Protocol):
    async def list_partitions(self, code: int = 0) -> list[Partition]: ...

    async def fetch_page(self, store_id: str, after_id: int) -> Page: ...


class RecordSink(Protocol):
    def get_checkpoints(self) -> dict[str, int]: ...

    def insert_page(self, store_id: str, records: tuple[DispensingRecord, ...]) -> int: ...


class PartitionStatus(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PartitionOutcome:
    store_id: str
    status: PartitionStatus
    records: int = 0
    start_cursor: Optional[int] = None
    final_cursor: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "store_id": self.store_id,
            "status": self.status.value,
            "records": self.records,
            "start_cursor": self.start_cursor,
            "final_cursor": self.final_cursor,
            "reason": self.reason,
        }


@dataclass
class RunSummary:
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: list[PartitionOutcome] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return sum(outcome.records for outcome in self.outcomes)

    def count(self, status: PartitionStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total_records": self.total_records,
            "done": self.count(PartitionStatus.DONE),
            "skipped": self.count(PartitionStatus.SKIPPED),
            "aborted": self.count(PartitionStatus.ABORTED),
            "partitions": [outcome.to_dict() for outcome in self.outcomes],
        }


async def sync_partition(
    source: PageSource,
    sink: RecordSink,
    partition: Partition,
    checkpoint: Optional[int],
) -> PartitionOutcome:
    """
    Bring one store up to date, starting after its checkpoint.

    Args:
        source: Upstream page source
        sink: Record sink
        partition: Store to synchronize
        checkpoint: Highest persisted source_id, None if the store has no records

    Returns:
        Outcome with status, persisted count and final cursor

    Raises:
        UpstreamTransportError: Propagated untouched, it ends the run
    """
    store_id = partition.store_id

    if checkpoint is None:
        logger.warning("No checkpoint for store, skipping", extra={"store_id": store_id})
        return PartitionOutcome(store_id, PartitionStatus.SKIPPED, reason="no checkpoint")

    logger.info("Syncing store", extra={"store_id": store_id, "cursor": checkpoint})

    cursor = checkpoint
    persisted = 0
    try:
        while True:
            page = await source.fetch_page(store_id, cursor)
            if page.exhausted:
                break

            if page.next_cursor is None or page.next_cursor <= cursor:
                raise UpstreamFormatError(
                    f"Page after {cursor} does not advance the cursor (next={page.next_cursor})"
                )
            stale = [r.source_id for r in page.records if r.source_id <= cursor]
            if stale:
                raise UpstreamFormatError(
                    f"Page after {cursor} contains already ingested IDs {stale}"
                )

            persisted += sink.insert_page(store_id, page.records)
            cursor = page.next_cursor

    except PARTITION_SCOPED_ERRORS as e:
        logger.error(
            "Store sync aborted",
            extra={
                "store_id": store_id,
                "cursor": cursor,
                "persisted": persisted,
                "error_type": type(e).__name__,
                "error": str(e),
                "details": e.details,
            },
        )
        return PartitionOutcome(
            store_id,
            PartitionStatus.ABORTED,
            records=persisted,
            start_cursor=checkpoint,
            final_cursor=cursor,
            reason=f"{type(e).__name__}: {e}",
        )

    logger.info(
        "Store sync complete",
        extra={"store_id": store_id, "records": persisted, "cursor": cursor},
    )
    return PartitionOutcome(
        store_id,
        PartitionStatus.DONE,
        records=persisted,
        start_cursor=checkpoint,
        final_cursor=cursor,
    )


def log_summary(summary: RunSummary) -> None:
    """Emit one line per store and one for the run."""
    for outcome in summary.outcomes:
        logger.info(
            "Store %s: %s, records=%d, final_cursor=%s%s",
            outcome.store_id,
            outcome.status.value,
            outcome.records,
            outcome.final_cursor,
            f", reason={outcome.reason}" if outcome.reason else "",
            extra={"partition": outcome.to_dict()},
        )

    logger.info(
        "Run summary: stores=%d, done=%d, skipped=%d, aborted=%d, records=%d",
        len(summary.outcomes),
        summary.count(PartitionStatus.DONE),
        summary.count(PartitionStatus.SKIPPED),
        summary.count(PartitionStatus.ABORTED),
        summary.total_records,
    )


async def run_sync(source: PageSource, sink: RecordSink) -> RunSummary:
    """
    Synchronize every upstream store, sequentially.

    Raises:
        UpstreamTransportError: After logging the partial summary
    """
    summary = RunSummary(started_at=datetime.now(timezone.utc))

    try:
        checkpoints = sink.get_checkpoints()
        partitions = await source.list_partitions()
        logger.info(
            "Run started",
            extra={"stores": len(partitions), "checkpoints": len(checkpoints)},
        )

        for partition in partitions:
            outcome = await sync_partition(
                source, sink, partition, checkpoints.get(partition.store_id)
            )
            summary.outcomes.append(outcome)

    except UpstreamTransportError as e:
        summary.finished_at = datetime.now(timezone.utc)
        logger.error(
            "Run aborted by transport failure",
            extra={"error": str(e), "details": e.details},
        )
        log_summary(summary)
        raise

    summary.finished_at = datetime.now(timezone.utc)
    log_summary(summary)
    return summary


async def run_extraction(
    settings: Optional[Settings] = None,
    http_client: Any = None,
) -> RunSummary:
    """
    Service entry point: pre-flight checks, then one full sync run.

    Args:
        settings: Settings to use, defaults to the cached instance
        http_client: Optional httpx.AsyncClient passed to IcadClient

    Raises:
        ConfigurationError: Missing settings or signer mismatch
        UpstreamTransportError: Upstream unreachable
    """
    settings = settings or get_settings()
    settings.require_upstream()

    if settings.SIGNER_VECTORS_PATH:
        RequestSigner(settings.API_CRYPTO_KEY).verify(load_vectors(settings.SIGNER_VECTORS_PATH))

    conn = get_conn(settings.SQLITE_PATH)
    try:
        init_schema(conn, settings.DB_TABLE_DISPENSING)
        repository = DispensingRepository(conn, settings.DB_TABLE_DISPENSING)

        async with IcadClient.from_settings(settings, http_client=http_client) as client:
            return await run_sync(client, repository)
    finally:
        conn.close()
