"""
Batched Report Writer
Stores normalized items as an immutable batch for one (report type, scope).

Write order:
1. mint a batch id and write the batch header (status "pending")
2. insert items in chunks, unordered; a rejected chunk is retried item by
   item so one bad row cannot block the rest. The first stored item moves
   the header to "writing", which makes the batch readable.
3. mark the header "completed" (or "failed" and raise)
4. queue a retention sweep for the scope

Any fault after the header exists leaves it "failed", never "pending" or
"writing", so readers fall back to the previous batch.

Batches are never updated after completion. Newer batches supersede them and
the retention sweep removes them.
"""

import uuid
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from sp_reports.utils.db import (
    BATCH_COMPLETED,
    BATCH_FAILED,
    BATCH_PENDING,
    BATCH_WRITING,
    BatchScope,
    ReportStore,
)
from sp_reports.utils.normalizers import ReportItem
from sp_reports.utils.retention import RetentionWorker, get_retention_worker

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 500


class BatchWriteError(Exception):
    """Some items of a batch could not be persisted."""

    def __init__(self, message: str, batch_id: str, inserted: int, failed: int):
        super().__init__(message)
        self.batch_id = batch_id
        self.inserted = inserted
        self.failed = failed


@dataclass(frozen=True)
class BatchWriteResult:
    success: bool
    message: str
    item_count: int
    batch_id: str
    report_type: str
    scope: BatchScope


def _chunks(rows: List[Dict[str, Any]], size: int):
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class _ItemInserter:
    """Inserts one batch's item rows, isolating rejected rows and counting progress."""

    def __init__(self, store: ReportStore, batch_id: str, chunk_size: int):
        self.store = store
        self.batch_id = batch_id
        self.chunk_size = chunk_size
        self.inserted = 0
        self.errors: List[str] = []

    def _try_insert(self, rows: List[Dict[str, Any]]) -> Optional[APIError]:
        try:
            count = self.store.insert_items(rows)
        except APIError as e:
            return e

        first_items = self.inserted == 0
        self.inserted += count
        if first_items and count:
            self.store.update_batch_header(self.batch_id, {"status": BATCH_WRITING})
        return None

    def run(self, rows: List[Dict[str, Any]]):
        for chunk in _chunks(rows, self.chunk_size):
            error = self._try_insert(chunk)
            if error is None:
                continue

            logger.warning(f"Chunk of {len(chunk)} items rejected ({error.message}), inserting one by one")
            for row in chunk:
                error = self._try_insert([row])
                if error is not None:
                    self.errors.append(error.message or str(error))


def _mark_failed(store: ReportStore, report_type: str, batch_id: str, inserted: int):
    try:
        store.update_batch_header(batch_id, {"status": BATCH_FAILED, "item_count": inserted})
    except Exception as e:
        logger.warning(f"[{report_type}] Could not mark batch {batch_id} as failed: {e}")


def save_report_batch(
    store: ReportStore,
    report_type: str,
    scope: BatchScope,
    items: List[ReportItem],
    retention_count: int = 3,
    worker: Optional[RetentionWorker] = None,
    chunk_size: int = INSERT_CHUNK_SIZE
) -> BatchWriteResult:
    """
    Save normalized items as a new batch.

    An empty item list is valid data: a zero-item batch is recorded.

    Args:
        store: ReportStore instance
        report_type: SP-API report type constant
        scope: (user, country, region) the data belongs to
        items: Normalized report items
        retention_count: Batches to keep for this scope
        worker: RetentionWorker for the cleanup sweep (process default if None)
        chunk_size: Rows per insert statement

    Returns:
        BatchWriteResult

    Raises:
        BatchWriteError: If any item was rejected by the database
        postgrest.exceptions.APIError: If the batch header cannot be written
        Exception: Transport faults while inserting propagate after the
            header is marked "failed"
    """
    batch_id = str(uuid.uuid4())
    item_count = len(items)
    created_at = store.clock()

    logger.info(
        f"[{report_type}] Saving batch {batch_id} for user {scope.user_id} "
        f"{scope.country}/{scope.region}: {item_count} items"
    )

    header = {
        "batch_id": batch_id,
        "report_type": report_type,
        **scope.as_filter(),
        "item_count": 0,
        "status": BATCH_PENDING if item_count else BATCH_COMPLETED,
        "created_at": created_at
    }
    store.insert_batch_header(header)

    if item_count == 0:
        logger.info(f"[{report_type}] No data to save, recorded empty batch {batch_id}")
        _dispatch_sweep(store, report_type, scope, retention_count, worker)
        return BatchWriteResult(True, "No data to save", 0, batch_id, report_type, scope)

    rows = [
        {
            "batch_id": batch_id,
            "report_type": report_type,
            **scope.as_filter(),
            "created_at": created_at,
            "item": item.to_record()
        }
        for item in items
    ]

    inserter = _ItemInserter(store, batch_id, chunk_size)
    try:
        inserter.run(rows)
        if not inserter.errors:
            store.update_batch_header(batch_id, {"status": BATCH_COMPLETED, "item_count": inserter.inserted})
    except Exception as e:
        logger.error(
            f"[{report_type}] Batch {batch_id} aborted after {inserter.inserted} of {item_count} items: "
            f"{type(e).__name__}: {e}"
        )
        _mark_failed(store, report_type, batch_id, inserter.inserted)
        raise

    if inserter.errors:
        errors = inserter.errors
        _mark_failed(store, report_type, batch_id, inserter.inserted)
        logger.error(
            f"[{report_type}] Batch {batch_id} failed: {len(errors)} of {item_count} items "
            f"rejected. First error: {errors[0]}"
        )
        raise BatchWriteError(
            f"Failed to save {len(errors)} of {item_count} items for batch {batch_id}: {errors[0]}",
            batch_id=batch_id,
            inserted=inserter.inserted,
            failed=len(errors)
        )

    logger.info(f"[{report_type}] Batch {batch_id} saved with {inserter.inserted} items")

    _dispatch_sweep(store, report_type, scope, retention_count, worker)

    return BatchWriteResult(True, "Data saved successfully", inserter.inserted, batch_id, report_type, scope)


def _dispatch_sweep(
    store: ReportStore,
    report_type: str,
    scope: BatchScope,
    retention_count: int,
    worker: Optional[RetentionWorker]
):
    worker = worker or get_retention_worker()
    try:
        worker.submit(store, report_type, scope, keep_count=retention_count)
    except RuntimeError as e:
        # Executor already shut down (interpreter exit)
        logger.warning(f"[{report_type}] Could not queue retention sweep: {e}")
