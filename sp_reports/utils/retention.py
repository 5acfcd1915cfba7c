"""
Batch Retention
Deletes batches beyond the retention count for a scope, off the write path.

The sweep runs on a background worker. Its failures go to the worker's error
handler (logged by default) and never reach whoever wrote the batch.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional

from sp_reports.utils.db import BATCH_PENDING, READABLE_STATUSES, BatchScope, ReportStore

logger = logging.getLogger(__name__)

_default_worker: Optional["RetentionWorker"] = None
_default_worker_lock = threading.Lock()


def select_expired_batches(batches: List[Dict], keep_count: int) -> List[str]:
    """
    Pick batch ids to delete from headers sorted newest first.

    The newest keep_count readable batches are kept. Pending batches newer
    than the last kept one may still be writing and are left alone. Everything
    else, including failed batches, expires.
    """
    kept = 0
    expired = []
    for batch in batches:
        status = batch.get("status")
        if kept < keep_count:
            if status in READABLE_STATUSES:
                kept += 1
                continue
            if status == BATCH_PENDING:
                continue
        expired.append(batch["batch_id"])
    return expired


def sweep_old_batches(
    store: ReportStore,
    report_type: str,
    scope: BatchScope,
    keep_count: int = 3
) -> int:
    """
    Delete batches beyond the newest keep_count for a scope.

    Returns:
        Number of item rows deleted
    """
    batches = store.list_batches(report_type, scope)
    expired = select_expired_batches(batches, keep_count)
    if not expired:
        return 0

    deleted = store.delete_batches(expired)
    logger.info(
        f"[{report_type}] Cleaned up {len(expired)} old batches ({deleted} items) "
        f"for user {scope.user_id} {scope.country}/{scope.region}"
    )
    return deleted


def log_sweep_error(error: BaseException, report_type: str, scope: BatchScope):
    logger.warning(
        f"[{report_type}] Failed to clean up old batches for user {scope.user_id} "
        f"{scope.country}/{scope.region}: {error}"
    )


class RetentionWorker:
    """
    Background queue for retention sweeps.

    Usage:
        worker = RetentionWorker()
        worker.submit(store, report_type, scope, keep_count=3)
        ...
        worker.shutdown()
    """

    def __init__(
        self,
        max_workers: int = 1,
        on_error: Callable[[BaseException, str, BatchScope], None] = log_sweep_error
    ):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="retention-sweep")
        self._on_error = on_error
        self._pending = set()
        self._lock = threading.Lock()

    def submit(
        self,
        store: ReportStore,
        report_type: str,
        scope: BatchScope,
        keep_count: int = 3
    ) -> Future:
        """Queue a sweep. Returns immediately; callers are not meant to wait on it."""
        future = self._executor.submit(sweep_old_batches, store, report_type, scope, keep_count)
        with self._lock:
            self._pending.add(future)

        def _done(done: Future):
            with self._lock:
                self._pending.discard(done)
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                try:
                    self._on_error(error, report_type, scope)
                except Exception:
                    logger.exception("Retention error handler raised")

        future.add_done_callback(_done)
        return future

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued sweeps. Returns True if none are left running."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True):
        self._executor.shutdown(wait=wait_for_pending)


def get_retention_worker() -> RetentionWorker:
    """Process-wide retention worker, created on first use."""
    global _default_worker

    with _default_worker_lock:
        if _default_worker is None:
            _default_worker = RetentionWorker()
        return _default_worker
