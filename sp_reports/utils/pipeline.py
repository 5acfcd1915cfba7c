"""
Report Pipeline
CREATE -> POLL -> DOWNLOAD -> PARSE -> NORMALIZE -> SAVE for one report type
and one scope.

The call blocks for the whole poll duration. Expected report states (Amazon
rejecting or never finishing a report) come back as a failed PipelineResult;
transport faults (SPAPIError) and persistence faults (BatchWriteError) raise.
"""

import time
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional

from sp_reports.utils.api_client import SPAPIClient
from sp_reports.utils.batch_writer import save_report_batch
from sp_reports.utils.config import PipelineConfig
from sp_reports.utils.db import BatchScope, ReportStore
from sp_reports.utils.normalizers import ReportItem, normalize_rows
from sp_reports.utils.reports import (
    POLL_CANCELLED,
    POLL_DONE,
    POLL_TIMEOUT,
    fetch_report_payload,
    poll_report_status,
    request_report,
)
from sp_reports.utils.retention import RetentionWorker
from sp_reports.utils.tsv_parser import parse_report_tsv

logger = logging.getLogger(__name__)

REASON_TERMINAL_FAILURE = "terminal_failure"
REASON_TIMEOUT = "timeout"
REASON_CANCELLED = "cancelled"


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run. success=False never means a crash."""

    success: bool
    message: str
    report_type: str
    report_id: Optional[str] = None
    report_status: Optional[str] = None
    reason: Optional[str] = None
    item_count: int = 0
    batch_id: Optional[str] = None
    items: Optional[List[ReportItem]] = None


def _failure(report_type: str, outcome, config: PipelineConfig) -> PipelineResult:
    if outcome.state == POLL_TIMEOUT:
        message = (
            f"Report did not complete within {outcome.attempts} status checks "
            f"(~{int(config.max_wait_seconds)}s), last status {outcome.status}"
        )
        reason = REASON_TIMEOUT
    elif outcome.state == POLL_CANCELLED:
        message = "Report polling was cancelled"
        reason = REASON_CANCELLED
    else:
        message = f"Amazon did not produce the report: status {outcome.status}"
        reason = REASON_TERMINAL_FAILURE

    logger.error(f"[{report_type}] Report {outcome.report_id}: {message}")
    return PipelineResult(
        success=False,
        message=message,
        report_type=report_type,
        report_id=outcome.report_id,
        report_status=outcome.status,
        reason=reason
    )


def run_report_pipeline(
    client: SPAPIClient,
    report_type: str,
    scope: BatchScope,
    marketplace_ids: List[str],
    store: Optional[ReportStore] = None,
    config: Optional[PipelineConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    worker: Optional[RetentionWorker] = None,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
    sleep: Callable[[float], None] = time.sleep,
    dry_run: bool = False
) -> PipelineResult:
    """
    Fetch one report and store it as a new batch.

    Args:
        client: SPAPIClient bound to the seller's token and region
        report_type: SP-API report type constant
        scope: (user, country, region) the data is stored under
        marketplace_ids: Amazon marketplace IDs to request
        store: ReportStore (not needed for dry runs)
        config: Poll cadence, attempt ceiling and retention. Defaults to the
            environment config with the report type's overrides applied.
        cancel_event: Set it to stop polling between attempts
        worker: RetentionWorker for the post-write cleanup sweep
        now: Reference time for the report window
        today: Reference date for date-window filters
        sleep: Delay function between polls
        dry_run: Parse and normalize but do not write

    Returns:
        PipelineResult

    Raises:
        SPAPIError: On transport faults or a document without a URL
        BatchWriteError: If items could not be persisted
    """
    config = config or PipelineConfig.from_env().for_report_type(report_type)
    start_time = time.time()

    report_id = request_report(client, report_type, marketplace_ids, now=now)

    outcome = poll_report_status(
        client,
        report_id,
        poll_interval=config.poll_interval,
        max_attempts=config.max_poll_attempts,
        cancel_event=cancel_event,
        sleep=sleep
    )
    if outcome.state != POLL_DONE:
        return _failure(report_type, outcome, config)

    payload = fetch_report_payload(client, outcome.report_document_id)
    rows = parse_report_tsv(payload, report_type=report_type)
    items = normalize_rows(report_type, rows, today=today)

    if dry_run:
        logger.info(f"[{report_type}] Dry run: {len(items)} items not saved")
        return PipelineResult(
            success=True,
            message="Dry run, nothing saved",
            report_type=report_type,
            report_id=report_id,
            report_status=outcome.status,
            item_count=len(items),
            items=items
        )

    if store is None:
        store = ReportStore()

    saved = save_report_batch(
        store,
        report_type,
        scope,
        items,
        retention_count=config.retention_count,
        worker=worker
    )

    elapsed = time.time() - start_time
    logger.info(
        f"[{report_type}] Pipeline finished for user {scope.user_id} {scope.country}/{scope.region}: "
        f"{saved.item_count} items in batch {saved.batch_id} ({elapsed:.1f}s)"
    )

    return PipelineResult(
        success=True,
        message=saved.message,
        report_type=report_type,
        report_id=report_id,
        report_status=outcome.status,
        item_count=saved.item_count,
        batch_id=saved.batch_id
    )
