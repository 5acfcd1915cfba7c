"""
SP-API Reports Module
Handles report creation, status polling, and document download.

A report is a background job on Amazon's side:
    createReport -> IN_QUEUE -> IN_PROGRESS -> DONE (or a terminal failure)
Once DONE, the report document carries a short-lived pre-signed URL for the
raw payload.
"""

import gzip
import time
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sp_reports.utils.api_client import SPAPIClient, SPAPIFatalError, ReportDocumentError
from sp_reports.utils.report_types import format_report_time, get_report_policy, report_window

logger = logging.getLogger(__name__)

REPORTS_PATH = "/reports/2021-06-30/reports"
DOCUMENTS_PATH = "/reports/2021-06-30/documents"

PENDING_STATUSES = {"IN_QUEUE", "IN_PROGRESS"}
DONE_STATUS = "DONE"
FAILURE_STATUSES = {"DONE_NO_DATA", "FATAL", "CANCELLED", "FAILED"}

# Poll outcome states
POLL_DONE = "done"
POLL_PENDING = "pending"
POLL_FAILED = "failed"
POLL_TIMEOUT = "timeout"
POLL_CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollOutcome:
    """Result of polling one report until it settles or the budget runs out."""

    state: str
    report_id: str
    status: Optional[str] = None
    report_document_id: Optional[str] = None
    attempts: int = 0

    @property
    def is_done(self) -> bool:
        return self.state == POLL_DONE


# =============================================================================
# Report Creation
# =============================================================================

def create_report(
    client: SPAPIClient,
    report_type: str,
    marketplace_ids: List[str],
    data_start_time: datetime,
    data_end_time: datetime,
    report_options: Optional[Dict[str, str]] = None
) -> str:
    """
    Create a report request.

    Args:
        client: SPAPIClient bound to the seller's token and region
        report_type: SP-API report type constant
        marketplace_ids: Amazon marketplace IDs the report covers
        data_start_time: Start of the data window
        data_end_time: End of the data window
        report_options: Optional report options dictionary

    Returns:
        Report ID string

    Raises:
        ValueError: If no marketplace IDs are given
        SPAPIError: If the API request fails
    """
    if not marketplace_ids:
        raise ValueError("At least one marketplace ID is required")

    payload = {
        "reportType": report_type,
        "marketplaceIds": list(marketplace_ids),
        "dataStartTime": format_report_time(data_start_time),
        "dataEndTime": format_report_time(data_end_time)
    }

    if report_options:
        payload["reportOptions"] = report_options

    response = client.post(
        client.url(REPORTS_PATH),
        json=payload,
        headers={"Content-Type": "application/json"},
        api_type="reports_create"  # 1 request per minute rate limit
    )

    data = response.json()
    report_id = data.get("reportId")
    if not report_id:
        raise SPAPIFatalError(
            f"createReport returned no reportId for {report_type}",
            status_code=response.status_code,
            response_body=data
        )

    logger.info(
        f"Created {report_type} report {report_id} for {','.join(marketplace_ids)} "
        f"({payload['dataStartTime']} to {payload['dataEndTime']})"
    )
    return report_id


def request_report(
    client: SPAPIClient,
    report_type: str,
    marketplace_ids: List[str],
    now: Optional[datetime] = None
) -> str:
    """
    Create a report using the report type's own lookback window.

    Returns:
        Report ID string
    """
    start, end = report_window(report_type, now=now)
    policy = get_report_policy(report_type)
    return create_report(
        client,
        report_type,
        marketplace_ids,
        start,
        end,
        report_options=policy.get("report_options")
    )


# =============================================================================
# Status Polling
# =============================================================================

def classify_status(status: Optional[str]) -> str:
    """
    Map a processingStatus onto a poll state.

    Unknown statuses are terminal failures, never "keep waiting".
    """
    if status in PENDING_STATUSES:
        return POLL_PENDING
    if status == DONE_STATUS:
        return POLL_DONE
    return POLL_FAILED


def get_report_status(client: SPAPIClient, report_id: str) -> Dict[str, Any]:
    """Fetch the current report record (processingStatus, reportDocumentId, ...)."""
    response = client.get(
        client.url(f"{REPORTS_PATH}/{report_id}"),
        api_type="reports_get"  # 2 req/sec rate limit
    )
    return response.json()


def poll_report_status(
    client: SPAPIClient,
    report_id: str,
    poll_interval: float = 20,
    max_attempts: int = 30,
    cancel_event: Optional[threading.Event] = None,
    sleep: Callable[[float], None] = time.sleep
) -> PollOutcome:
    """
    Poll a report until it reaches a terminal state or the attempt budget runs out.

    Args:
        client: SPAPIClient instance
        report_id: The report ID to poll
        poll_interval: Seconds between status checks
        max_attempts: Maximum number of status checks
        cancel_event: Checked between attempts; when set, polling stops
        sleep: Delay function used when no cancel_event is given

    Returns:
        PollOutcome with state done, failed, timeout or cancelled

    Raises:
        SPAPIError: If a status request fails
    """
    status = None

    for attempt in range(1, max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Polling for report {report_id} cancelled after {attempt - 1} checks")
            return PollOutcome(POLL_CANCELLED, report_id, status=status, attempts=attempt - 1)

        data = get_report_status(client, report_id)
        status = data.get("processingStatus")
        state = classify_status(status)

        if state == POLL_DONE:
            document_id = data.get("reportDocumentId")
            if not document_id:
                logger.error(f"Report {report_id} is DONE but has no reportDocumentId")
                return PollOutcome(POLL_FAILED, report_id, status=status, attempts=attempt)
            logger.info(f"Report {report_id} completed, document {document_id}")
            return PollOutcome(
                POLL_DONE,
                report_id,
                status=status,
                report_document_id=document_id,
                attempts=attempt
            )

        if state == POLL_FAILED:
            if status in FAILURE_STATUSES:
                logger.error(f"Report {report_id} ended with status {status}")
            else:
                logger.error(f"Report {report_id} returned unknown status: {status}")
            return PollOutcome(POLL_FAILED, report_id, status=status, attempts=attempt)

        if attempt == max_attempts:
            break

        logger.info(
            f"Report {report_id} status: {status}, waiting {poll_interval}s "
            f"(attempts left: {max_attempts - attempt})"
        )
        if cancel_event is not None:
            if cancel_event.wait(poll_interval):
                logger.info(f"Polling for report {report_id} cancelled after {attempt} checks")
                return PollOutcome(POLL_CANCELLED, report_id, status=status, attempts=attempt)
        else:
            sleep(poll_interval)

    logger.error(f"Report {report_id} still {status} after {max_attempts} checks")
    return PollOutcome(POLL_TIMEOUT, report_id, status=status, attempts=max_attempts)


# =============================================================================
# Document Download
# =============================================================================

def get_report_document(client: SPAPIClient, report_document_id: str) -> Dict[str, Any]:
    """
    Fetch report document metadata (pre-signed url, compressionAlgorithm).

    Raises:
        ReportDocumentError: If the response has no download URL
        SPAPIError: If the API request fails
    """
    response = client.get(
        client.url(f"{DOCUMENTS_PATH}/{report_document_id}"),
        api_type="reports_get"
    )
    doc_info = response.json()

    if not doc_info.get("url"):
        raise ReportDocumentError(
            f"No valid report URL found for document {report_document_id}",
            status_code=response.status_code,
            response_body=doc_info
        )

    return doc_info


def download_report_document(client: SPAPIClient, doc_info: Dict[str, Any]) -> bytes:
    """
    Download the raw report payload and decompress it if needed.

    Returns:
        Raw report bytes (still encoded text)
    """
    content = client.download(doc_info["url"])

    if doc_info.get("compressionAlgorithm") == "GZIP":
        content = gzip.decompress(content)

    logger.info(f"Downloaded report document {doc_info.get('reportDocumentId', '')} ({len(content)} bytes)")
    return content


def fetch_report_payload(client: SPAPIClient, report_document_id: str) -> bytes:
    """Resolve a document ID to its raw payload bytes."""
    doc_info = get_report_document(client, report_document_id)
    return download_report_document(client, doc_info)
