"""
Supabase Database Module
Table access for batched report storage and the legacy document format.

Tables:
    report_batches       one header row per batch (scope, status, item_count)
    report_batch_items   one row per normalized item, tagged with batch_id
    report_documents     legacy format, one row per scope with an embedded
                         rows array. Read-only.
"""

import os
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from supabase import create_client, Client

logger = logging.getLogger(__name__)

# Supabase client singleton
_supabase_client: Optional[Client] = None

BATCHES_TABLE = "report_batches"
ITEMS_TABLE = "report_batch_items"
LEGACY_TABLE = "report_documents"

# PostgREST caps responses at 1000 rows by default
PAGE_SIZE = 1000

# pending: header only, not readable yet
# writing: at least one item stored, readable
BATCH_PENDING = "pending"
BATCH_WRITING = "writing"
BATCH_COMPLETED = "completed"
BATCH_FAILED = "failed"
READABLE_STATUSES = (BATCH_WRITING, BATCH_COMPLETED)


def get_supabase_client() -> Client:
    """
    Get or create Supabase client singleton.

    Returns:
        Supabase client instance

    Raises:
        ValueError: If credentials are missing
    """
    global _supabase_client

    if _supabase_client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError("Missing SUPABASE_URL or SUPABASE_SERVICE_KEY environment variables")

        _supabase_client = create_client(url, key)

    return _supabase_client


@dataclass(frozen=True)
class BatchScope:
    """The (user, country, region) triple that partitions stored report data."""

    user_id: str
    country: str
    region: str

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("User ID is required")
        if not self.country or not self.region:
            raise ValueError("Country and region are required")

    def as_filter(self) -> Dict[str, str]:
        return {"user_id": self.user_id, "country": self.country, "region": self.region}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportStore:
    """
    Thin query layer over the report tables.

    Usage:
        store = ReportStore()
        store.insert_batch_header(header)
        store.insert_items(rows)
        latest = store.latest_batch(report_type, scope)
    """

    def __init__(self, client: Client = None, clock: Callable[[], str] = utc_now_iso):
        self._client = client
        self.clock = clock

    @property
    def client(self) -> Client:
        """Lazy-load Supabase client."""
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def _scoped(self, query, report_type: str, scope: BatchScope):
        query = query.eq("report_type", report_type)
        for column, value in scope.as_filter().items():
            query = query.eq(column, value)
        return query

    # -------------------------------------------------------------------------
    # Batch headers
    # -------------------------------------------------------------------------

    def insert_batch_header(self, header: Dict[str, Any]) -> Dict[str, Any]:
        result = self.client.table(BATCHES_TABLE).insert(header).execute()
        return result.data[0] if result.data else header

    def update_batch_header(self, batch_id: str, update_data: Dict[str, Any]):
        self.client.table(BATCHES_TABLE).update(update_data).eq("batch_id", batch_id).execute()

    def latest_batch(self, report_type: str, scope: BatchScope) -> Optional[Dict[str, Any]]:
        """Most recent batch header for a scope that has stored items or completed."""
        query = self._scoped(
            self.client.table(BATCHES_TABLE).select("*"), report_type, scope
        ).in_("status", list(READABLE_STATUSES))

        result = query.order("created_at", desc=True).limit(1).execute()
        return result.data[0] if result.data else None

    def list_batches(self, report_type: str, scope: BatchScope) -> List[Dict[str, Any]]:
        """All batch headers for a scope, newest first."""
        query = self._scoped(
            self.client.table(BATCHES_TABLE).select("batch_id,status,item_count,created_at"),
            report_type,
            scope
        )
        result = query.order("created_at", desc=True).execute()
        return result.data or []

    # -------------------------------------------------------------------------
    # Batch items
    # -------------------------------------------------------------------------

    def insert_items(self, rows: List[Dict[str, Any]]) -> int:
        """
        Insert item rows in one statement.

        Raises:
            postgrest.exceptions.APIError: If the insert is rejected
        """
        if not rows:
            return 0
        self.client.table(ITEMS_TABLE).insert(rows).execute()
        return len(rows)

    def fetch_batch_items(self, batch_id: str) -> List[Dict[str, Any]]:
        """All item rows of a batch, paged past the PostgREST row cap."""
        items = []
        start = 0
        while True:
            result = self.client.table(ITEMS_TABLE).select("*").eq(
                "batch_id", batch_id
            ).order("id").range(start, start + PAGE_SIZE - 1).execute()

            page = result.data or []
            items.extend(page)
            if len(page) < PAGE_SIZE:
                break
            start += PAGE_SIZE
        return items

    def delete_batches(self, batch_ids: List[str]) -> int:
        """
        Delete whole batches: items first, then headers.

        Returns:
            Number of item rows deleted
        """
        if not batch_ids:
            return 0

        result = self.client.table(ITEMS_TABLE).delete().in_("batch_id", batch_ids).execute()
        deleted_items = len(result.data or [])

        self.client.table(BATCHES_TABLE).delete().in_("batch_id", batch_ids).execute()
        return deleted_items

    # -------------------------------------------------------------------------
    # Legacy documents
    # -------------------------------------------------------------------------

    def latest_legacy_document(self, report_type: str, scope: BatchScope) -> Optional[Dict[str, Any]]:
        query = self._scoped(self.client.table(LEGACY_TABLE).select("*"), report_type, scope)
        result = query.order("created_at", desc=True).limit(1).execute()
        return result.data[0] if result.data else None
