"""
Batched Report Reader
Resolves the current data for a (report type, scope), whichever storage
format holds it.

Readers are tried in order and the first one that finds a source answers:
    BatchedReader  newest batch in report_batches / report_batch_items
    LegacyReader   newest row in report_documents (embedded rows array)

Both produce the same ReportData shape. An empty source means "no data".
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sp_reports.utils.db import BatchScope, ReportStore
from sp_reports.utils.normalizers import ReportItem, item_class_for

logger = logging.getLogger(__name__)

SOURCE_BATCH = "batch"
SOURCE_LEGACY = "legacy"


@dataclass(frozen=True)
class ReportData:
    """The logical result set for one scope."""

    report_type: str
    scope: BatchScope
    items: List[ReportItem]
    created_at: Optional[str]
    batch_id: Optional[str] = None
    source: str = SOURCE_BATCH

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_records(self) -> List[Dict[str, Any]]:
        return [item.to_record() for item in self.items]


class BatchedReader:
    """Reads the newest batch for a scope."""

    def read(self, store: ReportStore, report_type: str, scope: BatchScope) -> Optional[ReportData]:
        latest = store.latest_batch(report_type, scope)
        if not latest:
            return None

        item_class = item_class_for(report_type)
        rows = store.fetch_batch_items(latest["batch_id"])
        items = [item_class.from_record(row.get("item") or {}) for row in rows]

        logger.debug(
            f"[{report_type}] Found batch {latest['batch_id']} with {len(items)} items "
            f"for user {scope.user_id} {scope.country}/{scope.region}"
        )
        return ReportData(
            report_type=report_type,
            scope=scope,
            items=items,
            created_at=latest.get("created_at"),
            batch_id=latest["batch_id"],
            source=SOURCE_BATCH
        )


def _flatten_legacy_rows(rows: Any) -> List[Dict[str, Any]]:
    """Legacy documents sometimes wrapped the rows array in another array."""
    flat = []
    for entry in rows or []:
        if isinstance(entry, list):
            flat.extend(e for e in entry if isinstance(e, dict))
        elif isinstance(entry, dict):
            flat.append(entry)
    return flat


class LegacyReader:
    """Reads the single-document-per-scope format. Never written by new code."""

    def read(self, store: ReportStore, report_type: str, scope: BatchScope) -> Optional[ReportData]:
        document = store.latest_legacy_document(report_type, scope)
        if not document:
            return None

        item_class = item_class_for(report_type)
        items = [item_class.from_record(row) for row in _flatten_legacy_rows(document.get("rows"))]

        logger.debug(
            f"[{report_type}] Found legacy document with {len(items)} items "
            f"for user {scope.user_id} {scope.country}/{scope.region}"
        )
        return ReportData(
            report_type=report_type,
            scope=scope,
            items=items,
            created_at=document.get("created_at"),
            batch_id=None,
            source=SOURCE_LEGACY
        )


DEFAULT_READERS = (BatchedReader(), LegacyReader())


def resolve_report_data(
    store: ReportStore,
    report_type: str,
    scope: BatchScope,
    readers: Sequence = DEFAULT_READERS
) -> Optional[ReportData]:
    """
    Get the current data for a scope.

    Returns:
        ReportData with at least one item, or None when there is no data
    """
    for reader in readers:
        data = reader.read(store, report_type, scope)
        if data is None:
            continue
        if not data.items:
            logger.debug(f"[{report_type}] Newest {data.source} source is empty, treating as no data")
            return None
        return data

    logger.debug(f"[{report_type}] No data found for user {scope.user_id} {scope.country}/{scope.region}")
    return None
