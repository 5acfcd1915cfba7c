"""Unit tests for batch retention sweeps."""

from __future__ import annotations

import threading

from sp_reports.utils import report_types
from sp_reports.utils.batch_reader import resolve_report_data
from sp_reports.utils.batch_writer import save_report_batch
from sp_reports.utils.db import BATCHES_TABLE, ITEMS_TABLE, BatchScope
from sp_reports.utils.normalizers import StrandedInventoryItem
from sp_reports.utils.retention import RetentionWorker, select_expired_batches, sweep_old_batches

STRANDED = report_types.STRANDED_INVENTORY


def _write(store, scope, worker, label: str, retention: int = 3):
    return save_report_batch(
        store, STRANDED, scope, [StrandedInventoryItem(asin=label)], retention_count=retention, worker=worker
    )


def test_select_expired_keeps_newest_successful_batches() -> None:
    """Failed batches never count toward the kept set."""
    batches = [
        {"batch_id": "b5", "status": "completed"},
        {"batch_id": "b4", "status": "failed"},
        {"batch_id": "b3", "status": "completed"},
        {"batch_id": "b2", "status": "writing"},
        {"batch_id": "b1", "status": "completed"},
    ]

    assert select_expired_batches(batches, keep_count=2) == ["b4", "b2", "b1"]
    assert select_expired_batches(batches, keep_count=10) == ["b4"]


def test_select_expired_leaves_in_flight_batches_alone() -> None:
    """A pending batch newer than the kept set may still be writing."""
    batches = [
        {"batch_id": "b4", "status": "pending"},
        {"batch_id": "b3", "status": "completed"},
        {"batch_id": "b2", "status": "completed"},
        {"batch_id": "b1", "status": "pending"},
    ]

    assert select_expired_batches(batches, keep_count=2) == ["b1"]
    assert select_expired_batches(batches, keep_count=1) == ["b2", "b1"]


def test_retention_plus_one_writes_leave_retention_batches(store, supabase, scope, worker) -> None:
    """After retention + 1 writes the oldest batch should be gone."""
    results = [_write(store, scope, worker, f"A{i}") for i in range(4)]
    assert worker.drain(timeout=10)

    remaining = {row["batch_id"] for row in supabase.rows(BATCHES_TABLE)}
    assert remaining == {result.batch_id for result in results[1:]}
    assert results[0].batch_id not in {row["batch_id"] for row in supabase.rows(ITEMS_TABLE)}

    data = resolve_report_data(store, STRANDED, scope)
    assert data.batch_id == results[-1].batch_id
    assert [item.asin for item in data.items] == ["A3"]


def test_sweep_only_touches_its_own_scope(store, supabase, scope, worker) -> None:
    """Other users and other report types should be left alone."""
    other_scope = BatchScope("user-2", "US", "NA")
    other = _write(store, other_scope, worker, "OTHER")
    save_report_batch(
        store, report_types.MERCHANT_LISTINGS, scope, [], retention_count=1, worker=worker
    )
    for label in ("A1", "A2"):
        _write(store, scope, worker, label, retention=1)
    assert worker.drain(timeout=10)

    remaining = supabase.rows(BATCHES_TABLE)
    assert other.batch_id in {row["batch_id"] for row in remaining}
    assert len([row for row in remaining if row["report_type"] == STRANDED and row["user_id"] == "user-1"]) == 1
    assert len([row for row in remaining if row["report_type"] == report_types.MERCHANT_LISTINGS]) == 1


def test_sweep_returns_deleted_item_count(store, scope) -> None:
    class NoopWorker:
        def submit(self, *args, **kwargs):
            pass

    for label in ("A1", "A2", "A3"):
        _write(store, scope, NoopWorker(), label)

    assert sweep_old_batches(store, STRANDED, scope, keep_count=1) == 2
    assert sweep_old_batches(store, STRANDED, scope, keep_count=1) == 0


def test_sweep_errors_go_to_error_channel(scope) -> None:
    """A failing sweep should be reported to on_error, not raised to the writer."""
    reported = []
    handled = threading.Event()

    def on_error(error, report_type, error_scope):
        reported.append((str(error), report_type, error_scope))
        handled.set()

    class BrokenStore:
        def list_batches(self, report_type, scope):
            raise ConnectionError("database unavailable")

    worker = RetentionWorker(on_error=on_error)
    try:
        worker.submit(BrokenStore(), STRANDED, scope)
        assert handled.wait(timeout=10)
    finally:
        worker.shutdown()

    assert reported == [("database unavailable", STRANDED, scope)]


def test_sweep_failure_does_not_fail_write(store, supabase, scope) -> None:
    """The write should succeed even when its cleanup sweep fails."""
    handled = threading.Event()
    worker = RetentionWorker(on_error=lambda error, report_type, error_scope: handled.set())
    supabase.fail_action(ITEMS_TABLE, "delete", ConnectionError("delete failed"))

    try:
        results = [_write(store, scope, worker, f"A{i}", retention=1) for i in range(2)]
        assert handled.wait(timeout=10)
    finally:
        worker.shutdown()

    assert all(result.success for result in results)
    assert len(supabase.rows(BATCHES_TABLE)) == 2


def test_drain_with_nothing_pending() -> None:
    worker = RetentionWorker()
    try:
        assert worker.drain(timeout=1)
    finally:
        worker.shutdown()
