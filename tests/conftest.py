"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sp_reports.utils.db import BatchScope, ReportStore  # noqa: E402
from sp_reports.utils.retention import RetentionWorker  # noqa: E402
from tests.fakes import FakeSupabaseClient  # noqa: E402


@pytest.fixture
def clock():
    """Strictly increasing ISO timestamps, one second apart."""
    counter = itertools.count()
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return lambda: (start + timedelta(seconds=next(counter))).isoformat()


@pytest.fixture
def supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def store(supabase, clock) -> ReportStore:
    return ReportStore(client=supabase, clock=clock)


@pytest.fixture
def worker():
    retention_worker = RetentionWorker()
    yield retention_worker
    retention_worker.shutdown()


@pytest.fixture
def scope() -> BatchScope:
    return BatchScope("user-1", "US", "NA")
