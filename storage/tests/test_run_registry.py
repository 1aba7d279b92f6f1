"""
Tests for run registry - job execution tracking.
Uses in-memory SQLite for fast, isolated tests.
"""

import pytest
import sqlite3
from datetime import datetime, timedelta

from storage.run_registry import (
    start_run,
    finish_run,
    get_run_status,
    list_recent_runs,
    get_job_stats,
    RunStatus,
    RunNotFoundError
)
from storage.loaders import init_database


@pytest.fixture
def in_memory_db():
    """Create in-memory SQLite database for testing."""
    conn = sqlite3.connect(':memory:')
    init_database(conn)
    return conn


class TestRunRegistry:
    """Tests for run lifecycle functions."""

    def test_start_run_creates_record(self, in_memory_db):
        run_id = start_run(
            conn=in_memory_db,
            job_name='prices',
            started_at=datetime(2024, 1, 16, 9, 0, 0)
        )

        assert isinstance(run_id, int)
        assert run_id > 0

        row = in_memory_db.execute(
            "SELECT job_name, started_at, status FROM runs WHERE run_id = ?",
            (run_id,)
        ).fetchone()

        assert row == ('prices', '2024-01-16 09:00:00', 'running')

    def test_start_run_auto_timestamp(self, in_memory_db):
        before = datetime.now()
        run_id = start_run(conn=in_memory_db, job_name='analysis')
        after = datetime.now()

        stored = in_memory_db.execute(
            "SELECT started_at FROM runs WHERE run_id = ?", (run_id,)
        ).fetchone()[0]

        assert before <= datetime.fromisoformat(stored) <= after

    def test_finish_run_stores_metrics_and_error(self, in_memory_db):
        run_id = start_run(in_memory_db, 'factors', datetime(2024, 1, 16, 9, 0, 0))

        finish_run(
            in_memory_db,
            run_id,
            RunStatus.FAILED,
            finished_at=datetime(2024, 1, 16, 9, 0, 30),
            rows_in=10,
            rows_out=0,
            error_message='download failed'
        )

        status = get_run_status(in_memory_db, run_id)

        assert status['status'] == RunStatus.FAILED
        assert status['job_name'] == 'factors'
        assert status['error_message'] == 'download failed'
        assert status['duration_seconds'] == 30
        assert status['rows_dropped'] == 10
        assert status['success_rate'] == 0.0

    def test_finish_run_records_output_path(self, in_memory_db):
        run_id = start_run(in_memory_db, 'analysis')

        finish_run(in_memory_db, run_id, RunStatus.COMPLETED, output_path='out/metrics.json')

        status = get_run_status(in_memory_db, run_id)
        assert status['output_path'] == 'out/metrics.json'
        assert status['error_message'] is None

    def test_finish_unknown_run_raises(self, in_memory_db):
        with pytest.raises(RunNotFoundError, match="Run ID 999 not found"):
            finish_run(in_memory_db, 999, RunStatus.COMPLETED)

    def test_get_unknown_run_raises(self, in_memory_db):
        with pytest.raises(RunNotFoundError):
            get_run_status(in_memory_db, 42)

    def test_running_run_has_no_duration(self, in_memory_db):
        run_id = start_run(in_memory_db, 'prices')

        status = get_run_status(in_memory_db, run_id)

        assert status['status'] == RunStatus.RUNNING
        assert status['finished_at'] is None
        assert status['duration_seconds'] is None


class TestRunListing:
    """Tests for listing and aggregate stats."""

    def test_list_recent_runs_newest_first(self, in_memory_db):
        base = datetime(2024, 1, 1, 9, 0, 0)
        ids = [start_run(in_memory_db, 'prices', base + timedelta(hours=i)) for i in range(3)]

        runs = list_recent_runs(in_memory_db)

        assert [r['run_id'] for r in runs] == list(reversed(ids))

    def test_list_recent_runs_filters_and_limits(self, in_memory_db):
        start_run(in_memory_db, 'prices')
        start_run(in_memory_db, 'analysis')
        start_run(in_memory_db, 'analysis')

        runs = list_recent_runs(in_memory_db, limit=1, job_name='analysis')

        assert len(runs) == 1
        assert runs[0]['job_name'] == 'analysis'

    def test_job_stats_counts_statuses(self, in_memory_db):
        now = datetime.now()
        ok = start_run(in_memory_db, 'prices', now)
        bad = start_run(in_memory_db, 'prices', now)
        start_run(in_memory_db, 'prices', now)
        finish_run(in_memory_db, ok, RunStatus.COMPLETED, finished_at=now + timedelta(seconds=10))
        finish_run(in_memory_db, bad, RunStatus.FAILED, finished_at=now + timedelta(seconds=20))

        stats = get_job_stats(in_memory_db, 'prices', days=7)

        assert stats['total_runs'] == 3
        assert stats['completed_runs'] == 1
        assert stats['failed_runs'] == 1
        assert stats['running_runs'] == 1
        assert stats['success_rate'] == pytest.approx(1 / 3)
        assert stats['avg_duration_seconds'] == pytest.approx(15, abs=0.01)

    def test_job_stats_excludes_old_runs(self, in_memory_db):
        start_run(in_memory_db, 'prices', datetime.now() - timedelta(days=60))

        stats = get_job_stats(in_memory_db, 'prices', days=30)

        assert stats['total_runs'] == 0
        assert stats['success_rate'] is None
