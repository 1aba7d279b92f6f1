"""
Run registry - track fetch and analysis jobs with status, row counts, and timing.
Thin IO layer for run lifecycle management.
"""

import sqlite3
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional
from enum import Enum


class RunStatus(str, Enum):
    """Enumeration of run statuses."""
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


class RunNotFoundError(Exception):
    """Raised when run ID is not found."""
    pass


def _timestamp(value: datetime) -> str:
    return value.isoformat(sep=' ')


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value.replace(' ', 'T')) if value else None


def _duration_seconds(started_at: Optional[datetime], finished_at: Optional[datetime]) -> Optional[int]:
    if started_at and finished_at:
        return int((finished_at - started_at).total_seconds())
    return None


def start_run(
    conn: sqlite3.Connection,
    job_name: str,
    started_at: Optional[datetime] = None
) -> int:
    """
    Start a new job run and return run ID.

    Args:
        conn: SQLite connection
        job_name: Name of the job being run (e.g. 'prices', 'analysis')
        started_at: Start timestamp (defaults to now)

    Returns:
        Run ID for tracking this execution
    """
    if started_at is None:
        started_at = datetime.now()

    cursor = conn.execute("""
        INSERT INTO runs (job_name, started_at, status)
        VALUES (?, ?, ?)
    """, (job_name, _timestamp(started_at), RunStatus.RUNNING.value))

    conn.commit()
    return cursor.lastrowid


def finish_run(
    conn: sqlite3.Connection,
    run_id: int,
    status: RunStatus,
    finished_at: Optional[datetime] = None,
    rows_in: Optional[int] = None,
    rows_out: Optional[int] = None,
    output_path: Optional[str] = None,
    error_message: Optional[str] = None
) -> None:
    """
    Mark a run as finished with final status and metrics.

    Args:
        conn: SQLite connection
        run_id: Run ID from start_run()
        status: Final status (COMPLETED or FAILED)
        finished_at: End timestamp (defaults to now)
        rows_in: Number of input rows processed
        rows_out: Number of output rows produced
        output_path: Path to the artifact the run wrote (if any)
        error_message: Error message if failed

    Raises:
        RunNotFoundError: If run_id doesn't exist
    """
    if finished_at is None:
        finished_at = datetime.now()

    cursor = conn.execute("SELECT run_id FROM runs WHERE run_id = ?", (run_id,))
    if cursor.fetchone() is None:
        raise RunNotFoundError(f"Run ID {run_id} not found")

    conn.execute("""
        UPDATE runs SET
            status = ?,
            finished_at = ?,
            rows_in = ?,
            rows_out = ?,
            output_path = ?,
            error_message = ?
        WHERE run_id = ?
    """, (
        RunStatus(status).value, _timestamp(finished_at), rows_in, rows_out,
        output_path, error_message, run_id
    ))

    conn.commit()


def get_run_status(conn: sqlite3.Connection, run_id: int) -> Dict[str, Any]:
    """
    Get detailed status and metrics for a run.

    Raises:
        RunNotFoundError: If run_id doesn't exist
    """
    cursor = conn.execute("""
        SELECT run_id, job_name, started_at, finished_at, status,
               rows_in, rows_out, output_path, error_message
        FROM runs
        WHERE run_id = ?
    """, (run_id,))

    row = cursor.fetchone()
    if row is None:
        raise RunNotFoundError(f"Run ID {run_id} not found")

    run_info = {
        'run_id': row[0],
        'job_name': row[1],
        'started_at': _parse_timestamp(row[2]),
        'finished_at': _parse_timestamp(row[3]),
        'status': RunStatus(row[4]),
        'rows_in': row[5],
        'rows_out': row[6],
        'output_path': row[7],
        'error_message': row[8]
    }

    run_info['duration_seconds'] = _duration_seconds(
        run_info['started_at'], run_info['finished_at']
    )

    if run_info['rows_in'] and run_info['rows_out'] is not None:
        run_info['success_rate'] = run_info['rows_out'] / run_info['rows_in']
        run_info['rows_dropped'] = run_info['rows_in'] - run_info['rows_out']
    else:
        run_info['success_rate'] = None
        run_info['rows_dropped'] = None

    return run_info


def list_recent_runs(
    conn: sqlite3.Connection,
    limit: int = 50,
    job_name: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    List recent runs with basic info, most recent first.

    Args:
        conn: SQLite connection
        limit: Maximum number of runs to return
        job_name: Filter by specific job name (optional)

    Returns:
        List of run dictionaries with basic info
    """
    query = """
        SELECT run_id, job_name, started_at, finished_at, status, rows_in, rows_out
        FROM runs
    """
    params: List[Any] = []

    if job_name:
        query += " WHERE job_name = ?"
        params.append(job_name)

    query += " ORDER BY started_at DESC, run_id DESC LIMIT ?"
    params.append(limit)

    runs = []
    for row in conn.execute(query, params).fetchall():
        started_at = _parse_timestamp(row[2])
        finished_at = _parse_timestamp(row[3])
        runs.append({
            'run_id': row[0],
            'job_name': row[1],
            'started_at': started_at,
            'finished_at': finished_at,
            'status': RunStatus(row[4]),
            'rows_in': row[5],
            'rows_out': row[6],
            'duration_seconds': _duration_seconds(started_at, finished_at)
        })

    return runs


def get_job_stats(conn: sqlite3.Connection, job_name: str, days: int = 30) -> Dict[str, Any]:
    """
    Get aggregate statistics for a job over a recent period.

    Args:
        conn: SQLite connection
        job_name: Job name to analyze
        days: Number of days to look back

    Returns:
        Dictionary with aggregate statistics
    """
    cutoff = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    cutoff -= timedelta(days=days)

    cursor = conn.execute("""
        SELECT
            COUNT(*) as total_runs,
            SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) as completed_runs,
            SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) as failed_runs,
            SUM(CASE WHEN status = 'running' THEN 1 ELSE 0 END) as running_runs,
            AVG(CASE WHEN finished_at IS NOT NULL
                THEN (julianday(finished_at) - julianday(started_at)) * 86400
                ELSE NULL END) as avg_duration_seconds
        FROM runs
        WHERE job_name = ? AND started_at >= ?
    """, (job_name, _timestamp(cutoff)))

    row = cursor.fetchone()
    total = row[0] or 0

    return {
        'job_name': job_name,
        'period_days': days,
        'total_runs': total,
        'completed_runs': row[1] or 0,
        'failed_runs': row[2] or 0,
        'running_runs': row[3] or 0,
        'avg_duration_seconds': row[4],
        'success_rate': (row[1] or 0) / total if total else None,
    }
