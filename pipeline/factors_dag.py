"""
Factors DAG - load Fama-French factor returns into storage.
Composes: Provider → Transform → Validate → Store → Track.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Dict, Any
from dataclasses import dataclass

from ingestion.providers.fama_french_adapter import fetch_factor_rows, DATASETS
from ingestion.transforms.normalizers import normalize_factors
from ingestion.transforms.validators import validate_factor_row, ValidationError
from storage.loaders import upsert_factors
from storage.run_registry import start_run, finish_run, RunStatus
from pipeline.prices_dag import PipelineError


logger = logging.getLogger(__name__)

JOB_NAME = 'factors'


@dataclass
class FactorsConfig:
    """Configuration for the factors pipeline."""
    frequency: str = 'monthly'

    def __post_init__(self):
        if self.frequency not in DATASETS:
            raise ValueError(
                f"frequency must be one of {sorted(DATASETS)}, got {self.frequency!r}"
            )


def run_factors(config: FactorsConfig, conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Download the factor dataset and upsert every valid row.

    The library republishes the full history each time, so every run
    refreshes all stored periods for the frequency.

    Args:
        config: Pipeline configuration
        conn: SQLite database connection

    Returns:
        Dictionary with run results and metrics
    """
    run_id = start_run(conn, JOB_NAME)
    start_time = datetime.now()

    result = {
        'frequency': config.frequency,
        'run_id': run_id,
        'status': 'running',
        'rows_fetched': 0,
        'rows_stored': 0,
        'validation_warnings': 0,
        'error_message': None
    }

    try:
        raw_rows = fetch_factor_rows(config.frequency)
        result['rows_fetched'] = len(raw_rows)

        normalized = normalize_factors(
            raw_rows,
            frequency=config.frequency,
            source='fama_french',
            ingested_at=datetime.now()
        )

        valid_rows = []
        for row in normalized:
            try:
                validate_factor_row(row)
                valid_rows.append(row)
            except ValidationError as e:
                result['validation_warnings'] += 1
                logger.warning(f"Skipping factor row {row.get('date', 'unknown')}: {e}")

        if not valid_rows:
            raise PipelineError(f"All {len(normalized)} factor rows failed validation")

        inserted, updated = upsert_factors(conn, valid_rows)
        result.update({
            'rows_stored': len(valid_rows),
            'rows_inserted': inserted,
            'rows_updated': updated,
            'first_date': valid_rows[0]['date'],
            'last_date': valid_rows[-1]['date'],
        })

        finish_run(
            conn=conn,
            run_id=run_id,
            status=RunStatus.COMPLETED,
            rows_in=result['rows_fetched'],
            rows_out=result['rows_stored']
        )
        result['status'] = 'completed'

        logger.info(
            f"Run {run_id}: stored {len(valid_rows)} {config.frequency} factor rows "
            f"({valid_rows[0]['date']} to {valid_rows[-1]['date']})"
        )

    except Exception as e:
        logger.error(f"Run {run_id} failed: {e}")

        finish_run(
            conn=conn,
            run_id=run_id,
            status=RunStatus.FAILED,
            rows_in=result['rows_fetched'],
            rows_out=result['rows_stored'],
            error_message=str(e)
        )
        result['status'] = 'failed'
        result['error_message'] = str(e)

    result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
    return result
