"""
Prices DAG - fetch adjusted closes for a basket of symbols into storage.
Composes: Provider → Transform → Validate → Store → Track.
"""

import logging
import sqlite3
from datetime import date, datetime, timedelta
from typing import Dict, Any, Optional, List
from dataclasses import dataclass

from ingestion.providers.yfinance_adapter import fetch_prices_window
from ingestion.transforms.normalizers import normalize_prices
from ingestion.transforms.validators import validate_prices_row, ValidationError
from storage.loaders import upsert_prices
from storage.run_registry import start_run, finish_run, RunStatus


logger = logging.getLogger(__name__)

JOB_NAME = 'prices'


class PipelineError(Exception):
    """Raised when pipeline execution fails."""
    pass


@dataclass
class PricesConfig:
    """Configuration for the prices pipeline."""
    symbols: List[str]
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def __post_init__(self):
        if isinstance(self.symbols, str):
            self.symbols = [self.symbols]

        if not self.symbols or not all(isinstance(s, str) and s for s in self.symbols):
            raise ValueError("symbols must be a non-empty list of strings")

        # Preserve order, drop repeats
        self.symbols = list(dict.fromkeys(s.upper() for s in self.symbols))

        if self.end_date is None:
            self.end_date = date.today()

        # Ten years of history by default
        if self.start_date is None:
            self.start_date = self.end_date - timedelta(days=365 * 10)

        if self.start_date > self.end_date:
            raise ValueError("start_date must be <= end_date")


def _ingest_symbol(conn: sqlite3.Connection, symbol: str, config: PricesConfig) -> Dict[str, Any]:
    """Fetch, normalize, validate and store one symbol; returns its counters."""
    raw_data = fetch_prices_window(ticker=symbol, start=config.start_date, end=config.end_date)

    summary = {'rows_fetched': len(raw_data), 'rows_stored': 0, 'validation_warnings': 0}

    if not raw_data:
        raise PipelineError(f"No prices returned for {symbol}")

    normalized = normalize_prices(
        raw_rows=raw_data,
        symbol=symbol,
        source='yfinance',
        ingested_at=datetime.now()
    )

    valid_rows = []
    for row in normalized:
        try:
            validate_prices_row(row)
            valid_rows.append(row)
        except ValidationError as e:
            summary['validation_warnings'] += 1
            logger.warning(f"Skipping {symbol} {row.get('date', 'unknown')}: {e}")

    if not valid_rows:
        raise PipelineError(f"All {len(normalized)} rows for {symbol} failed validation")

    inserted, updated = upsert_prices(conn, valid_rows)

    summary.update({
        'rows_stored': len(valid_rows),
        'rows_inserted': inserted,
        'rows_updated': updated,
        'first_date': valid_rows[0]['date'],
        'last_date': valid_rows[-1]['date'],
    })

    logger.info(f"Stored {len(valid_rows)} rows for {symbol} ({inserted} new, {updated} updated)")
    return summary


def run_prices(config: PricesConfig, conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Run the prices pipeline for every symbol in the config.

    Pipeline stages per symbol:
    1. Fetch raw data from provider
    2. Normalize to canonical format
    3. Validate each row (invalid rows are skipped with a warning)
    4. Store valid rows

    A symbol with no data or no valid rows fails the whole run, since an
    analysis over the basket would be incomplete without it. Rows stored
    for earlier symbols stay (upserts are idempotent).

    Args:
        config: Pipeline configuration
        conn: SQLite database connection

    Returns:
        Dictionary with run results and per-symbol metrics
    """
    run_id = start_run(conn, JOB_NAME)
    start_time = datetime.now()

    result = {
        'symbols': list(config.symbols),
        'start_date': config.start_date,
        'end_date': config.end_date,
        'run_id': run_id,
        'status': 'running',
        'rows_fetched': 0,
        'rows_stored': 0,
        'validation_warnings': 0,
        'per_symbol': {},
        'error_message': None
    }

    logger.info(
        f"Run {run_id}: fetching {len(config.symbols)} symbols "
        f"from {config.start_date} to {config.end_date}"
    )

    try:
        for symbol in config.symbols:
            summary = _ingest_symbol(conn, symbol, config)
            result['per_symbol'][symbol] = summary
            result['rows_fetched'] += summary['rows_fetched']
            result['rows_stored'] += summary['rows_stored']
            result['validation_warnings'] += summary['validation_warnings']

        finish_run(
            conn=conn,
            run_id=run_id,
            status=RunStatus.COMPLETED,
            rows_in=result['rows_fetched'],
            rows_out=result['rows_stored']
        )
        result['status'] = 'completed'

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
