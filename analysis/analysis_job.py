"""
Orchestrated analysis job - SQLite to metrics JSON pipeline.
Queries stored prices and factors, calls pure functions, persists the metrics document.
"""

import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union

import pandas as pd

from analysis.config import AnalysisConfig
from analysis.metrics_aggregator import build_returns, compose_metrics
from reports.atomic_writer import verify_file_integrity, write_json_atomic
from storage.loaders import load_price_frame, load_factor_frame
from storage.run_registry import start_run, finish_run, RunStatus


logger = logging.getLogger(__name__)

JOB_NAME = 'analysis'

# Factor datasets that line up with each return frequency
FACTOR_FREQUENCIES = {'monthly': 'monthly', 'weekly': 'weekly', 'daily': 'daily'}


class AnalysisJobError(Exception):
    """Raised when analysis job fails."""
    pass


def load_inputs(
    conn: sqlite3.Connection,
    config: AnalysisConfig
) -> Dict[str, Optional[pd.DataFrame]]:
    """
    Read the price and factor frames an analysis needs.

    Raises:
        AnalysisJobError: If no prices are stored for the requested window
    """
    prices = load_price_frame(
        conn, config.fetch_symbols, config.fetch_start_date, config.end_date
    )

    if prices.empty:
        raise AnalysisJobError(
            f"No stored prices for {config.fetch_symbols} between "
            f"{config.fetch_start_date} and {config.end_date}; run fetch-prices first"
        )

    factors = None
    factor_frequency = FACTOR_FREQUENCIES.get(config.frequency)
    if factor_frequency and config.factors:
        factors = load_factor_frame(conn, factor_frequency, config.start_date, config.end_date)
        if factors.empty:
            logger.warning(f"No {factor_frequency} factors stored; skipping factor model")
            factors = None

    return {'prices': prices, 'factors': factors}


def load_portfolio_returns(
    conn: sqlite3.Connection,
    config: AnalysisConfig
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Periodic returns for every fetched symbol plus the portfolio series.

    Raises:
        AnalysisJobError: If no prices are stored
        MetricsAggregatorError: If a symbol is missing or the window is empty
    """
    prices = load_inputs(conn, config)['prices']
    return build_returns(prices, config)


def run_portfolio_analysis(
    conn: sqlite3.Connection,
    config: AnalysisConfig,
    output_path: Union[str, Path],
    as_of_date: Optional[date] = None
) -> Dict[str, Any]:
    """
    Run the complete portfolio analysis and save the metrics document.

    Args:
        conn: SQLite database connection
        config: Analysis configuration
        output_path: Path for the metrics JSON file
        as_of_date: Date stamped on the document (defaults to config.end_date)

    Returns:
        Dictionary with job results ('status' is 'completed' or 'failed')
    """
    output_path = Path(output_path)
    run_id = start_run(conn, JOB_NAME)
    start_time = datetime.now()

    result = {
        'run_id': run_id,
        'symbols': list(config.symbols),
        'status': 'running',
        'output_path': None,
        'price_rows': 0,
        'periods': 0,
        'error_message': None
    }

    try:
        inputs = load_inputs(conn, config)
        result['price_rows'] = len(inputs['prices'])

        logger.info(
            f"Run {run_id}: analyzing {config.symbols} on {len(inputs['prices'])} price rows"
        )

        metrics = compose_metrics(inputs['prices'], inputs['factors'], config, as_of_date)
        result['periods'] = metrics['data_period']['periods']

        write_result = write_json_atomic(metrics, output_path)
        if write_result['status'] != 'completed':
            raise AnalysisJobError(f"Failed to write {output_path}: {write_result['error']}")

        if not verify_file_integrity(output_path, expected_size=write_result['bytes_written']):
            raise AnalysisJobError(f"Integrity check failed for {output_path}")

        finish_run(
            conn=conn,
            run_id=run_id,
            status=RunStatus.COMPLETED,
            rows_in=result['price_rows'],
            rows_out=result['periods'],
            output_path=str(output_path)
        )

        result.update({
            'status': 'completed',
            'output_path': str(output_path),
            'summary': _summarize(metrics),
        })

    except Exception as e:
        logger.error(f"Run {run_id} failed: {e}")

        finish_run(
            conn=conn,
            run_id=run_id,
            status=RunStatus.FAILED,
            rows_in=result['price_rows'],
            rows_out=0,
            error_message=str(e)
        )
        result['status'] = 'failed'
        result['error_message'] = str(e)

    result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
    return result


def _summarize(metrics: Dict[str, Any]) -> Dict[str, Any]:
    """Headline numbers for console output."""
    portfolio = metrics['portfolio']
    factor_model = metrics.get('factor_model') or {}
    simulation = metrics['simulation']

    return {
        'periods': metrics['data_period']['periods'],
        'mean': portfolio['mean'],
        'std': portfolio['std'],
        'sharpe': portfolio['sharpe'],
        'beta': portfolio['beta'],
        'factor_r_squared': factor_model.get('r_squared'),
        'median_terminal': simulation['median_terminal'],
    }
