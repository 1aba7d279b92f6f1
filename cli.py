#!/usr/bin/env python3
"""
Main CLI for the portfolio analytics workbench.

Usage:
    python cli.py fetch-prices --config config/portfolio.yml
    python cli.py fetch-factors --frequency monthly
    python cli.py analyze --config config/portfolio.yml
    python cli.py rolling --config config/portfolio.yml --statistic sharpe
    python cli.py simulate --config config/portfolio.yml --seed 42
    python cli.py simulate --mean 0.005 --std 0.03 --periods 120 --paths 51
    python cli.py runs
    python cli.py runs --stats --days 7
    python cli.py runs --run-id 12
"""

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from analysis.analysis_job import JOB_NAME as ANALYSIS_JOB
from analysis.analysis_job import AnalysisJobError, load_portfolio_returns, run_portfolio_analysis
from analysis.calculations.montecarlo import simulate, simulate_from_returns
from analysis.calculations.rolling import Statistic, roll, rolling_portfolio_volatility
from analysis.config import AnalysisConfig, default_db_path, load_config
from analysis.errors import AnalysisError
from analysis.metrics_aggregator import MetricsAggregatorError
from pipeline.factors_dag import JOB_NAME as FACTORS_JOB
from pipeline.factors_dag import FactorsConfig, run_factors
from pipeline.prices_dag import JOB_NAME as PRICES_JOB
from pipeline.prices_dag import PricesConfig, run_prices
from reports.atomic_writer import write_text_atomic
from storage.loaders import get_connection, init_database
from storage.run_registry import RunNotFoundError, get_job_stats, get_run_status, list_recent_runs


logger = logging.getLogger(__name__)

DEFAULT_CONFIG = 'config/portfolio.yml'
DEFAULT_METRICS_PATH = './data/processed/portfolio_metrics.json'

ROLLING_CHOICES = [s.value for s in Statistic if s != Statistic.FACTOR] + ['portfolio_volatility']

RUN_JOBS = [PRICES_JOB, FACTORS_JOB, ANALYSIS_JOB]


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value} (use YYYY-MM-DD)") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Portfolio statistics, rolling risk, and Monte Carlo growth simulation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--db-path', default=None,
                        help='SQLite database path (default: $PORTFOLIO_DB_PATH or ./data/portfolio.db)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Debug logging (default level from $LOG_LEVEL or INFO)')

    sub = parser.add_subparsers(dest='command', required=True)

    prices = sub.add_parser('fetch-prices', help='Download adjusted closes into the database')
    prices.add_argument('--config', default=None, help='Portfolio YAML (symbols, market symbol and date range)')
    prices.add_argument('--symbols', nargs='+', help='Symbols to fetch (overrides --config)')
    prices.add_argument('--start', type=_parse_date, help='First date (YYYY-MM-DD)')
    prices.add_argument('--end', type=_parse_date, help='Last date (YYYY-MM-DD)')

    factors = sub.add_parser('fetch-factors', help='Download Fama-French factors into the database')
    factors.add_argument('--frequency', default='monthly', choices=['monthly', 'weekly', 'daily'])

    analyze = sub.add_parser('analyze', help='Compute the full metrics document')
    analyze.add_argument('--config', default=DEFAULT_CONFIG)
    analyze.add_argument('--output', default=DEFAULT_METRICS_PATH)

    rolling = sub.add_parser('rolling', help='Rolling statistic of portfolio returns')
    rolling.add_argument('--config', default=DEFAULT_CONFIG)
    rolling.add_argument('--statistic', default='sharpe', choices=ROLLING_CHOICES)
    rolling.add_argument('--window', type=int, help='Window in periods (overrides config)')
    rolling.add_argument('--output', help='Write the series as CSV')

    sim = sub.add_parser('simulate', help='Monte Carlo growth of $1')
    sim.add_argument('--config', default=None,
                     help='Fit mean/std from stored portfolio returns')
    sim.add_argument('--mean', type=float, help='Per-period mean return')
    sim.add_argument('--std', type=float, help='Per-period standard deviation')
    sim.add_argument('--periods', type=int, help='Periods per path')
    sim.add_argument('--paths', type=int, help='Number of paths')
    sim.add_argument('--seed', type=int, help='Seed for reproducible paths')
    sim.add_argument('--workers', type=int, help='Thread pool size')
    sim.add_argument('--output', help='Write every path as CSV')

    runs = sub.add_parser('runs', help='Show recent job runs')
    runs.add_argument('--limit', type=int, default=10)
    runs.add_argument('--job', default=None, help='Filter by job name')
    runs.add_argument('--run-id', type=int, help='Show one run in detail')
    runs.add_argument('--stats', action='store_true',
                      help='Per-job totals over the last --days days')
    runs.add_argument('--days', type=int, default=30)

    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else os.getenv('LOG_LEVEL', 'INFO').upper()
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )


def open_database(db_path: Optional[str]):
    db_path = Path(db_path or default_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(str(db_path))
    init_database(conn)
    return conn


def cmd_fetch_prices(args, conn) -> int:
    symbols, start, end = args.symbols, args.start, args.end

    # Without --symbols the portfolio config supplies symbols and date range
    if not symbols or args.config:
        analysis = load_config(args.config or DEFAULT_CONFIG)
        symbols = symbols or analysis.fetch_symbols
        start = start or analysis.fetch_start_date
        end = end or analysis.end_date

    config = PricesConfig(symbols=symbols, start_date=start, end_date=end)

    print(f"Fetching {', '.join(config.symbols)} from {config.start_date} to {config.end_date}")
    result = run_prices(config, conn)

    if result['status'] != 'completed':
        print(f"ERROR: {result['error_message']}", file=sys.stderr)
        return 1

    for symbol, summary in result['per_symbol'].items():
        print(f"  {symbol:<8} {summary['rows_stored']:>6} rows "
              f"({summary['first_date']} to {summary['last_date']})")
    if result['validation_warnings']:
        print(f"  Validation warnings: {result['validation_warnings']}")
    print(f"Stored {result['rows_stored']} rows in {result['duration_seconds']:.1f}s (run {result['run_id']})")
    return 0


def cmd_fetch_factors(args, conn) -> int:
    result = run_factors(FactorsConfig(frequency=args.frequency), conn)

    if result['status'] != 'completed':
        print(f"ERROR: {result['error_message']}", file=sys.stderr)
        return 1

    print(f"Stored {result['rows_stored']} {args.frequency} factor rows "
          f"({result['first_date']} to {result['last_date']}, run {result['run_id']})")
    return 0


def cmd_analyze(args, conn) -> int:
    config = load_config(args.config)
    result = run_portfolio_analysis(conn, config, args.output)

    if result['status'] != 'completed':
        print(f"ERROR: {result['error_message']}", file=sys.stderr)
        return 1

    summary = result['summary']
    print(f"Portfolio {', '.join(config.symbols)} over {summary['periods']} {config.frequency} periods")
    print(f"  Mean return:      {_fmt(summary['mean'])}")
    print(f"  Std deviation:    {_fmt(summary['std'])}")
    print(f"  Sharpe ratio:     {_fmt(summary['sharpe'])}")
    print(f"  Beta vs {config.market_symbol or 'market'}: {_fmt(summary['beta'])}")
    if summary['factor_r_squared'] is not None:
        print(f"  Factor R-squared: {_fmt(summary['factor_r_squared'])}")
    print(f"  Median growth of $1 after {config.simulation.n_periods} periods: "
          f"{_fmt(summary['median_terminal'])}")
    print(f"Metrics written to {result['output_path']}")
    return 0


def cmd_rolling(args, conn) -> int:
    config = load_config(args.config)
    window = args.window or config.window
    returns, port_returns = load_portfolio_returns(conn, config)

    if args.statistic == 'portfolio_volatility':
        series = rolling_portfolio_volatility(returns[config.symbols], config.portfolio, window)
    else:
        statistic = Statistic(args.statistic)
        series = roll(
            port_returns,
            window,
            statistic,
            risk_free_rate=config.risk_free_rate if statistic == Statistic.SHARPE else None,
            market=returns[config.market_symbol] if statistic == Statistic.BETA and config.market_symbol else None
        )

    print(f"Rolling {series.name} ({window} {config.frequency} periods), {len(series)} values")
    for ts, value in series.tail(12).items():
        print(f"  {ts.date()}  {value:.6f}")

    if args.output:
        write_result = write_text_atomic(series.to_csv(index_label='date'), args.output)
        if write_result['status'] != 'completed':
            print(f"ERROR: {write_result['error']}", file=sys.stderr)
            return 1
        print(f"Series written to {args.output}")
    return 0


def cmd_simulate(args, conn) -> int:
    if args.mean is not None or args.std is not None:
        if args.mean is None or args.std is None:
            print("ERROR: --mean and --std must be given together", file=sys.stderr)
            return 1
        n_periods = args.periods or 120
        n_paths = args.paths or 51
        result = simulate(n_periods, args.mean, args.std, n_paths,
                          seed=args.seed, max_workers=args.workers)
    else:
        config: AnalysisConfig = load_config(args.config or DEFAULT_CONFIG)
        _, port_returns = load_portfolio_returns(conn, config)
        result = simulate_from_returns(
            port_returns,
            n_periods=args.periods or config.simulation.n_periods,
            n_paths=args.paths or config.simulation.n_paths,
            seed=args.seed if args.seed is not None else config.simulation.seed,
            max_workers=args.workers or config.simulation.max_workers
        )

    print(f"Simulated {result.n_paths} paths x {result.n_periods} periods "
          f"(mean {result.mean_return:.6f}, std {result.stddev_return:.6f})")
    print(f"  Min / median / max growth of $1: "
          f"{result.min_terminal:.4f} / {result.median_terminal:.4f} / {result.max_terminal:.4f}")
    for prob, value in result.quantiles().items():
        print(f"  p{int(prob * 100):<3} {value:.4f}")

    if args.output:
        write_result = write_text_atomic(result.to_frame().to_csv(), args.output)
        if write_result['status'] != 'completed':
            print(f"ERROR: {write_result['error']}", file=sys.stderr)
            return 1
        print(f"Paths written to {args.output}")
    return 0


def cmd_runs(args, conn) -> int:
    if args.run_id is not None:
        return _show_run(get_run_status(conn, args.run_id))

    if args.stats:
        for job_name in [args.job] if args.job else RUN_JOBS:
            _show_job_stats(get_job_stats(conn, job_name, days=args.days))
        return 0

    runs = list_recent_runs(conn, limit=args.limit, job_name=args.job)
    if not runs:
        print("No runs recorded")
        return 0

    for run in runs:
        duration = f"{run['duration_seconds']}s" if run['duration_seconds'] is not None else '-'
        print(f"  #{run['run_id']:<5} {run['job_name']:<10} {run['status'].value:<10} "
              f"{run['started_at']:%Y-%m-%d %H:%M:%S}  {duration}")
    return 0


def _show_run(run) -> int:
    print(f"Run #{run['run_id']} ({run['job_name']}): {run['status'].value}")
    print(f"  Started:  {run['started_at']:%Y-%m-%d %H:%M:%S}")
    if run['finished_at'] is not None:
        print(f"  Finished: {run['finished_at']:%Y-%m-%d %H:%M:%S} ({run['duration_seconds']}s)")
    print(f"  Rows:     {run['rows_in']} in, {run['rows_out']} out")
    if run['success_rate'] is not None:
        print(f"  Kept:     {run['success_rate']:.1%} ({run['rows_dropped']} dropped)")
    if run['output_path']:
        print(f"  Output:   {run['output_path']}")
    if run['error_message']:
        print(f"  Error:    {run['error_message']}")
    return 0


def _show_job_stats(stats) -> None:
    if not stats['total_runs']:
        print(f"  {stats['job_name']:<10} no runs in the last {stats['period_days']} days")
        return

    avg = stats['avg_duration_seconds']
    avg_text = '-' if avg is None else f"{avg:.1f}s"
    print(f"  {stats['job_name']:<10} {stats['total_runs']:>4} runs  "
          f"{stats['completed_runs']} completed, {stats['failed_runs']} failed, "
          f"{stats['running_runs']} running  "
          f"success {stats['success_rate']:.0%}  "
          f"avg {avg_text}")


def _fmt(value: Optional[float]) -> str:
    return 'n/a' if value is None else f"{value:.4f}"


COMMANDS = {
    'fetch-prices': cmd_fetch_prices,
    'fetch-factors': cmd_fetch_factors,
    'analyze': cmd_analyze,
    'rolling': cmd_rolling,
    'simulate': cmd_simulate,
    'runs': cmd_runs,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    conn = open_database(args.db_path)
    try:
        return COMMANDS[args.command](args, conn)
    except (AnalysisError, AnalysisJobError, MetricsAggregatorError, RunNotFoundError,
            ValueError, FileNotFoundError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()


if __name__ == '__main__':
    sys.exit(main())
