"""
Metrics aggregator - composes all portfolio calculations into one metrics document.
Pure function: takes price/factor frames and an AnalysisConfig, returns a
JSON-serializable dictionary.
"""

import math
import pandas as pd
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from analysis.config import AnalysisConfig, PERIOD_LOOKBACK_DAYS
from analysis.errors import DegenerateInputError
from analysis.calculations.contribution import (
    component_contribution,
    rolling_component_contribution
)
from analysis.calculations.montecarlo import simulate_from_returns
from analysis.calculations.portfolio import portfolio_returns, portfolio_volatility
from analysis.calculations.regression import capm_beta, capm_regression, factor_regression
from analysis.calculations.returns import (
    filter_start_date,
    intersect_series,
    to_period_returns
)
from analysis.calculations.rolling import (
    Statistic,
    roll,
    rolling_factor_regression,
    rolling_portfolio_volatility
)
from analysis.calculations.statistics import distribution_summary, sharpe_ratio


METRICS_VERSION = '1.0.0'

ROLLING_STATISTICS = [
    Statistic.MEAN,
    Statistic.STD,
    Statistic.SKEWNESS,
    Statistic.KURTOSIS,
    Statistic.SHARPE,
]


class MetricsAggregatorError(Exception):
    """Raised when metrics aggregation fails."""
    pass


def build_returns(prices: pd.DataFrame, config: AnalysisConfig) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Turn daily closes into the periodic returns an analysis runs on.

    Returns:
        Tuple of (returns for every fetched symbol, portfolio returns)

    Raises:
        MetricsAggregatorError: If required price columns are missing, no
            returns fall on or after config.start_date, or the prices begin
            more than one period after config.start_date
    """
    if prices.empty:
        raise MetricsAggregatorError("Empty price data provided")

    missing = [s for s in config.fetch_symbols if s not in prices.columns]
    if missing:
        raise MetricsAggregatorError(f"No prices for symbols: {missing}")

    returns = to_period_returns(prices[config.fetch_symbols], config.frequency, config.return_method)
    returns = filter_start_date(returns, config.start_date)

    if returns.empty:
        raise MetricsAggregatorError(f"No {config.frequency} returns on or after {config.start_date}")

    latest_first = pd.Timestamp(config.start_date + timedelta(days=PERIOD_LOOKBACK_DAYS[config.frequency]))
    if returns.index[0] > latest_first:
        raise MetricsAggregatorError(
            f"Prices do not cover start_date {config.start_date}: first {config.frequency} "
            f"return is {returns.index[0].date()} (fetch from {config.fetch_start_date})"
        )

    return returns, portfolio_returns(returns[config.symbols], config.portfolio)


def compose_metrics(
    prices: pd.DataFrame,
    factors: Optional[pd.DataFrame],
    config: AnalysisConfig,
    as_of_date: Optional[date] = None
) -> Dict[str, Any]:
    """
    Compose every portfolio metric into a standardized document.

    Args:
        prices: Daily adjusted closes, one column per symbol (portfolio
            symbols plus the market symbol when configured)
        factors: Factor returns with Mkt-RF/SMB/HML/RF columns indexed by
            period-end date (optional; factor sections are None without it)
        config: Analysis configuration
        as_of_date: Date stamped on the document (defaults to config.end_date)

    Returns:
        Metrics dictionary with non-finite floats replaced by None

    Raises:
        MetricsAggregatorError: If required price columns are missing or empty
        AnalysisError: Propagated from the calculation core
    """
    returns, port_returns = build_returns(prices, config)
    portfolio = config.portfolio
    asset_returns = returns[portfolio.symbols]

    market = returns[config.market_symbol] if config.market_symbol else None
    rf = config.risk_free_rate

    metrics = {
        'as_of_date': (as_of_date or config.end_date).isoformat(),
        'config': config.to_dict(),
        'data_period': {
            'start_date': returns.index[0].date().isoformat(),
            'end_date': returns.index[-1].date().isoformat(),
            'periods': len(returns),
        },
        'assets': {
            symbol: _asset_metrics(asset_returns[symbol], market, rf)
            for symbol in portfolio.symbols
        },
        'portfolio': _portfolio_metrics(asset_returns, port_returns, market, config),
        'contribution': component_contribution(asset_returns, portfolio).to_dict(),
        'factor_model': None,
        'rolling': _rolling_metrics(asset_returns, port_returns, market, config),
        'simulation': _simulation_metrics(port_returns, config),
        'metadata': {
            'calculated_at': datetime.now().isoformat(),
            'metrics_version': METRICS_VERSION,
        },
    }

    if factors is not None and not factors.empty:
        metrics['factor_model'] = _factor_metrics(port_returns, factors, config)
        if metrics['factor_model'] is not None:
            metrics['rolling']['factor_model'] = _rolling_factor_metrics(
                port_returns, factors, config
            )

    return _finite_or_none(metrics)


def _or_none(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Point metric that is undefined (not an error) for zero-variance data."""
    try:
        return fn(*args, **kwargs)
    except DegenerateInputError:
        return None


def _asset_metrics(
    returns: pd.Series,
    market: Optional[pd.Series],
    risk_free_rate: float
) -> Dict[str, Any]:
    metrics = distribution_summary(returns)
    metrics['sharpe'] = _or_none(sharpe_ratio, returns, risk_free_rate)
    metrics['beta'] = _or_none(capm_beta, returns, market) if market is not None else None
    return metrics


def _portfolio_metrics(
    asset_returns: pd.DataFrame,
    port_returns: pd.Series,
    market: Optional[pd.Series],
    config: AnalysisConfig
) -> Dict[str, Any]:
    rf = config.risk_free_rate

    metrics = distribution_summary(port_returns)
    metrics['sharpe'] = _or_none(sharpe_ratio, port_returns, rf)
    metrics['volatility'] = portfolio_volatility(asset_returns, config.portfolio)
    metrics['beta'] = None
    metrics['capm'] = None

    if market is not None:
        metrics['beta'] = _or_none(capm_beta, port_returns, market)
        capm = _or_none(capm_regression, port_returns, market.rename('market'), risk_free_rate=rf)
        metrics['capm'] = capm.to_dict() if capm is not None else None

    return metrics


def _month_end(index: pd.DatetimeIndex) -> pd.DatetimeIndex:
    return index.to_period('M').to_timestamp() + pd.offsets.MonthEnd(0)


def _aligned_factors(port_returns: pd.Series, factors: pd.DataFrame, config: AnalysisConfig):
    unknown = [f for f in config.factors if f not in factors.columns]
    if unknown:
        raise MetricsAggregatorError(f"Factor columns not available: {unknown}")

    # Factor dates are calendar month-ends, returns carry the last trading day
    if config.frequency == 'monthly':
        factors = factors.set_axis(_month_end(factors.index))
        port_returns = port_returns.set_axis(_month_end(port_returns.index))

    port_aligned, factors_aligned = intersect_series(port_returns, factors)
    return port_aligned, factors_aligned[config.factors], factors_aligned.get('RF')


def _factor_metrics(
    port_returns: pd.Series,
    factors: pd.DataFrame,
    config: AnalysisConfig
) -> Optional[Dict[str, Any]]:
    y, X, rf = _aligned_factors(port_returns, factors, config)

    if len(y) <= len(config.factors) + 1:
        return None

    result = factor_regression(y, X, risk_free_rate=rf)
    return result.to_dict()


def _rolling_factor_metrics(
    port_returns: pd.Series,
    factors: pd.DataFrame,
    config: AnalysisConfig
) -> Optional[Dict[str, Any]]:
    y, X, rf = _aligned_factors(port_returns, factors, config)

    if len(y) < config.window or config.window <= len(config.factors) + 1:
        return None

    frame = rolling_factor_regression(y, X, config.window, risk_free_rate=rf)
    return _frame_to_dict(frame)


def _rolling_metrics(
    asset_returns: pd.DataFrame,
    port_returns: pd.Series,
    market: Optional[pd.Series],
    config: AnalysisConfig
) -> Dict[str, Any]:
    window = config.window
    rolling = {'window': window}

    for statistic in ROLLING_STATISTICS:
        rf = config.risk_free_rate if statistic == Statistic.SHARPE else None
        series = roll(port_returns, window, statistic, risk_free_rate=rf)
        rolling[statistic.value] = _series_to_dict(series)

    rolling['portfolio_volatility'] = _series_to_dict(
        rolling_portfolio_volatility(asset_returns, config.portfolio, window)
    )

    rolling['contribution'] = _frame_to_dict(
        rolling_component_contribution(asset_returns, config.portfolio, window)
    )

    if market is not None:
        rolling['beta'] = _series_to_dict(
            roll(port_returns, window, Statistic.BETA, market=market)
        )

    return rolling


def _simulation_metrics(port_returns: pd.Series, config: AnalysisConfig) -> Dict[str, Any]:
    sim = config.simulation
    result = simulate_from_returns(
        port_returns,
        n_periods=sim.n_periods,
        n_paths=sim.n_paths,
        seed=sim.seed,
        max_workers=sim.max_workers
    )
    return result.summary()


def _label(key: Any) -> str:
    if isinstance(key, (pd.Timestamp, datetime)):
        return key.date().isoformat()
    return str(key)


def _series_to_dict(series: pd.Series) -> Dict[str, float]:
    return {_label(k): float(v) for k, v in series.items()}


def _frame_to_dict(frame: pd.DataFrame) -> Dict[str, Dict[str, float]]:
    return {str(column): _series_to_dict(frame[column]) for column in frame.columns}


def _finite_or_none(value: Any) -> Any:
    """Recursively replace NaN/inf floats with None so the document is strict JSON."""
    if isinstance(value, dict):
        return {k: _finite_or_none(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite_or_none(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value
