"""
Rolling portfolio statistic engine.

Computes a fixed-width sliding-window statistic over a return series and
returns a series aligned to each window's right edge. Each window is
recomputed independently (O(n * w)).
"""

import math
import numbers
import numpy as np
import pandas as pd
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from analysis.errors import InsufficientDataError
from analysis.calculations.portfolio import Portfolio, covariance_matrix, select_assets
from analysis.calculations.regression import beta_from_arrays, factor_regression
from analysis.calculations.returns import align_series, validate_return_series
from analysis.calculations import statistics


class Statistic(str, Enum):
    """Statistics the rolling engine can apply to a window."""
    MEAN = 'mean'
    STD = 'std'
    SKEWNESS = 'skewness'
    KURTOSIS = 'kurtosis'
    EXCESS_KURTOSIS = 'excess_kurtosis'
    SHARPE = 'sharpe'
    BETA = 'beta'
    FACTOR = 'factor'


RiskFree = Union[float, pd.Series, None]


def check_window(window: int, available: int) -> None:
    """
    Validate a window width against the number of observations.

    Raises:
        ValueError: If window is not a positive integer
        InsufficientDataError: If window exceeds available observations
    """
    if isinstance(window, bool) or not isinstance(window, numbers.Integral) or window < 1:
        raise ValueError(f"Window must be a positive integer, got {window}")

    if available < window:
        raise InsufficientDataError(
            f"Insufficient data: need {window} periods, have {available}"
        )


def _window_function(
    statistic: Statistic,
    series: pd.Series,
    risk_free_rate: RiskFree,
    market: Optional[pd.Series],
    factors: Optional[pd.DataFrame],
    coefficient: Optional[str]
) -> Callable[[int, int], float]:
    """Build f(start, stop) -> statistic value over series.iloc[start:stop]."""
    values = series.to_numpy(dtype=float)

    if statistic == Statistic.MEAN:
        return lambda a, b: statistics.mean_return(values[a:b])

    if statistic == Statistic.STD:
        return lambda a, b: statistics.standard_deviation(values[a:b])

    if statistic == Statistic.SKEWNESS:
        return lambda a, b: statistics.skewness(values[a:b])

    if statistic == Statistic.KURTOSIS:
        return lambda a, b: statistics.kurtosis(values[a:b])

    if statistic == Statistic.EXCESS_KURTOSIS:
        return lambda a, b: statistics.kurtosis(values[a:b], excess=True)

    if statistic == Statistic.SHARPE:
        if risk_free_rate is None or np.isscalar(risk_free_rate):
            rf = 0.0 if risk_free_rate is None else float(risk_free_rate)
            return lambda a, b: statistics.sharpe_ratio(values[a:b], rf)
        align_series(series, risk_free_rate)
        rf_values = risk_free_rate.to_numpy(dtype=float)
        return lambda a, b: statistics.sharpe_ratio(values[a:b], rf_values[a:b])

    if statistic == Statistic.BETA:
        if market is None:
            raise ValueError("Beta requires a market return series")
        align_series(series, market)
        market_values = market.to_numpy(dtype=float)
        return lambda a, b: beta_from_arrays(values[a:b], market_values[a:b])

    if statistic == Statistic.FACTOR:
        if factors is None:
            raise ValueError("Factor regression requires factor series")
        if isinstance(factors, pd.Series):
            factors = factors.to_frame()
        align_series(series, factors)
        name = coefficient or factors.columns[0]
        if name != 'alpha' and name not in factors.columns:
            raise ValueError(f"Unknown coefficient: {name}")

        def fit(a: int, b: int) -> float:
            rf = risk_free_rate
            if isinstance(rf, pd.Series):
                rf = rf.iloc[a:b]
            result = factor_regression(series.iloc[a:b], factors.iloc[a:b], risk_free_rate=rf)
            return result.coefficients[name]

        return fit

    raise ValueError(f"Unknown statistic: {statistic}")


def roll(
    series: pd.Series,
    window: int,
    statistic: Union[Statistic, str],
    risk_free_rate: RiskFree = None,
    market: Optional[pd.Series] = None,
    factors: Optional[pd.DataFrame] = None,
    coefficient: Optional[str] = None
) -> pd.Series:
    """
    Apply a statistic over every right-aligned window of a return series.

    For each position i from window-1 to len(series)-1 the statistic is
    computed on series[i-window+1 : i+1] and emitted at date[i]. The
    window-1 leading positions have no value and are dropped.

    Example:
        roll(returns, 24, 'sharpe', risk_free_rate=0.0003)
        roll(returns, 24, Statistic.BETA, market=spy_returns)
        roll(returns, 24, 'factor', factors=ff3, coefficient='SMB')

    Args:
        series: Return series indexed by date
        window: Window width in periods
        statistic: Statistic enum member or its string value
        risk_free_rate: Per-period rate for Sharpe and factor regressions
        market: Market returns for beta (same dates as series)
        factors: Factor returns for regressions (same dates as series)
        coefficient: Factor coefficient to report (defaults to first factor)

    Returns:
        Rolling statistic series of length len(series) - window + 1

    Raises:
        InsufficientDataError: If window > len(series)
        DegenerateInputError: If any window has zero variance for a ratio statistic
        AlignmentError: If market/factor dates differ from series dates
    """
    statistic = Statistic(statistic)
    validate_return_series(series)
    check_window(window, len(series))

    compute = _window_function(statistic, series, risk_free_rate, market, factors, coefficient)

    values = [compute(i - window + 1, i + 1) for i in range(window - 1, len(series))]

    return pd.Series(values, index=series.index[window - 1:], name=statistic.value)


def rolling_portfolio_volatility(
    returns: pd.DataFrame,
    portfolio: Portfolio,
    window: int
) -> pd.Series:
    """
    Rolling sqrt(w' . Cov . w) with a population covariance per window.

    With a unit weight on one asset this equals roll(asset, window, 'std').
    """
    assets = select_assets(returns, portfolio)
    check_window(window, len(assets))

    values = assets.to_numpy(dtype=float)
    w = portfolio.weight_vector
    result = []

    for i in range(window - 1, len(values)):
        cov = covariance_matrix(pd.DataFrame(values[i - window + 1:i + 1]))
        result.append(math.sqrt(max(float(w @ cov @ w), 0.0)))

    return pd.Series(result, index=assets.index[window - 1:], name='portfolio_volatility')


def rolling_factor_regression(
    series: pd.Series,
    factors: pd.DataFrame,
    window: int,
    risk_free_rate: RiskFree = None
) -> pd.DataFrame:
    """
    Rolling multi-factor regression keeping every coefficient.

    Returns:
        DataFrame indexed by each window's last date. Every term ('alpha'
        and one per factor) gets its coefficient column followed by
        '<term>_low' and '<term>_high' confidence bounds; 'r_squared' is last.
    """
    if isinstance(factors, pd.Series):
        factors = factors.to_frame()

    validate_return_series(series)
    check_window(window, len(series))
    align_series(series, factors)

    rows: List[Dict[str, float]] = []

    for i in range(window - 1, len(series)):
        a, b = i - window + 1, i + 1
        rf = risk_free_rate.iloc[a:b] if isinstance(risk_free_rate, pd.Series) else risk_free_rate
        result = factor_regression(series.iloc[a:b], factors.iloc[a:b], risk_free_rate=rf)
        row = {}
        for term, coefficient in result.coefficients.items():
            row[term] = coefficient
            row[f'{term}_low'], row[f'{term}_high'] = result.conf_int[term]
        row['r_squared'] = result.r_squared
        rows.append(row)

    return pd.DataFrame(rows, index=series.index[window - 1:])
