"""
Returns calculation utilities.
Pure functions for turning adjusted prices into periodic return series.
"""

import numpy as np
import pandas as pd
from datetime import date
from typing import Union, Optional

from analysis.errors import AlignmentError, InvalidSeriesError


# Calendar period codes understood by pandas.PeriodIndex
FREQUENCY_CODES = {
    'weekly': 'W',
    'monthly': 'M',
    'quarterly': 'Q',
    'yearly': 'Y',
}

RETURN_METHODS = ('simple', 'log')

SeriesOrFrame = Union[pd.Series, pd.DataFrame]


def validate_return_series(series: SeriesOrFrame) -> None:
    """
    Check the invariants every return series must hold.

    Args:
        series: Series or DataFrame of returns indexed by date

    Raises:
        InvalidSeriesError: If the index is not a strictly increasing
            DatetimeIndex or values contain NaN or infinities
    """
    if not isinstance(series.index, pd.DatetimeIndex):
        raise InvalidSeriesError("Return series must be indexed by dates")

    if series.index.has_duplicates:
        raise InvalidSeriesError("Duplicate dates in return series")

    if not series.index.is_monotonic_increasing:
        raise InvalidSeriesError("Return series dates must be increasing")

    values = np.asarray(series, dtype=float)

    if np.any(np.isnan(values)):
        raise InvalidSeriesError("NaN values not allowed in return series")

    if np.any(np.isinf(values)):
        raise InvalidSeriesError("Infinite values not allowed in return series")


def prices_to_returns(prices: SeriesOrFrame, method: str = 'simple') -> SeriesOrFrame:
    """
    Convert a price series (or one column per asset) into periodic returns.

    Formulas:
        simple: R_t = P_t / P_{t-1} - 1
        log:    r_t = ln(P_t) - ln(P_{t-1})

    Args:
        prices: Adjusted prices in chronological order, indexed by date
        method: 'simple' or 'log'

    Returns:
        Returns with the leading undefined row dropped

    Raises:
        InvalidSeriesError: If fewer than 2 prices or prices are not positive
        ValueError: If method is unknown
    """
    if method not in RETURN_METHODS:
        raise ValueError(f"Unknown return method: {method}")

    if len(prices) < 2:
        raise InvalidSeriesError("Insufficient data: need at least 2 prices")

    prices = prices.sort_index()
    values = np.asarray(prices, dtype=float)

    if np.any(np.isnan(values)):
        raise InvalidSeriesError("Missing prices; fill or drop them before computing returns")

    if np.any(values <= 0):
        raise InvalidSeriesError("Zero or negative prices not allowed")

    if method == 'log':
        returns = np.log(prices).diff()
    else:
        returns = prices.pct_change(fill_method=None)

    return returns.iloc[1:]


def to_period_returns(
    prices: SeriesOrFrame,
    frequency: str = 'monthly',
    method: str = 'simple'
) -> SeriesOrFrame:
    """
    Sample prices at the last trading date of each calendar period, then
    convert to returns.

    Example:
        Daily prices for Jan 2 .. Mar 29 with frequency='monthly' keep the
        Jan 31, Feb 29 and Mar 28 closes and yield two monthly returns
        dated Feb 29 and Mar 28.

    Args:
        prices: Daily adjusted prices indexed by date
        frequency: 'daily', 'weekly', 'monthly', 'quarterly' or 'yearly'
        method: 'simple' or 'log'

    Returns:
        Periodic returns indexed by each period's last trading date
    """
    if frequency == 'daily':
        return prices_to_returns(prices, method=method)

    if frequency not in FREQUENCY_CODES:
        raise ValueError(f"Unknown frequency: {frequency}")

    if not isinstance(prices.index, pd.DatetimeIndex):
        raise InvalidSeriesError("Prices must be indexed by dates")

    prices = prices.sort_index()
    periods = prices.index.to_period(FREQUENCY_CODES[frequency])

    # tail(1) keeps the actual trading date of each period end
    sampled = prices.groupby(periods).tail(1)

    return prices_to_returns(sampled, method=method)


def filter_start_date(series: SeriesOrFrame, start_date: Optional[date]) -> SeriesOrFrame:
    """Keep observations on or after start_date (inclusive)."""
    if start_date is None:
        return series
    return series.loc[series.index >= pd.Timestamp(start_date)]


def align_series(*series: SeriesOrFrame) -> None:
    """
    Require that every input shares exactly the same date index.

    Raises:
        AlignmentError: If any index differs from the first one
    """
    if not series:
        return

    reference = series[0].index
    for other in series[1:]:
        if not reference.equals(other.index):
            missing = reference.symmetric_difference(other.index)
            raise AlignmentError(
                f"Series dates do not match: {len(missing)} mismatched dates"
            )


def intersect_series(*series: SeriesOrFrame) -> list:
    """
    Restrict every input to the dates they all share.

    Used by callers that deliberately accept ragged inputs (e.g. factor data
    that starts later than the price history) before handing them to the
    strict statistics functions.
    """
    if not series:
        return []

    common = series[0].index
    for other in series[1:]:
        common = common.intersection(other.index)

    return [s.loc[common] for s in series]
