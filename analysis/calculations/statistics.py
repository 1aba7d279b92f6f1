"""
Descriptive statistics for return series.
Pure functions: mean, population standard deviation, skewness, kurtosis, Sharpe ratio.

Conventions:
- Standard deviation is the population formula sqrt(sum((x - mean)^2) / n),
  matching sqrt(w' . Cov . w) computed from a population covariance matrix.
- Skewness and kurtosis are the third and fourth standardized moments.
  Kurtosis is raw (normal = 3) unless excess=True (normal = 0).
"""

import numpy as np
import pandas as pd
from scipy import stats
from typing import Dict, Union

from analysis.errors import AlignmentError, DegenerateInputError, InsufficientDataError


ArrayLike = Union[pd.Series, np.ndarray, list]


def _as_array(returns: ArrayLike) -> np.ndarray:
    values = np.asarray(returns, dtype=float)
    if values.size == 0:
        raise InsufficientDataError("Insufficient data: empty return series")
    return values


def has_zero_variance(values: np.ndarray) -> bool:
    """True when every observation is identical (variance exactly zero)."""
    return bool(np.ptp(values) == 0)


def mean_return(returns: ArrayLike) -> float:
    """Arithmetic mean of periodic returns."""
    return float(np.mean(_as_array(returns)))


def standard_deviation(returns: ArrayLike) -> float:
    """Population standard deviation (ddof=0)."""
    return float(np.std(_as_array(returns), ddof=0))


def skewness(returns: ArrayLike) -> float:
    """
    Third standardized moment: m3 / m2^(3/2).

    Raises:
        DegenerateInputError: If all returns are identical or too close
            together for a finite moment
    """
    values = _as_array(returns)
    if has_zero_variance(values):
        raise DegenerateInputError("Skewness undefined for zero-variance returns")
    return _finite_moment(stats.skew(values, bias=True), 'Skewness')


def kurtosis(returns: ArrayLike, excess: bool = False) -> float:
    """
    Fourth standardized moment: m4 / m2^2.

    Args:
        returns: Periodic returns
        excess: Subtract 3 so a normal distribution scores 0

    Raises:
        DegenerateInputError: If all returns are identical or too close
            together for a finite moment
    """
    values = _as_array(returns)
    if has_zero_variance(values):
        raise DegenerateInputError("Kurtosis undefined for zero-variance returns")
    return _finite_moment(stats.kurtosis(values, fisher=excess, bias=True), 'Kurtosis')


def _finite_moment(value: float, name: str) -> float:
    # Near-constant input passes the range check but cancels to NaN in scipy
    if not np.isfinite(value):
        raise DegenerateInputError(f"{name} undefined for near-constant returns")
    return float(value)


def excess_returns(
    returns: ArrayLike,
    risk_free_rate: Union[float, pd.Series, np.ndarray, None]
) -> np.ndarray:
    """
    Subtract a per-period risk-free rate (scalar or one value per period).

    Raises:
        AlignmentError: If a risk-free series has a different length or dates
    """
    values = _as_array(returns)

    if risk_free_rate is None:
        return values

    if np.isscalar(risk_free_rate):
        return values - float(risk_free_rate)

    if isinstance(returns, pd.Series) and isinstance(risk_free_rate, pd.Series):
        if not returns.index.equals(risk_free_rate.index):
            raise AlignmentError("Risk-free rate dates do not match return dates")

    rf = np.asarray(risk_free_rate, dtype=float)
    if rf.shape != values.shape:
        raise AlignmentError(
            f"Risk-free rate has {rf.size} values for {values.size} returns"
        )
    return values - rf


def sharpe_ratio(
    returns: ArrayLike,
    risk_free_rate: Union[float, pd.Series, np.ndarray, None] = 0.0
) -> float:
    """
    Per-period Sharpe ratio: mean(R - Rf) / std(R - Rf).

    The risk-free rate is per period (not annualized), matching the
    return frequency.

    Raises:
        DegenerateInputError: If excess returns have zero variance
    """
    excess = excess_returns(returns, risk_free_rate)
    if has_zero_variance(excess):
        raise DegenerateInputError("Sharpe ratio undefined for zero-variance excess returns")
    return float(np.mean(excess) / np.std(excess, ddof=0))


def distribution_summary(returns: ArrayLike) -> Dict[str, Union[float, int]]:
    """
    Summarize the return distribution and count tail observations.

    Returns:
        Dictionary with mean, std, skewness, kurtosis, excess_kurtosis,
        count, and the number of returns more than two standard deviations
        below / above the mean
    """
    values = _as_array(returns)
    mean = float(np.mean(values))
    std = float(np.std(values, ddof=0))

    summary = {
        'count': int(values.size),
        'mean': mean,
        'std': std,
        'skewness': None,
        'kurtosis': None,
        'excess_kurtosis': None,
        'below_2sd': int(np.sum(values < mean - 2 * std)),
        'above_2sd': int(np.sum(values > mean + 2 * std)),
    }

    try:
        summary['skewness'] = skewness(values)
        summary['kurtosis'] = kurtosis(values)
        summary['excess_kurtosis'] = kurtosis(values, excess=True)
    except DegenerateInputError:
        # Moments stay None for constant or near-constant returns
        summary['skewness'] = summary['kurtosis'] = summary['excess_kurtosis'] = None

    return summary
