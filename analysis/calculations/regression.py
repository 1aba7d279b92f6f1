"""
Regression utilities: CAPM beta and multi-factor (Fama-French) OLS.
Pure functions over aligned return series.
"""

import numpy as np
import pandas as pd
import statsmodels.api as sm
from dataclasses import dataclass, asdict
from typing import Dict, Tuple, Union

from analysis.errors import DegenerateInputError, InsufficientDataError
from analysis.calculations.returns import align_series
from analysis.calculations.statistics import excess_returns, has_zero_variance


INTERCEPT = 'alpha'


@dataclass
class RegressionResult:
    """
    OLS fit summary.

    Attributes:
        coefficients: Term name -> estimate ('alpha' is the intercept)
        conf_int: Term name -> (low, high) confidence bounds
        p_values: Term name -> two-sided p-value
        std_errors: Term name -> standard error
        r_squared: Coefficient of determination
        adj_r_squared: R-squared adjusted for the number of regressors
        n_obs: Observations used in the fit
        confidence: Confidence level of conf_int
    """
    coefficients: Dict[str, float]
    conf_int: Dict[str, Tuple[float, float]]
    p_values: Dict[str, float]
    std_errors: Dict[str, float]
    r_squared: float
    adj_r_squared: float
    n_obs: int
    confidence: float = 0.95

    def to_dict(self) -> Dict[str, object]:
        result = asdict(self)
        result['conf_int'] = {k: list(v) for k, v in self.conf_int.items()}
        return result


def capm_beta(returns: pd.Series, market: pd.Series) -> float:
    """
    CAPM beta as a covariance ratio: cov(R, M) / var(M).

    Equivalent to the OLS slope of R on M with an intercept. An asset
    regressed on itself scores exactly 1.

    Raises:
        AlignmentError: If dates differ
        DegenerateInputError: If market returns have zero variance
    """
    align_series(returns, market)
    return beta_from_arrays(np.asarray(returns, dtype=float), np.asarray(market, dtype=float))


def beta_from_arrays(values: np.ndarray, market: np.ndarray) -> float:
    """Covariance-ratio beta on already aligned arrays."""
    if values.size == 0:
        raise InsufficientDataError("Insufficient data: empty return series")

    if has_zero_variance(market):
        raise DegenerateInputError("Beta undefined for zero-variance market returns")

    market_dev = market - market.mean()
    covariance = np.mean((values - values.mean()) * market_dev)
    variance = np.mean(market_dev * market_dev)
    return float(covariance / variance)


def _fit_ols(y: np.ndarray, X: pd.DataFrame, confidence: float) -> RegressionResult:
    n_obs, n_factors = X.shape
    if n_obs <= n_factors + 1:
        raise InsufficientDataError(
            f"Insufficient data: need more than {n_factors + 1} observations, have {n_obs}"
        )

    for column in X.columns:
        if has_zero_variance(X[column].to_numpy(dtype=float)):
            raise DegenerateInputError(f"Regressor '{column}' has zero variance")

    design = sm.add_constant(X, has_constant='add').rename(columns={'const': INTERCEPT})
    model = sm.OLS(y, design).fit()

    bounds = model.conf_int(alpha=1 - confidence)
    terms = list(design.columns)

    return RegressionResult(
        coefficients={t: float(model.params[t]) for t in terms},
        conf_int={t: (float(bounds.loc[t, 0]), float(bounds.loc[t, 1])) for t in terms},
        p_values={t: float(model.pvalues[t]) for t in terms},
        std_errors={t: float(model.bse[t]) for t in terms},
        r_squared=float(model.rsquared),
        adj_r_squared=float(model.rsquared_adj),
        n_obs=int(n_obs),
        confidence=confidence
    )


def factor_regression(
    returns: pd.Series,
    factors: pd.DataFrame,
    risk_free_rate: Union[float, pd.Series, None] = None,
    confidence: float = 0.95
) -> RegressionResult:
    """
    OLS of (excess) returns on one or more factor series.

    Typical factors are the Fama-French market excess return, size (SMB)
    and value (HML).

    Args:
        returns: Asset or portfolio returns
        factors: One column per factor, same dates as returns
        risk_free_rate: Per-period rate subtracted from returns (optional)
        confidence: Level for the coefficient confidence intervals

    Returns:
        RegressionResult with 'alpha' plus one coefficient per factor

    Raises:
        AlignmentError: If dates differ
        InsufficientDataError: If observations <= factors + 1
        DegenerateInputError: If a factor is constant
    """
    if isinstance(factors, pd.Series):
        factors = factors.to_frame()

    if factors.shape[1] == 0:
        raise ValueError("At least one factor is required")

    if not 0 < confidence < 1:
        raise ValueError(f"confidence must be between 0 and 1, got {confidence}")

    align_series(returns, factors)
    y = excess_returns(returns, risk_free_rate)
    return _fit_ols(y, factors.astype(float), confidence)


def capm_regression(
    returns: pd.Series,
    market: pd.Series,
    risk_free_rate: Union[float, pd.Series, None] = None,
    confidence: float = 0.95
) -> RegressionResult:
    """
    CAPM as a single-factor regression of returns on market returns.

    The slope is reported under the market series' name (or 'market').
    A risk-free rate, when given, is subtracted from both sides.
    """
    name = market.name if market.name is not None else 'market'
    if risk_free_rate is not None:
        market = pd.Series(
            excess_returns(market, risk_free_rate), index=market.index, name=name
        )
    return factor_regression(
        returns,
        market.rename(name).to_frame(),
        risk_free_rate=risk_free_rate,
        confidence=confidence
    )
