"""
Portfolio aggregation utilities.
Pure functions combining per-asset returns with target weights.
"""

import math
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from analysis.errors import (
    AlignmentError,
    DegenerateInputError,
    PortfolioError,
    WeightSumError,
)
from analysis.calculations.returns import FREQUENCY_CODES, validate_return_series


WEIGHT_TOLERANCE = 1e-6


class RebalanceFrequency(str, Enum):
    """Calendar cadence at which drifted weights are reset to target."""
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    QUARTERLY = 'quarterly'
    YEARLY = 'yearly'

    @property
    def period_code(self) -> str:
        return FREQUENCY_CODES[self.value]


@dataclass(frozen=True)
class Portfolio:
    """
    Target weights per asset plus an optional rebalancing cadence.

    With rebalance=None the target weights apply to every period
    (constant mix). Weights must be non-negative and sum to 1.
    """
    weights: Dict[str, float]
    rebalance: Optional[RebalanceFrequency] = None
    tolerance: float = field(default=WEIGHT_TOLERANCE, repr=False)

    def __post_init__(self):
        if not self.weights:
            raise PortfolioError("Portfolio needs at least one asset")

        for symbol, weight in self.weights.items():
            if not isinstance(weight, (int, float)) or not math.isfinite(weight):
                raise PortfolioError(f"Weight for {symbol} must be a finite number, got {weight}")
            if weight < 0:
                raise PortfolioError(f"Negative weight for {symbol}: {weight}")

        total = sum(self.weights.values())
        if abs(total - 1.0) > self.tolerance:
            raise WeightSumError(f"Weights must sum to 1, got {total:.6f}")

        if self.rebalance is not None and not isinstance(self.rebalance, RebalanceFrequency):
            # Accept plain strings such as 'monthly'
            object.__setattr__(self, 'rebalance', RebalanceFrequency(self.rebalance))

    @classmethod
    def from_lists(
        cls,
        symbols: List[str],
        weights: List[float],
        rebalance: Optional[Union[str, RebalanceFrequency]] = None
    ) -> 'Portfolio':
        """Build a portfolio from parallel symbol and weight lists."""
        if len(symbols) != len(weights):
            raise PortfolioError(
                f"Got {len(symbols)} symbols but {len(weights)} weights"
            )
        if len(set(symbols)) != len(symbols):
            raise PortfolioError("Duplicate symbols in portfolio")

        return cls(
            weights=dict(zip(symbols, [float(w) for w in weights])),
            rebalance=RebalanceFrequency(rebalance) if rebalance else None
        )

    @property
    def symbols(self) -> List[str]:
        return list(self.weights.keys())

    @property
    def weight_vector(self) -> np.ndarray:
        return np.array(list(self.weights.values()), dtype=float)


def select_assets(returns: pd.DataFrame, portfolio: Portfolio) -> pd.DataFrame:
    """
    Pick the portfolio's columns from a returns frame, in portfolio order.

    Raises:
        AlignmentError: If any portfolio symbol has no return series
        InvalidSeriesError: If the returns frame breaks series invariants
    """
    missing = [s for s in portfolio.symbols if s not in returns.columns]
    if missing:
        raise AlignmentError(f"Missing return series for: {', '.join(missing)}")

    assets = returns[portfolio.symbols]
    validate_return_series(assets)
    return assets


def portfolio_returns(returns: pd.DataFrame, portfolio: Portfolio) -> pd.Series:
    """
    Combine asset returns into a portfolio return series.

    Without a rebalancing cadence every period uses the target weights.
    With one, weights drift with asset performance,
        w_i <- w_i * (1 + r_i) / (1 + r_p)
    and are reset to target at the first period of each new calendar
    period (week, month, quarter or year).

    Args:
        returns: One column of periodic returns per asset
        portfolio: Target weights and rebalancing cadence

    Returns:
        Portfolio return series on the same index

    Raises:
        AlignmentError: If an asset is missing from returns
        DegenerateInputError: If the portfolio loses 100% in one period
    """
    assets = select_assets(returns, portfolio)
    target = portfolio.weight_vector

    if portfolio.rebalance is None:
        weighted = assets.mul(target, axis=1).sum(axis=1)
        return weighted.rename('portfolio')

    periods = assets.index.to_period(portfolio.rebalance.period_code)
    values = assets.to_numpy(dtype=float)

    weights = target.copy()
    result = np.empty(len(values))

    for i, row in enumerate(values):
        if i > 0 and periods[i] != periods[i - 1]:
            weights = target.copy()

        period_return = float(weights @ row)
        result[i] = period_return

        growth = 1.0 + period_return
        if growth == 0:
            raise DegenerateInputError(
                f"Portfolio value reached zero on {assets.index[i].date()}"
            )
        weights = weights * (1.0 + row) / growth

    return pd.Series(result, index=assets.index, name='portfolio')


def portfolio_returns_matrix(returns: pd.DataFrame, portfolio: Portfolio) -> pd.Series:
    """
    Constant-mix portfolio returns in matrix form, R . w.

    Must agree with portfolio_returns for a portfolio without rebalancing.
    """
    assets = select_assets(returns, portfolio)
    values = assets.to_numpy(dtype=float) @ portfolio.weight_vector
    return pd.Series(values, index=assets.index, name='portfolio')


def covariance_matrix(returns: pd.DataFrame) -> np.ndarray:
    """Population covariance matrix (ddof=0) of the asset columns."""
    return np.atleast_2d(np.cov(returns.to_numpy(dtype=float), rowvar=False, ddof=0))


def portfolio_volatility(returns: pd.DataFrame, portfolio: Portfolio) -> float:
    """
    Portfolio standard deviation from the covariance matrix.

    Formula: sigma_p = sqrt(w' . Cov . w)

    Agrees with the population standard deviation of the constant-mix
    portfolio return series.
    """
    assets = select_assets(returns, portfolio)
    w = portfolio.weight_vector
    variance = float(w @ covariance_matrix(assets) @ w)

    # Clip rounding noise below zero
    return math.sqrt(max(variance, 0.0))
