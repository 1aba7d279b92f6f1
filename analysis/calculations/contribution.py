"""
Contribution to portfolio risk.
Splits portfolio standard deviation into per-asset pieces that sum back to it.
"""

import math
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Dict

from analysis.errors import DegenerateInputError, InsufficientDataError
from analysis.calculations.portfolio import Portfolio, covariance_matrix, select_assets
from analysis.calculations.rolling import check_window


@dataclass
class ContributionResult:
    """
    Per-asset decomposition of portfolio volatility.

    Attributes:
        portfolio_volatility: sqrt(w' . Cov . w)
        marginal: d(sigma_p)/d(w_i) = (Cov . w)_i / sigma_p
        component: w_i * marginal_i (sums to portfolio_volatility)
        percentage: component_i / sigma_p (sums to 1)
    """
    portfolio_volatility: float
    marginal: Dict[str, float]
    component: Dict[str, float]
    percentage: Dict[str, float]

    def to_dict(self) -> Dict[str, object]:
        return {
            'portfolio_volatility': self.portfolio_volatility,
            'marginal': dict(self.marginal),
            'component': dict(self.component),
            'percentage': dict(self.percentage),
        }


def _decompose(values: np.ndarray, weights: np.ndarray, symbols: list) -> ContributionResult:
    if len(values) < 2:
        raise InsufficientDataError("Insufficient data: need at least 2 periods")

    cov = covariance_matrix(pd.DataFrame(values))
    variance = float(weights @ cov @ weights)

    if variance <= 0:
        raise DegenerateInputError("Contribution undefined for zero portfolio variance")

    sigma = math.sqrt(variance)
    marginal = (cov @ weights) / sigma
    component = weights * marginal
    percentage = component / sigma

    return ContributionResult(
        portfolio_volatility=sigma,
        marginal=dict(zip(symbols, marginal.tolist())),
        component=dict(zip(symbols, component.tolist())),
        percentage=dict(zip(symbols, percentage.tolist()))
    )


def component_contribution(returns: pd.DataFrame, portfolio: Portfolio) -> ContributionResult:
    """
    Decompose portfolio standard deviation by asset.

    Args:
        returns: One column of returns per asset
        portfolio: Target weights

    Returns:
        ContributionResult with marginal, component and percentage contributions

    Raises:
        AlignmentError: If an asset is missing
        InsufficientDataError: If fewer than 2 periods
        DegenerateInputError: If the portfolio has zero variance
    """
    assets = select_assets(returns, portfolio)
    return _decompose(assets.to_numpy(dtype=float), portfolio.weight_vector, portfolio.symbols)


def rolling_component_contribution(
    returns: pd.DataFrame,
    portfolio: Portfolio,
    window: int
) -> pd.DataFrame:
    """
    Percentage contribution per asset over a sliding window.

    Returns:
        DataFrame indexed by each window's last date, one column per asset,
        with len(returns) - window + 1 rows
    """
    assets = select_assets(returns, portfolio)

    check_window(window, len(assets))

    values = assets.to_numpy(dtype=float)
    weights = portfolio.weight_vector
    rows = []

    for i in range(window - 1, len(values)):
        result = _decompose(values[i - window + 1:i + 1], weights, portfolio.symbols)
        rows.append(result.percentage)

    return pd.DataFrame(rows, index=assets.index[window - 1:], columns=portfolio.symbols)
