"""
Tests for portfolio aggregation - weights, rebalancing, matrix form.
"""

import math
import pytest
import numpy as np
import pandas as pd

from analysis.calculations.portfolio import (
    Portfolio,
    RebalanceFrequency,
    portfolio_returns,
    portfolio_returns_matrix,
    portfolio_volatility,
    covariance_matrix,
    select_assets
)
from analysis.errors import AlignmentError, PortfolioError, WeightSumError


SYMBOLS = ['SPY', 'EFA', 'IJS', 'EEM', 'AGG']
WEIGHTS = [0.25, 0.25, 0.20, 0.20, 0.10]


def random_returns(n=36, seed=7, freq='ME'):
    rng = np.random.default_rng(seed)
    index = pd.date_range('2014-01-31', periods=n, freq=freq)
    return pd.DataFrame(rng.normal(0.005, 0.04, size=(n, len(SYMBOLS))), index=index, columns=SYMBOLS)


class TestPortfolioDefinition:
    """Tests for Portfolio validation."""

    def test_from_lists(self):
        portfolio = Portfolio.from_lists(SYMBOLS, WEIGHTS, 'monthly')

        assert portfolio.symbols == SYMBOLS
        assert portfolio.rebalance == RebalanceFrequency.MONTHLY
        np.testing.assert_allclose(portfolio.weight_vector, WEIGHTS)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(WeightSumError, match="sum to 1"):
            Portfolio.from_lists(['SPY', 'AGG'], [0.5, 0.4])

    def test_weight_sum_within_tolerance(self):
        Portfolio.from_lists(['SPY', 'AGG'], [0.6, 0.4 + 1e-9])

    def test_negative_weight(self):
        with pytest.raises(PortfolioError, match="Negative weight"):
            Portfolio.from_lists(['SPY', 'AGG'], [1.2, -0.2])

    def test_length_mismatch(self):
        with pytest.raises(PortfolioError, match="2 symbols but 1 weights"):
            Portfolio.from_lists(['SPY', 'AGG'], [1.0])

    def test_duplicate_symbols(self):
        with pytest.raises(PortfolioError, match="Duplicate"):
            Portfolio.from_lists(['SPY', 'SPY'], [0.5, 0.5])

    def test_empty(self):
        with pytest.raises(PortfolioError, match="at least one asset"):
            Portfolio(weights={})

    def test_weight_sum_error_is_portfolio_error(self):
        assert issubclass(WeightSumError, PortfolioError)


class TestPortfolioReturns:
    """Tests for weighted portfolio returns."""

    def test_constant_returns_dot_product(self):
        index = pd.date_range('2020-01-31', periods=6, freq='ME')
        per_asset = [0.01, 0.02, 0.015, -0.005, 0.002]
        returns = pd.DataFrame([per_asset] * 6, index=index, columns=SYMBOLS)
        portfolio = Portfolio.from_lists(SYMBOLS, WEIGHTS)

        result = portfolio_returns(returns, portfolio)

        assert result.name == 'portfolio'
        np.testing.assert_allclose(result.to_numpy(), 0.0125, atol=1e-9)

    def test_weighted_sum_matches_matrix_form(self):
        returns = random_returns()
        portfolio = Portfolio.from_lists(SYMBOLS, WEIGHTS)

        weighted = portfolio_returns(returns, portfolio)
        matrix = portfolio_returns_matrix(returns, portfolio)

        np.testing.assert_allclose(weighted.to_numpy(), matrix.to_numpy(), atol=1e-9)

    def test_monthly_rebalance_on_monthly_returns_is_constant_mix(self):
        returns = random_returns()
        rebalanced = portfolio_returns(returns, Portfolio.from_lists(SYMBOLS, WEIGHTS, 'monthly'))
        constant = portfolio_returns_matrix(returns, Portfolio.from_lists(SYMBOLS, WEIGHTS))

        np.testing.assert_allclose(rebalanced.to_numpy(), constant.to_numpy(), atol=1e-12)

    def test_weights_drift_between_rebalances(self):
        index = pd.date_range('2024-01-31', periods=2, freq='ME')
        returns = pd.DataFrame({'A': [1.0, 0.3], 'B': [0.0, 0.0]}, index=index)
        portfolio = Portfolio.from_lists(['A', 'B'], [0.5, 0.5], 'yearly')

        result = portfolio_returns(returns, portfolio)

        # After A doubles the mix is 2/3 A, 1/3 B
        assert result.iloc[0] == pytest.approx(0.5)
        assert result.iloc[1] == pytest.approx(0.3 * 2 / 3)

    def test_weights_reset_at_new_period(self):
        index = pd.DatetimeIndex(['2023-12-29', '2024-01-31'])
        returns = pd.DataFrame({'A': [1.0, 0.3], 'B': [0.0, 0.0]}, index=index)
        portfolio = Portfolio.from_lists(['A', 'B'], [0.5, 0.5], 'yearly')

        result = portfolio_returns(returns, portfolio)

        assert result.iloc[1] == pytest.approx(0.15)

    def test_missing_asset(self):
        returns = random_returns().drop(columns=['AGG'])

        with pytest.raises(AlignmentError, match="AGG"):
            portfolio_returns(returns, Portfolio.from_lists(SYMBOLS, WEIGHTS))

    def test_select_assets_orders_columns(self):
        returns = random_returns()[list(reversed(SYMBOLS))]

        assets = select_assets(returns, Portfolio.from_lists(SYMBOLS, WEIGHTS))

        assert list(assets.columns) == SYMBOLS


class TestPortfolioVolatility:
    """Tests for covariance-based volatility."""

    def test_matches_population_std_of_portfolio_returns(self):
        returns = random_returns()
        portfolio = Portfolio.from_lists(SYMBOLS, WEIGHTS)

        sigma = portfolio_volatility(returns, portfolio)
        direct = np.std(portfolio_returns_matrix(returns, portfolio).to_numpy(), ddof=0)

        assert sigma == pytest.approx(direct, rel=1e-9)

    def test_single_asset_covariance_is_2d(self):
        returns = random_returns()[['SPY']]

        cov = covariance_matrix(returns)

        assert cov.shape == (1, 1)
        assert math.sqrt(cov[0, 0]) == pytest.approx(np.std(returns['SPY'], ddof=0))
