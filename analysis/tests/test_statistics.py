"""
Tests for descriptive statistics - hand-verifiable values.
"""

import pytest
import numpy as np
import pandas as pd

from analysis.calculations.statistics import (
    mean_return,
    standard_deviation,
    skewness,
    kurtosis,
    excess_returns,
    sharpe_ratio,
    distribution_summary
)
from analysis.errors import AlignmentError, DegenerateInputError, InsufficientDataError


ALTERNATING = np.array([1.0, -1.0] * 10)


class TestMoments:
    """Tests for mean, standard deviation and higher moments."""

    def test_mean_and_population_std(self):
        values = [0.02, 0.04, 0.06]

        assert mean_return(values) == pytest.approx(0.04)
        assert standard_deviation(values) == pytest.approx(np.sqrt(8e-4 / 3))

    def test_alternating_series_moments(self):
        assert skewness(ALTERNATING) == pytest.approx(0.0, abs=1e-12)
        assert kurtosis(ALTERNATING) == pytest.approx(1.0)
        assert kurtosis(ALTERNATING, excess=True) == pytest.approx(-2.0)

    def test_right_skewed(self):
        assert skewness([0.0, 0.0, 0.0, 0.0, 1.0]) > 0

    def test_constant_series_is_degenerate(self):
        with pytest.raises(DegenerateInputError, match="Skewness"):
            skewness([0.01] * 5)
        with pytest.raises(DegenerateInputError, match="Kurtosis"):
            kurtosis([0.01] * 5)

    def test_near_constant_series_is_degenerate(self):
        values = [1.0, 1.0, 1.0, 1.0 + 2 ** -52]

        with pytest.raises(DegenerateInputError, match="Skewness undefined for near-constant"):
            skewness(values)
        with pytest.raises(DegenerateInputError, match="Kurtosis undefined for near-constant"):
            kurtosis(values)

    def test_empty_series(self):
        with pytest.raises(InsufficientDataError):
            mean_return([])

    def test_accepts_series(self):
        series = pd.Series([0.01, 0.03], index=pd.date_range('2024-01-31', periods=2, freq='ME'))
        assert mean_return(series) == pytest.approx(0.02)


class TestSharpe:
    """Tests for excess returns and the Sharpe ratio."""

    def test_scalar_risk_free(self):
        values = [0.02, 0.04, 0.06]
        expected = (0.04 - 0.01) / np.std(values, ddof=0)

        assert sharpe_ratio(values, 0.01) == pytest.approx(expected)

    def test_default_risk_free_is_zero(self):
        values = [0.02, 0.04, 0.06]
        assert sharpe_ratio(values) == pytest.approx(0.04 / np.std(values, ddof=0))

    def test_series_risk_free_must_align(self):
        index = pd.date_range('2024-01-31', periods=3, freq='ME')
        returns = pd.Series([0.02, 0.04, 0.06], index=index)
        rf = pd.Series([0.001, 0.001, 0.001], index=index.shift(1))

        with pytest.raises(AlignmentError, match="dates"):
            excess_returns(returns, rf)

    def test_array_risk_free_length(self):
        with pytest.raises(AlignmentError, match="2 values for 3 returns"):
            excess_returns([0.01, 0.02, 0.03], np.array([0.0, 0.0]))

    def test_zero_variance(self):
        with pytest.raises(DegenerateInputError, match="Sharpe"):
            sharpe_ratio([0.01, 0.01, 0.01], 0.0)

    def test_constant_excess_over_matching_rf(self):
        rf = np.array([0.01, 0.02, 0.03])
        with pytest.raises(DegenerateInputError):
            sharpe_ratio(rf + 0.005, rf)


class TestDistributionSummary:

    def test_counts_tails(self):
        values = np.concatenate([np.zeros(20), [1.0], [-1.0]])

        summary = distribution_summary(values)

        assert summary['count'] == 22
        assert summary['above_2sd'] == 1
        assert summary['below_2sd'] == 1
        assert summary['kurtosis'] == pytest.approx(summary['excess_kurtosis'] + 3)

    def test_degenerate_moments_are_none(self):
        summary = distribution_summary([0.01] * 4)

        assert summary['std'] == 0.0
        assert summary['skewness'] is None
        assert summary['kurtosis'] is None

    def test_near_constant_moments_are_none(self):
        summary = distribution_summary([1.0, 1.0, 1.0, 1.0 + 2 ** -52])

        assert summary['skewness'] is None
        assert summary['excess_kurtosis'] is None
