"""
Tests for returns calculation utilities.
Pure functions with deterministic synthetic data for hand verification.
"""

import pytest
import numpy as np
import pandas as pd
from datetime import date

from analysis.calculations.returns import (
    validate_return_series,
    prices_to_returns,
    to_period_returns,
    filter_start_date,
    align_series,
    intersect_series
)
from analysis.errors import AlignmentError, InvalidSeriesError


def daily_prices(values, start='2024-01-02'):
    index = pd.bdate_range(start, periods=len(values))
    return pd.Series(values, index=index, dtype=float, name='SPY')


class TestPricesToReturns:
    """Tests for prices_to_returns."""

    def test_simple_returns(self):
        prices = daily_prices([100.0, 110.0, 99.0])

        returns = prices_to_returns(prices, 'simple')

        assert len(returns) == 2
        assert returns.iloc[0] == pytest.approx(0.10)
        assert returns.iloc[1] == pytest.approx(-0.10)
        assert returns.index[0] == prices.index[1]

    def test_log_returns(self):
        prices = daily_prices([100.0, 110.0, 121.0])

        returns = prices_to_returns(prices, 'log')

        assert returns.iloc[0] == pytest.approx(np.log(1.1))
        assert returns.sum() == pytest.approx(np.log(1.21))

    def test_frame_input(self):
        index = pd.bdate_range('2024-01-02', periods=3)
        prices = pd.DataFrame({'SPY': [100.0, 101.0, 102.0], 'AGG': [50.0, 50.0, 51.0]}, index=index)

        returns = prices_to_returns(prices)

        assert list(returns.columns) == ['SPY', 'AGG']
        assert returns['AGG'].iloc[0] == 0.0

    def test_unsorted_prices_are_sorted(self):
        prices = daily_prices([100.0, 110.0]).iloc[::-1]

        returns = prices_to_returns(prices)

        assert returns.iloc[0] == pytest.approx(0.10)

    def test_single_price(self):
        with pytest.raises(InvalidSeriesError, match="at least 2 prices"):
            prices_to_returns(daily_prices([100.0]))

    def test_non_positive_price(self):
        with pytest.raises(InvalidSeriesError, match="negative"):
            prices_to_returns(daily_prices([100.0, 0.0, 101.0]))

    def test_missing_price(self):
        with pytest.raises(InvalidSeriesError, match="Missing prices"):
            prices_to_returns(daily_prices([100.0, np.nan, 101.0]))

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown return method"):
            prices_to_returns(daily_prices([100.0, 101.0]), 'arithmetic')


class TestPeriodReturns:
    """Tests for to_period_returns."""

    def test_monthly_uses_last_trading_day(self):
        index = pd.bdate_range('2024-01-02', '2024-03-29')
        prices = pd.Series(np.arange(len(index), dtype=float) + 100.0, index=index)

        returns = to_period_returns(prices, 'monthly', 'simple')

        assert list(returns.index) == [pd.Timestamp('2024-02-29'), pd.Timestamp('2024-03-29')]
        jan_close = prices.loc['2024-01-31']
        feb_close = prices.loc['2024-02-29']
        assert returns.iloc[0] == pytest.approx(feb_close / jan_close - 1)

    def test_daily_passthrough(self):
        prices = daily_prices([100.0, 101.0, 102.0])

        pd.testing.assert_series_equal(
            to_period_returns(prices, 'daily'), prices_to_returns(prices)
        )

    def test_weekly(self):
        index = pd.bdate_range('2024-01-01', periods=15)
        prices = pd.Series(100.0 + np.arange(15), index=index)

        returns = to_period_returns(prices, 'weekly')

        assert len(returns) == 2
        assert all(ts.dayofweek == 4 for ts in returns.index)

    def test_unknown_frequency(self):
        with pytest.raises(ValueError, match="Unknown frequency"):
            to_period_returns(daily_prices([100.0, 101.0]), 'hourly')


class TestValidateReturnSeries:
    """Tests for return series invariants."""

    def test_valid(self):
        validate_return_series(daily_prices([0.01, -0.02, 0.03]))

    def test_requires_dates(self):
        with pytest.raises(InvalidSeriesError, match="indexed by dates"):
            validate_return_series(pd.Series([0.01, 0.02]))

    def test_duplicate_dates(self):
        index = pd.DatetimeIndex(['2024-01-31', '2024-01-31'])
        with pytest.raises(InvalidSeriesError, match="Duplicate"):
            validate_return_series(pd.Series([0.01, 0.02], index=index))

    def test_unordered_dates(self):
        index = pd.DatetimeIndex(['2024-02-29', '2024-01-31'])
        with pytest.raises(InvalidSeriesError, match="increasing"):
            validate_return_series(pd.Series([0.01, 0.02], index=index))

    def test_nan(self):
        with pytest.raises(InvalidSeriesError, match="NaN"):
            validate_return_series(daily_prices([0.01, np.nan]))

    def test_inf(self):
        with pytest.raises(InvalidSeriesError, match="Infinite"):
            validate_return_series(daily_prices([0.01, np.inf]))


class TestSeriesHelpers:
    """Tests for filtering and alignment helpers."""

    def test_filter_start_date_inclusive(self):
        series = daily_prices([0.01, 0.02, 0.03])

        result = filter_start_date(series, date(2024, 1, 3))

        assert list(result) == [0.02, 0.03]

    def test_filter_start_date_none(self):
        series = daily_prices([0.01, 0.02])
        assert filter_start_date(series, None) is series

    def test_align_series_mismatch(self):
        a = daily_prices([0.01, 0.02, 0.03])
        b = a.iloc[:2]

        with pytest.raises(AlignmentError, match="1 mismatched dates"):
            align_series(a, b)

    def test_intersect_series(self):
        a = daily_prices([0.01, 0.02, 0.03])
        b = daily_prices([0.05, 0.06], start='2024-01-03')

        a2, b2 = intersect_series(a, b)

        assert a2.index.equals(b2.index)
        assert list(a2) == [0.02, 0.03]
