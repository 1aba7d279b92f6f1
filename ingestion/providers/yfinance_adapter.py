"""
yfinance adapter - fetch daily closes from Yahoo Finance.
Network IO allowed here, but minimal business logic.
"""

import logging
import yfinance as yf
import pandas as pd
from datetime import date, timedelta
from typing import Dict, Any, List


logger = logging.getLogger(__name__)

PRICE_FIELDS = ('Close', 'Adj Close')

# Long enough for multi-decade backtests, short enough to catch typos in dates
MAX_RANGE_DAYS = 365 * 40


class YFinanceError(Exception):
    """Raised when yfinance operations fail."""
    pass


def fetch_prices_window(ticker: str, start: date, end: date) -> List[Dict[str, Any]]:
    """
    Fetch daily closes for a ticker within a date window.
    Returns raw data in provider format - no normalization.

    Adjusted closes are requested explicitly (auto_adjust=False) so both the
    raw and the dividend/split adjusted close come back.

    Args:
        ticker: Ticker symbol (e.g., 'SPY')
        start: Start date (inclusive)
        end: End date (inclusive)

    Returns:
        List of raw price dictionaries with 'Date', 'Close', 'Adj Close'

    Raises:
        YFinanceError: If fetch fails or validation fails
    """
    _validate_date_range(start, end)
    _validate_ticker(ticker)

    try:
        # yfinance uses exclusive end dates
        yf_end = end + timedelta(days=1)

        data = yf.download(
            ticker,
            start=start.isoformat(),
            end=yf_end.isoformat(),
            auto_adjust=False,
            progress=False
        )
    except Exception as e:
        raise YFinanceError(f"Failed to fetch prices for {ticker}: {e}") from e

    if data is None or len(data) == 0:
        logger.warning(f"No prices returned for {ticker} between {start} and {end}")
        return []

    # Single-ticker downloads come back with (field, ticker) columns
    if isinstance(data.columns, pd.MultiIndex):
        data.columns = data.columns.get_level_values(0)

    missing = [field for field in PRICE_FIELDS if field not in data.columns]
    if missing:
        raise YFinanceError(f"Response for {ticker} is missing columns: {missing}")

    rows = []
    for date_idx, row in data.iterrows():
        row_dict = {'Date': date_idx.strftime('%Y-%m-%d')}

        for field in PRICE_FIELDS:
            if pd.notna(row[field]):
                row_dict[field] = float(row[field])

        rows.append(row_dict)

    logger.info(f"Fetched {len(rows)} rows for {ticker}")
    return rows


def _validate_date_range(start: date, end: date) -> None:
    """
    Validate date range parameters.

    Raises:
        YFinanceError: If validation fails
    """
    if start > end:
        raise YFinanceError(f"start date ({start}) must be <= end date ({end})")

    today = date.today()
    if start > today or end > today:
        raise YFinanceError("Future dates not allowed for historical data")

    if (end - start).days > MAX_RANGE_DAYS:
        raise YFinanceError(f"Date range too long (max {MAX_RANGE_DAYS} days)")


def _validate_ticker(ticker: str) -> None:
    """
    Basic ticker validation.

    Raises:
        YFinanceError: If ticker is invalid
    """
    if not ticker or not isinstance(ticker, str):
        raise YFinanceError("Ticker must be non-empty string")

    if len(ticker) > 10:
        raise YFinanceError("Ticker too long (max 10 characters)")

    # Index tickers like ^GSPC are allowed alongside the usual share-class chars
    allowed_chars = set('ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.-^=')
    if not set(ticker.upper()).issubset(allowed_chars):
        raise YFinanceError(f"Ticker contains invalid characters: {ticker}")
