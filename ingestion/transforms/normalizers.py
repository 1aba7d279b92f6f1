"""
Normalizers for transforming provider data to canonical shape.
Pure functions - no IO, network, or side effects.
Minimal normalization - only when necessary.
"""

import calendar
from datetime import date, datetime
from typing import Dict, Any, List


FACTOR_FIELDS = {
    'Mkt-RF': 'mkt_rf',
    'SMB': 'smb',
    'HML': 'hml',
    'RF': 'rf',
}


class NormalizationError(ValueError):
    """Raised when a raw row cannot be mapped to canonical shape."""
    pass


def normalize_prices(
    raw_rows: List[Dict[str, Any]],
    *,
    symbol: str,
    source: str,
    ingested_at: datetime
) -> List[Dict[str, Any]]:
    """
    Transform provider-native price rows to canonical shape.

    Minimal normalization:
    - Date strings to date objects (required for schema)
    - Field name mapping (provider uses different names)
    - Deduplication by date (keep last to handle corrections)

    Rows without an adjusted close keep adj_close=None; the validator
    rejects them so they never reach storage.

    Args:
        raw_rows: List of provider-specific price dictionaries
        symbol: Ticker symbol
        source: Data provider name
        ingested_at: Pipeline processing timestamp

    Returns:
        List of canonical price dictionaries
    """
    if not raw_rows:
        return []

    seen = {}

    for raw in raw_rows:
        raw_date = raw.get('Date', '')
        row_date = date.fromisoformat(raw_date) if isinstance(raw_date, str) else raw_date

        canonical = {
            'symbol': symbol,
            'date': row_date,
            'close': float(raw['Close']) if 'Close' in raw else None,
            'adj_close': float(raw['Adj Close']) if 'Adj Close' in raw else None,
            'source': source,
            'ingested_at': ingested_at,
        }

        # Primary key (symbol, date); later rows win
        seen[(symbol, row_date)] = canonical

    return list(seen.values())


def parse_factor_date(raw_date: str) -> date:
    """
    Convert a factor-library date to a calendar date.

    'YYYYMM' becomes the last day of that month so monthly factors line up
    with month-end returns; 'YYYYMMDD' is taken as-is.

    Raises:
        NormalizationError: If the value is not a 6 or 8 digit date
    """
    raw_date = str(raw_date).strip()

    try:
        if len(raw_date) == 6 and raw_date.isdigit():
            year, month = int(raw_date[:4]), int(raw_date[4:])
            return date(year, month, calendar.monthrange(year, month)[1])

        if len(raw_date) == 8 and raw_date.isdigit():
            return datetime.strptime(raw_date, '%Y%m%d').date()
    except ValueError as e:
        raise NormalizationError(f"Invalid factor date: {raw_date}") from e

    raise NormalizationError(f"Invalid factor date: {raw_date}")


def normalize_factors(
    raw_rows: List[Dict[str, Any]],
    *,
    frequency: str,
    source: str,
    ingested_at: datetime
) -> List[Dict[str, Any]]:
    """
    Transform raw factor-library rows to canonical shape.

    Normalization:
    - Percent values to decimals (the library publishes 2.96 for 2.96%)
    - YYYYMM / YYYYMMDD to period-end dates
    - Deduplication by (frequency, date)

    Args:
        raw_rows: Rows from fetch_factor_rows
        frequency: 'monthly', 'weekly' or 'daily'
        source: Data provider name
        ingested_at: Pipeline processing timestamp

    Returns:
        List of canonical factor dictionaries

    Raises:
        NormalizationError: If a date or value cannot be parsed
    """
    seen = {}

    for raw in raw_rows:
        row_date = parse_factor_date(raw.get('Date', ''))

        canonical = {'frequency': frequency, 'date': row_date}

        for raw_field, field in FACTOR_FIELDS.items():
            try:
                canonical[field] = float(raw[raw_field]) / 100.0
            except (KeyError, TypeError, ValueError) as e:
                raise NormalizationError(
                    f"Bad {raw_field} value on {raw.get('Date')}: {raw.get(raw_field)!r}"
                ) from e

        canonical['source'] = source
        canonical['ingested_at'] = ingested_at

        seen[(frequency, row_date)] = canonical

    return list(seen.values())
