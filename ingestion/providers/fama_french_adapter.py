"""
Fama-French adapter - fetch factor returns from Kenneth French's data library.
Network IO allowed here, but minimal business logic.

pandas-datareader's 'famafrench' source downloads and parses the library's
zipped CSVs. Table 0 holds the periodic factors in percent; later tables
(annual factors) are ignored.
"""

import logging
from datetime import date
from typing import Dict, Any, List, Optional

import pandas_datareader.data as web


logger = logging.getLogger(__name__)

DATASETS = {
    'monthly': 'F-F_Research_Data_Factors',
    'weekly': 'F-F_Research_Data_Factors_weekly',
    'daily': 'F-F_Research_Data_Factors_daily',
}

# Raw date format per dataset: YYYYMM or YYYYMMDD
DATE_FORMATS = {'monthly': '%Y%m', 'weekly': '%Y%m%d', 'daily': '%Y%m%d'}

HEADER = ['Mkt-RF', 'SMB', 'HML', 'RF']

# The library's own history begins in July 1926
EARLIEST_START = date(1926, 7, 1)


class FamaFrenchError(Exception):
    """Raised when factor download or parsing fails."""
    pass


def fetch_factor_rows(
    frequency: str = 'monthly',
    start: Optional[date] = None,
    end: Optional[date] = None
) -> List[Dict[str, Any]]:
    """
    Download the three-factor dataset and return its periodic rows.
    Returns raw data in provider format - no normalization.

    Args:
        frequency: 'monthly', 'weekly' or 'daily'
        start: First date to request (default: start of the library's history)
        end: Last date to request (default: today)

    Returns:
        List of dicts: 'Date' (YYYYMM or YYYYMMDD string) plus
        'Mkt-RF', 'SMB', 'HML', 'RF' (percent)

    Raises:
        FamaFrenchError: If the frequency is unknown, the download fails or
            the table lacks the three-factor columns
    """
    if frequency not in DATASETS:
        raise FamaFrenchError(
            f"Unsupported frequency: {frequency} (expected one of {sorted(DATASETS)})"
        )

    dataset = DATASETS[frequency]
    logger.info(f"Downloading {frequency} Fama-French factors ({dataset})")

    try:
        tables = web.DataReader(
            dataset, 'famafrench',
            start=start or EARLIEST_START,
            end=end or date.today()
        )
    except (OSError, ValueError, KeyError) as e:
        raise FamaFrenchError(f"Failed to fetch {dataset}: {e}") from e

    rows = frame_to_rows(tables[0], DATE_FORMATS[frequency])

    logger.info(f"Parsed {len(rows)} {frequency} factor rows")
    return rows


def frame_to_rows(frame, date_format: str) -> List[Dict[str, Any]]:
    """
    Flatten a factor table into raw rows in index order.

    Args:
        frame: DataFrame indexed by period or date with the HEADER columns
        date_format: strftime format for the 'Date' field

    Raises:
        FamaFrenchError: If columns are missing or the table is empty
    """
    missing = [column for column in HEADER if column not in frame.columns]
    if missing:
        raise FamaFrenchError(f"Factor table missing columns: {missing}")

    if frame.empty:
        raise FamaFrenchError("Factor table has no rows")

    dates = frame.index.strftime(date_format)

    return [
        {'Date': raw_date, **{column: float(values[column]) for column in HEADER}}
        for raw_date, (_, values) in zip(dates, frame[HEADER].iterrows())
    ]
