"""
Core validators for canonical data rows.
Pure functions - no IO, network, or side effects.
"""

import math
from datetime import date, datetime
from typing import Dict, Any, Iterable


FACTOR_FREQUENCIES = ('monthly', 'weekly', 'daily')

# Any factor moving more than this in one period is a parsing error, not data
MAX_ABS_FACTOR_RETURN = 1.0


class ValidationError(ValueError):
    """Raised when data validation fails."""
    pass


def _require_keys(row: Dict[str, Any], required_keys: Iterable[str]) -> None:
    missing = set(required_keys) - set(row.keys())
    if missing:
        raise ValidationError(f"Missing required keys: {missing}")


def _require_finite(field: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be numeric, got {type(value)}")

    if not math.isfinite(value):
        raise ValidationError(f"{field} must be finite, got {value}")


def _require_common(row: Dict[str, Any]) -> None:
    if not isinstance(row['date'], date) or isinstance(row['date'], datetime):
        raise ValidationError(f"date must be date, got {type(row['date'])}")

    if not isinstance(row['ingested_at'], datetime):
        raise ValidationError(f"ingested_at must be datetime, got {type(row['ingested_at'])}")

    if not isinstance(row['source'], str):
        raise ValidationError(f"source must be string, got {type(row['source'])}")


def validate_prices_row(row: Dict[str, Any]) -> None:
    """
    Validate a canonical prices row.

    Args:
        row: Dictionary containing price data

    Raises:
        ValidationError: If validation fails
    """
    _require_keys(row, {'symbol', 'date', 'close', 'adj_close', 'source', 'ingested_at'})

    if not isinstance(row['symbol'], str) or not row['symbol']:
        raise ValidationError(f"symbol must be non-empty string, got {row['symbol']!r}")

    _require_common(row)

    # Returns are computed from adjusted closes, so both must be usable
    for field in ['close', 'adj_close']:
        value = row[field]
        _require_finite(field, value)

        if value <= 0:
            raise ValidationError(f"{field} must be positive, got {value}")


def validate_factor_row(row: Dict[str, Any]) -> None:
    """
    Validate a canonical factor row (decimal returns).

    Raises:
        ValidationError: If validation fails
    """
    _require_keys(row, {'frequency', 'date', 'mkt_rf', 'smb', 'hml', 'rf',
                        'source', 'ingested_at'})

    if row['frequency'] not in FACTOR_FREQUENCIES:
        raise ValidationError(f"frequency must be one of {FACTOR_FREQUENCIES}, got {row['frequency']!r}")

    _require_common(row)

    for field in ['mkt_rf', 'smb', 'hml', 'rf']:
        value = row[field]
        _require_finite(field, value)

        if abs(value) > MAX_ABS_FACTOR_RETURN:
            raise ValidationError(
                f"{field} of {value} looks like a percent, expected a decimal return"
            )
