"""
Database loaders - idempotent upserts and frame readers for SQLite.
Thin IO layer with focus on data integrity and idempotence.
"""

import sqlite3
from datetime import date, datetime
from typing import Dict, Any, List, Tuple, Optional

import pandas as pd


FACTOR_COLUMNS = {
    'Mkt-RF': 'mkt_rf',
    'SMB': 'smb',
    'HML': 'hml',
    'RF': 'rf',
}


def _iso(value: Optional[Any]) -> Optional[str]:
    """Store dates and datetimes as ISO text (sorts correctly in SQLite)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(sep=' ')
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def init_database(conn: sqlite3.Connection) -> None:
    """
    Initialize database with required tables.
    Idempotent - safe to call multiple times.

    Args:
        conn: SQLite connection
    """
    conn.execute("PRAGMA foreign_keys = ON")

    # Adjusted closes, one row per symbol and trading date
    conn.execute("""
        CREATE TABLE IF NOT EXISTS prices (
            symbol TEXT NOT NULL,
            date DATE NOT NULL,
            close REAL NOT NULL,
            adj_close REAL NOT NULL,
            source TEXT NOT NULL,
            ingested_at DATETIME NOT NULL,
            PRIMARY KEY (symbol, date)
        )
    """)

    # Fama-French factor returns as decimals, one row per period
    conn.execute("""
        CREATE TABLE IF NOT EXISTS factors (
            frequency TEXT NOT NULL,
            date DATE NOT NULL,
            mkt_rf REAL NOT NULL,
            smb REAL NOT NULL,
            hml REAL NOT NULL,
            rf REAL NOT NULL,
            source TEXT NOT NULL,
            ingested_at DATETIME NOT NULL,
            PRIMARY KEY (frequency, date)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            run_id INTEGER PRIMARY KEY AUTOINCREMENT,
            job_name TEXT NOT NULL,
            started_at DATETIME NOT NULL,
            finished_at DATETIME,
            status TEXT NOT NULL CHECK(status IN ('running', 'completed', 'failed')),
            rows_in INTEGER,
            rows_out INTEGER,
            output_path TEXT,
            error_message TEXT
        )
    """)

    conn.execute("CREATE INDEX IF NOT EXISTS idx_prices_symbol ON prices(symbol)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_prices_date ON prices(date)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_factors_date ON factors(date)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status)")

    conn.commit()


def get_connection(db_path: str = './data/portfolio.db') -> sqlite3.Connection:
    """
    Get SQLite connection with proper configuration.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Configured SQLite connection
    """
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def upsert_prices(conn: sqlite3.Connection, rows: List[Dict[str, Any]]) -> Tuple[int, int]:
    """
    Upsert canonical price rows.
    Idempotent - can be called multiple times with same data.

    Args:
        conn: SQLite connection
        rows: Canonical price dictionaries (symbol, date, close, adj_close, ...)

    Returns:
        Tuple of (inserted_count, updated_count)
    """
    if not rows:
        return (0, 0)

    inserted = 0
    updated = 0

    for row in rows:
        key = (row['symbol'], _iso(row['date']))
        cursor = conn.execute(
            "SELECT COUNT(*) FROM prices WHERE symbol = ? AND date = ?", key
        )
        exists = cursor.fetchone()[0] > 0

        if exists:
            conn.execute("""
                UPDATE prices SET close = ?, adj_close = ?, source = ?, ingested_at = ?
                WHERE symbol = ? AND date = ?
            """, (
                row['close'], row['adj_close'], row['source'], _iso(row['ingested_at']),
                *key
            ))
            updated += 1
        else:
            conn.execute("""
                INSERT INTO prices (symbol, date, close, adj_close, source, ingested_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                *key, row['close'], row['adj_close'], row['source'], _iso(row['ingested_at'])
            ))
            inserted += 1

    conn.commit()
    return (inserted, updated)


def upsert_factors(conn: sqlite3.Connection, rows: List[Dict[str, Any]]) -> Tuple[int, int]:
    """
    Upsert canonical factor rows (frequency, date, mkt_rf, smb, hml, rf, ...).

    Returns:
        Tuple of (inserted_count, updated_count)
    """
    if not rows:
        return (0, 0)

    inserted = 0
    updated = 0

    for row in rows:
        key = (row['frequency'], _iso(row['date']))
        values = (row['mkt_rf'], row['smb'], row['hml'], row['rf'],
                  row['source'], _iso(row['ingested_at']))

        cursor = conn.execute(
            "SELECT COUNT(*) FROM factors WHERE frequency = ? AND date = ?", key
        )

        if cursor.fetchone()[0] > 0:
            conn.execute("""
                UPDATE factors SET mkt_rf = ?, smb = ?, hml = ?, rf = ?, source = ?, ingested_at = ?
                WHERE frequency = ? AND date = ?
            """, (*values, *key))
            updated += 1
        else:
            conn.execute("""
                INSERT INTO factors (frequency, date, mkt_rf, smb, hml, rf, source, ingested_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (*key, *values))
            inserted += 1

    conn.commit()
    return (inserted, updated)


def load_price_frame(
    conn: sqlite3.Connection,
    symbols: List[str],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> pd.DataFrame:
    """
    Load adjusted closes as a wide frame: DatetimeIndex x one column per symbol.

    Dates where any requested symbol has no price are dropped so every
    column covers the same trading days.

    Args:
        conn: SQLite connection
        symbols: Symbols to load (column order follows this list)
        start_date: Inclusive lower bound (optional)
        end_date: Inclusive upper bound (optional)

    Returns:
        Wide DataFrame of adjusted closes (empty if nothing stored)
    """
    if not symbols:
        return pd.DataFrame()

    placeholders = ', '.join('?' for _ in symbols)
    query = f"""
        SELECT symbol, date, adj_close FROM prices
        WHERE symbol IN ({placeholders})
    """
    params: List[Any] = list(symbols)

    if start_date is not None:
        query += " AND date >= ?"
        params.append(_iso(start_date))

    if end_date is not None:
        query += " AND date <= ?"
        params.append(_iso(end_date))

    query += " ORDER BY date ASC"

    long_df = pd.read_sql_query(query, conn, params=params)
    if long_df.empty:
        return pd.DataFrame(columns=list(symbols), dtype=float)

    long_df['date'] = pd.to_datetime(long_df['date'])
    wide = long_df.pivot(index='date', columns='symbol', values='adj_close')
    wide = wide.reindex(columns=list(symbols))
    wide.columns.name = None

    return wide.dropna(how='any')


def load_factor_frame(
    conn: sqlite3.Connection,
    frequency: str = 'monthly',
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> pd.DataFrame:
    """
    Load factor returns with Fama-French column names (Mkt-RF, SMB, HML, RF).

    Returns:
        DataFrame indexed by period-end date (empty if nothing stored)
    """
    query = "SELECT date, mkt_rf, smb, hml, rf FROM factors WHERE frequency = ?"
    params: List[Any] = [frequency]

    if start_date is not None:
        query += " AND date >= ?"
        params.append(_iso(start_date))

    if end_date is not None:
        query += " AND date <= ?"
        params.append(_iso(end_date))

    query += " ORDER BY date ASC"

    df = pd.read_sql_query(query, conn, params=params)
    df['date'] = pd.to_datetime(df['date'])
    df = df.set_index('date')
    df.index.name = None

    return df.rename(columns={v: k for k, v in FACTOR_COLUMNS.items()})
