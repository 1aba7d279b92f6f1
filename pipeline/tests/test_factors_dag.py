"""
Tests for factors DAG - mocked download, real transforms and storage.
"""

import pytest
import sqlite3
from unittest.mock import patch
from datetime import date

from pipeline.factors_dag import run_factors, FactorsConfig
from storage.loaders import init_database, load_factor_frame
from storage.run_registry import get_run_status, RunStatus
from ingestion.providers.fama_french_adapter import FamaFrenchError


RAW_ROWS = [
    {'Date': '202301', 'Mkt-RF': '6.65', 'SMB': '5.02', 'HML': '-4.05', 'RF': '0.35'},
    {'Date': '202302', 'Mkt-RF': '-2.58', 'SMB': '1.20', 'HML': '-0.78', 'RF': '0.34'},
]


@pytest.fixture
def in_memory_db():
    conn = sqlite3.connect(':memory:')
    init_database(conn)
    return conn


class TestFactorsDAG:
    """Tests for run_factors orchestration."""

    def test_config_rejects_unknown_frequency(self):
        with pytest.raises(ValueError, match="frequency must be one of"):
            FactorsConfig(frequency='annual')

    @patch('pipeline.factors_dag.fetch_factor_rows')
    def test_success(self, mock_fetch, in_memory_db):
        mock_fetch.return_value = RAW_ROWS

        result = run_factors(FactorsConfig(), conn=in_memory_db)

        mock_fetch.assert_called_once_with('monthly')
        assert result['status'] == 'completed'
        assert result['rows_stored'] == 2
        assert result['last_date'] == date(2023, 2, 28)

        frame = load_factor_frame(in_memory_db, 'monthly')
        assert frame.loc['2023-01-31', 'Mkt-RF'] == pytest.approx(0.0665)
        assert frame.loc['2023-02-28', 'RF'] == pytest.approx(0.0034)

    @patch('pipeline.factors_dag.fetch_factor_rows')
    def test_download_error_recorded(self, mock_fetch, in_memory_db):
        mock_fetch.side_effect = FamaFrenchError("Failed to download: 503")

        result = run_factors(FactorsConfig(), conn=in_memory_db)

        assert result['status'] == 'failed'
        run = get_run_status(in_memory_db, result['run_id'])
        assert run['status'] == RunStatus.FAILED
        assert '503' in run['error_message']

    @patch('pipeline.factors_dag.fetch_factor_rows')
    def test_unparseable_rows_fail_run(self, mock_fetch, in_memory_db):
        mock_fetch.return_value = [{'Date': '2023', 'Mkt-RF': '1', 'SMB': '1', 'HML': '1', 'RF': '1'}]

        result = run_factors(FactorsConfig(), conn=in_memory_db)

        assert result['status'] == 'failed'
        assert 'Invalid factor date' in result['error_message']

    @patch('pipeline.factors_dag.fetch_factor_rows')
    def test_implausible_rows_skipped(self, mock_fetch, in_memory_db):
        rows = RAW_ROWS + [{'Date': '202303', 'Mkt-RF': '250.0', 'SMB': '0', 'HML': '0', 'RF': '0'}]
        mock_fetch.return_value = rows

        result = run_factors(FactorsConfig(), conn=in_memory_db)

        assert result['status'] == 'completed'
        assert result['validation_warnings'] == 1
        assert result['rows_stored'] == 2
