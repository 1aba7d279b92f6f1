"""
Tests for atomic writer - temp write → fsync → rename.
Simulated interruption tests to verify atomicity.
"""

import json
from datetime import date
from unittest.mock import patch

from reports.atomic_writer import (
    write_text_atomic,
    write_json_atomic,
    verify_file_integrity
)


class TestWriteTextAtomic:
    """Tests for atomic text writes."""

    def test_success(self, tmp_path):
        output_path = tmp_path / 'rolling.csv'

        result = write_text_atomic('date,sharpe\n2024-01-31,0.21\n', output_path)

        assert result['status'] == 'completed'
        assert output_path.read_text() == 'date,sharpe\n2024-01-31,0.21\n'
        assert result['bytes_written'] == output_path.stat().st_size

    def test_creates_parent_directories(self, tmp_path):
        output_path = tmp_path / 'out' / 'portfolio' / 'metrics.json'

        result = write_text_atomic('{}', output_path)

        assert result['status'] == 'completed'
        assert output_path.exists()

    def test_overwrites_existing_file(self, tmp_path):
        output_path = tmp_path / 'metrics.json'
        output_path.write_text('old')

        write_text_atomic('new', output_path)

        assert output_path.read_text() == 'new'

    def test_no_temp_files_left_behind(self, tmp_path):
        write_text_atomic('content', tmp_path / 'metrics.json')

        assert [p.name for p in tmp_path.iterdir()] == ['metrics.json']

    def test_interrupted_rename_keeps_original(self, tmp_path):
        output_path = tmp_path / 'metrics.json'
        output_path.write_text('original')

        with patch('reports.atomic_writer.os.replace', side_effect=OSError("disk full")):
            result = write_text_atomic('replacement', output_path)

        assert result['status'] == 'failed'
        assert 'disk full' in result['error']
        assert output_path.read_text() == 'original'
        assert [p.name for p in tmp_path.iterdir()] == ['metrics.json']


class TestWriteJsonAtomic:
    """Tests for JSON documents."""

    def test_round_trips_with_dates(self, tmp_path):
        output_path = tmp_path / 'metrics.json'

        result = write_json_atomic({'as_of': date(2024, 1, 31), 'sharpe': 0.2}, output_path)

        assert result['status'] == 'completed'
        assert json.loads(output_path.read_text()) == {'as_of': '2024-01-31', 'sharpe': 0.2}

    def test_rejects_nan(self, tmp_path):
        output_path = tmp_path / 'metrics.json'

        result = write_json_atomic({'sharpe': float('nan')}, output_path)

        assert result['status'] == 'failed'
        assert 'JSON serialization failed' in result['error']
        assert not output_path.exists()


class TestVerifyFileIntegrity:

    def test_missing_file(self, tmp_path):
        assert verify_file_integrity(tmp_path / 'nope.json') is False

    def test_size_mismatch(self, tmp_path):
        path = tmp_path / 'a.txt'
        path.write_text('abc')

        assert verify_file_integrity(path, expected_size=3) is True
        assert verify_file_integrity(path, expected_size=4) is False

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / 'a.txt'
        path.write_bytes(b'\xff\xfe\xfa')

        assert verify_file_integrity(path) is False
