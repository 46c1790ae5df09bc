"""
Tests for Import Validation Module

These tests validate post-import row count checks and report generation.
"""

import pytest
from unittest.mock import Mock, patch
from dbexport_pg_import.validation import (
    ImportValidator,
    generate_import_report,
    validate_import,
)


class TestImportValidator:
    """Test ImportValidator class."""

    @pytest.fixture
    def mock_postgres_hook(self):
        """Create mock PostgreSQL hook."""
        hook = Mock()
        hook.get_first = Mock()
        return hook

    @pytest.fixture
    def validator(self, mock_postgres_hook):
        """Create validator with mocked hook."""
        with patch('dbexport_pg_import.validation.PostgresHook') as MockPg:
            MockPg.return_value = mock_postgres_hook
            return ImportValidator('postgres_test', 'legacy')

    def test_validate_row_count_match(self, validator, mock_postgres_hook):
        """Test row count validation when counts match."""
        mock_postgres_hook.get_first.return_value = (2,)

        result = validator.validate_row_count('widgets', 2)

        assert result['validation_passed'] is True
        assert result['target_count'] == 2
        assert result['row_difference'] == 0
        mock_postgres_hook.get_first.assert_called_once_with('SELECT COUNT(*) FROM "legacy"."widgets"')

    def test_validate_row_count_mismatch(self, validator, mock_postgres_hook):
        """Test row count validation when counts don't match."""
        mock_postgres_hook.get_first.return_value = (1,)

        result = validator.validate_row_count('widgets', 2)

        assert result['validation_passed'] is False
        assert result['row_difference'] == -1

    def test_validate_row_count_null_result(self, validator, mock_postgres_hook):
        """A NULL count is treated as zero."""
        mock_postgres_hook.get_first.return_value = (None,)

        result = validator.validate_row_count('empty', 0)

        assert result['target_count'] == 0
        assert result['validation_passed'] is True

    def test_validate_tables(self, validator, mock_postgres_hook):
        mock_postgres_hook.get_first.side_effect = [(2,), (5,)]

        summary = validator.validate_tables({'widgets': 2, 'orders': 6})

        assert summary['total_tables'] == 2
        assert summary['passed_count'] == 1
        assert summary['failed_tables'] == ['orders']
        assert summary['success_rate'] == 50.0

    def test_validate_no_tables(self, validator):
        summary = validator.validate_tables({})
        assert summary['total_tables'] == 0
        assert summary['success_rate'] == 100.0

    def test_identifier_quoting(self, validator, mock_postgres_hook):
        mock_postgres_hook.get_first.return_value = (0,)
        validator.validate_row_count('we"ird', 0)
        assert mock_postgres_hook.get_first.call_args.args[0] == 'SELECT COUNT(*) FROM "legacy"."we""ird"'


class TestGenerateImportReport:
    """Test report rendering."""

    def test_report_all_passed(self):
        results = {
            'total_tables': 1,
            'passed_count': 1,
            'failed_count': 0,
            'success_rate': 100.0,
            'failed_tables': [],
            'row_count_results': [
                {'table_name': 'widgets', 'validation_passed': True, 'target_count': 2,
                 'expected_count': 2, 'row_difference': 0},
            ],
        }

        report = generate_import_report(results)

        assert 'EXPORT IMPORT REPORT' in report
        assert 'Success Rate: 100.0%' in report
        assert '✓ PASS | widgets' in report
        assert 'FAILED TABLES' not in report

    def test_report_with_failures_and_import_stats(self):
        results = {
            'total_tables': 1,
            'passed_count': 0,
            'failed_count': 1,
            'success_rate': 0.0,
            'failed_tables': ['orders'],
            'row_count_results': [
                {'table_name': 'orders', 'validation_passed': False, 'target_count': 5,
                 'expected_count': 6, 'row_difference': -1},
            ],
        }
        import_result = {
            'export_dir': '/exports/demo.exp',
            'database_name': 'demo',
            'target_schema': 'legacy',
            'rows_inserted': {'orders': 6},
            'elapsed_time_seconds': 2.0,
        }

        report = generate_import_report(results, import_result)

        assert '✗ FAIL | orders' in report
        assert 'FAILED TABLES REQUIRING ATTENTION' in report
        assert 'Total Rows Inserted: 6' in report
        assert 'Average Insert Rate: 3 rows/second' in report


class TestValidateImport:
    """Test the convenience function."""

    @patch('dbexport_pg_import.validation.ImportValidator')
    def test_validate_import_attaches_report(self, MockValidator):
        MockValidator.return_value.validate_tables.return_value = {
            'total_tables': 0,
            'passed_count': 0,
            'failed_count': 0,
            'success_rate': 100.0,
            'failed_tables': [],
            'row_count_results': [],
        }

        results = validate_import('postgres_test', 'legacy', {})

        MockValidator.assert_called_once_with('postgres_test', 'legacy')
        assert 'EXPORT IMPORT REPORT' in results['report']
