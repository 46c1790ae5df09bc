"""
Import Validation Module

This module verifies a finished import by comparing the row count of each
target table with the number of rows loaded from its unload file, and
renders a human-readable report.
"""

from typing import Any, Dict, Optional
from datetime import datetime
import logging

from airflow.providers.postgres.hooks.postgres import PostgresHook

from dbexport_pg_import.ddl_generator import DDLGenerator

logger = logging.getLogger(__name__)


class ImportValidator:
    """Validate imported tables in PostgreSQL."""

    def __init__(self, postgres_conn_id: str, target_schema: str):
        """
        Initialize the import validator.

        Args:
            postgres_conn_id: Airflow connection ID for PostgreSQL
            target_schema: Schema the export was imported into
        """
        self.postgres_hook = PostgresHook(postgres_conn_id=postgres_conn_id)
        self.target_schema = target_schema
        self.generator = DDLGenerator(target_schema)

    def validate_row_count(self, table_name: str, expected_count: int) -> Dict[str, Any]:
        """
        Compare the row count of a target table with the loaded row count.

        Args:
            table_name: Imported table name
            expected_count: Rows loaded from the unload file

        Returns:
            Validation result dictionary
        """
        target_count = self.postgres_hook.get_first(self.generator.generate_row_count(table_name))[0] or 0
        row_difference = target_count - expected_count

        validation_result = {
            'table_name': table_name,
            'expected_count': expected_count,
            'target_count': target_count,
            'row_difference': row_difference,
            'validation_passed': target_count == expected_count,
            'validation_time': datetime.now().isoformat(),
        }

        if validation_result['validation_passed']:
            logger.info(f"✓ Row count validation passed for {table_name}: {target_count:,} rows")
        else:
            logger.warning(
                f"✗ Row count mismatch for {table_name}: "
                f"Expected={expected_count:,}, Target={target_count:,}, "
                f"Difference={row_difference:+,}"
            )

        return validation_result

    def validate_tables(self, expected_counts: Dict[str, int]) -> Dict[str, Any]:
        """
        Validate every imported table.

        Args:
            expected_counts: Mapping of table name to rows loaded

        Returns:
            Summary with per-table results
        """
        results = [self.validate_row_count(name, count) for name, count in expected_counts.items()]
        failed = [r['table_name'] for r in results if not r['validation_passed']]
        total = len(results)

        return {
            'total_tables': total,
            'passed_count': total - len(failed),
            'failed_count': len(failed),
            'success_rate': ((total - len(failed)) / total * 100) if total else 100.0,
            'failed_tables': failed,
            'row_count_results': results,
        }


def generate_import_report(
    validation_results: Dict[str, Any],
    import_result: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Generate a human-readable import report.

    Args:
        validation_results: Results from ImportValidator.validate_tables
        import_result: Optional ImportResult.to_dict() of the run

    Returns:
        Formatted report string
    """
    report_lines = [
        "=" * 80,
        "EXPORT IMPORT REPORT",
        "=" * 80,
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
    ]

    if import_result:
        total_rows = sum(import_result.get('rows_inserted', {}).values())
        elapsed = import_result.get('elapsed_time_seconds', 0)
        avg_rate = total_rows / elapsed if elapsed > 0 else 0
        report_lines.extend([
            "IMPORT",
            "-" * 40,
            f"Export: {import_result.get('export_dir')} (database {import_result.get('database_name')})",
            f"Target Schema: {import_result.get('target_schema')}",
            f"Total Rows Inserted: {total_rows:,}",
            f"Total Time: {elapsed:.2f} seconds",
            f"Average Insert Rate: {avg_rate:,.0f} rows/second",
            "",
        ])

    report_lines.extend([
        "SUMMARY",
        "-" * 40,
        f"Total Tables: {validation_results.get('total_tables', 0)}",
        f"Successful: {validation_results.get('passed_count', 0)}",
        f"Failed: {validation_results.get('failed_count', 0)}",
        f"Success Rate: {validation_results.get('success_rate', 0):.1f}%",
        "",
        "TABLE DETAILS",
        "-" * 40,
    ])

    for result in validation_results.get('row_count_results', []):
        status = "✓ PASS" if result['validation_passed'] else "✗ FAIL"
        if result['validation_passed']:
            report_lines.append(f"{status} | {result['table_name']:<30} | {result['target_count']:>10,} rows")
        else:
            report_lines.append(
                f"{status} | {result['table_name']:<30} | Expected: {result['expected_count']:>10,} | "
                f"Target: {result['target_count']:>10,} | Diff: {result['row_difference']:>+10,}"
            )

    if validation_results.get('failed_tables'):
        report_lines.extend([
            "",
            "FAILED TABLES REQUIRING ATTENTION",
            "-" * 40,
        ])
        for table in validation_results['failed_tables']:
            report_lines.append(f"  • {table}")

    report_lines.extend([
        "",
        "=" * 80,
        "END OF REPORT",
        "=" * 80,
    ])

    return "\n".join(report_lines)


def validate_import(
    postgres_conn_id: str,
    target_schema: str,
    expected_counts: Dict[str, int],
    import_result: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Convenience function to validate a complete import.

    Args:
        postgres_conn_id: PostgreSQL connection ID
        target_schema: Schema the export was imported into
        expected_counts: Mapping of table name to rows loaded
        import_result: Optional ImportResult.to_dict() for the report

    Returns:
        Complete validation results with report
    """
    validator = ImportValidator(postgres_conn_id, target_schema)
    validation_results = validator.validate_tables(expected_counts)

    report = generate_import_report(validation_results, import_result)
    logger.info("\n" + report)

    validation_results['report'] = report
    return validation_results
