"""
Informix dbexport to PostgreSQL Import DAG

This DAG rebuilds an Informix dbexport directory as a PostgreSQL schema:
1. Parse the export header and load every unload file (fails before any
   database work if the export is malformed or inconsistent)
2. Inspect the target schema (must be empty unless drop_existing is set)
3. Create tables and synonym views, bulk insert the rows, build indexes
4. Validate row counts and log a report

Each task re-reads the export directory it needs; row data never travels
through XCom.
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from datetime import timedelta
from typing import Any, Dict, List
import logging
import os

from dbexport_pg_import import pipeline, validation
from dbexport_pg_import.import_config import (
    ImportConfig,
    expand_list_param,
    parse_bool,
    validate_sql_identifier,
)
from dbexport_pg_import.schema_importer import list_existing_tables

logger = logging.getLogger(__name__)


@dag(
    dag_id="dbexport_to_postgres_import",
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 0,  # An import is not resumable; rerun with drop_existing instead
        "retry_delay": timedelta(seconds=30),
    },
    params={
        "export_dir": Param(
            default=os.environ.get("EXPORT_DIR", "/opt/airflow/exports/legacy.exp"),
            type="string",
            description="dbexport directory holding the .sql header and .unl files"
        ),
        "target_conn_id": Param(
            default="postgres_target",
            type="string",
            description="PostgreSQL connection ID"
        ),
        "target_schema": Param(
            default="public",
            type="string",
            description="Target schema in PostgreSQL"
        ),
        "drop_existing": Param(
            default=False,
            type="boolean",
            description="Drop the export's views and tables before importing instead of "
                        "requiring an empty schema"
        ),
        "use_unlogged_tables": Param(
            default=parse_bool(os.environ.get("USE_UNLOGGED_TABLES"), default=True),
            type="boolean",
            description="Switch each table to UNLOGGED while its rows are inserted"
        ),
        "tablespace": Param(
            default=os.environ.get("IMPORT_TABLESPACE", "pg_default"),
            type="string",
            description="Tablespace for created indexes"
        ),
        "skip_columns": Param(
            default=expand_list_param(os.environ.get("IMPORT_SKIP_COLUMNS", "")),
            type="array",
            description="Column names left out of INSERT statements (e.g., ['desc'])"
        ),
        "validate_row_counts": Param(
            default=True,
            type="boolean",
            description="Compare target row counts with the unload files after import"
        ),
    },
    tags=["import", "informix", "dbexport", "postgres"],
)
def dbexport_to_postgres_import():
    """Import DAG: parse a dbexport directory, rebuild it in PostgreSQL."""

    @task
    def check_export(**context) -> Dict[str, Any]:
        """
        Parse the header and load every unload file without touching the target.

        Raises ExportFormatError/ExportConsistencyError on a broken export so
        the run stops before any DDL is executed.
        """
        params = context["params"]
        config = ImportConfig.from_params(params)

        model = pipeline.load_export(params["export_dir"], config)
        summary = model.summary()

        logger.info(
            f"Export of database {summary['database_name']}: {len(summary['tables'])} tables, "
            f"{len(summary['synonyms'])} synonyms, {summary['index_count']} indexes, "
            f"{summary['unique_index_count']} unique indexes"
        )
        for t in summary["tables"]:
            logger.info(f"  {t['table_name']}: {t['loaded_rows']:,} rows")

        context["ti"].xcom_push(key="table_count", value=len(summary["tables"]))
        context["ti"].xcom_push(key="total_rows", value=model.total_rows)

        return summary

    @task
    def inspect_target_schema(export_summary: Dict[str, Any], **context) -> List[str]:
        """
        List tables already in the target schema.

        Fails early when the schema is populated and drop_existing is off, since
        the import itself would refuse it after parsing the whole export again.
        """
        params = context["params"]
        target_schema = validate_sql_identifier(params["target_schema"], "target schema")

        existing = list_existing_tables(params["target_conn_id"], target_schema)
        if existing and not params["drop_existing"]:
            raise ValueError(
                f"Schema {target_schema} already contains {len(existing)} tables "
                f"({', '.join(existing[:10])}); set drop_existing to replace them"
            )

        if existing:
            logger.info(f"Schema {target_schema} has {len(existing)} existing tables; they will be dropped if part of the export")
        else:
            logger.info(f"Schema {target_schema} is empty or missing")
        return existing

    @task
    def run_import(existing_tables: List[str], **context) -> Dict[str, Any]:
        """Create the schema objects, insert all rows and build indexes."""
        params = context["params"]
        config = ImportConfig.from_params(params)

        result = pipeline.import_export(
            export_dir=params["export_dir"],
            postgres_conn_id=params["target_conn_id"],
            target_schema=params["target_schema"],
            drop_existing=params["drop_existing"],
            config=config,
        )

        if not result.success:
            logger.error(f"✗ {result.message}")
            raise RuntimeError(result.message)

        context["ti"].xcom_push(key="rows_inserted", value=result.rows_inserted)
        return result.to_dict()

    @task
    def validate_import(import_result: Dict[str, Any], **context) -> str:
        """Compare row counts in PostgreSQL with the rows loaded from the export."""
        params = context["params"]

        if not params["validate_row_counts"]:
            status = f"Validation skipped: {import_result['message']}"
            logger.info(status)
            return status

        validation_results = validation.validate_import(
            postgres_conn_id=params["target_conn_id"],
            target_schema=params["target_schema"],
            expected_counts=import_result["rows_inserted"],
            import_result=import_result,
        )

        if validation_results["failed_count"]:
            status = (
                f"⚠ Import completed with issues: "
                f"{validation_results['failed_count']}/{validation_results['total_tables']} tables failed validation"
            )
            logger.warning(status)
        else:
            status = f"✓ Import validated for all {validation_results['total_tables']} tables"
            logger.info(status)

        context["ti"].xcom_push(key="final_status", value=status)
        return status

    # Task flow
    export_summary = check_export()
    existing_tables = inspect_target_schema(export_summary)
    import_result = run_import(existing_tables)
    validate_import(import_result)


# Instantiate
dbexport_to_postgres_import()
