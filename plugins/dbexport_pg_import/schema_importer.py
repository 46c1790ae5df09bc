"""
Schema Import Module

This module replays a loaded ExportModel into a PostgreSQL schema. The work
runs in a fixed order over a single connection:

1. Create the target schema if it is missing
2. Drop existing views/tables (drop_existing) or refuse a non-empty schema
3. Create tables
4. Create one view per export synonym
5. Bulk insert each table in its own transaction, with the table switched
   to UNLOGGED during the load
6. Create indexes, then unique indexes

Indexes are built last because building them once over the final data is
much faster than maintaining them during the inserts.
"""

from typing import Dict, List, Optional, Sequence
import logging
import time

import psycopg2
from psycopg2.extras import execute_batch
from airflow.providers.postgres.hooks.postgres import PostgresHook

from dbexport_pg_import.ddl_generator import LIST_TABLES_SQL, DDLGenerator
from dbexport_pg_import.errors import ImportExecutionError, SchemaNotEmptyError
from dbexport_pg_import.export_parser import ExportModel
from dbexport_pg_import.import_config import ImportConfig, validate_sql_identifier
from dbexport_pg_import.import_state import ImportPhase, ImportState
from dbexport_pg_import.table_definition import IndexDefinition, TableDefinition

logger = logging.getLogger(__name__)

STEP_CONNECT = 'connect to target'
STEP_CREATE_SCHEMA = 'create schema'
STEP_DROP = 'drop existing objects'
STEP_CHECK_EMPTY = 'schema emptiness check'
STEP_CREATE_TABLES = 'create tables'
STEP_CREATE_VIEWS = 'create synonym views'
STEP_INSERT = 'insert rows'
STEP_CREATE_INDEXES = 'create indexes'
STEP_CREATE_UNIQUE_INDEXES = 'create unique indexes'


class SchemaImporter:
    """Create and populate a PostgreSQL schema from an ExportModel."""

    def __init__(
        self,
        postgres_conn_id: str,
        target_schema: str,
        drop_existing: bool = False,
        config: Optional[ImportConfig] = None,
    ):
        """
        Initialize the importer.

        Args:
            postgres_conn_id: Airflow connection ID for PostgreSQL
            target_schema: Schema that receives the imported objects
            drop_existing: Drop the export's views and tables before importing
            config: Import settings (defaults from the environment)
        """
        self.target_schema = validate_sql_identifier(target_schema, "target schema")
        self.postgres_hook = PostgresHook(postgres_conn_id=postgres_conn_id)
        self.drop_existing = drop_existing
        self.config = config or ImportConfig.from_env()
        self.generator = DDLGenerator(self.target_schema, tablespace=self.config.tablespace)

    def run(self, model: ExportModel, state: Optional[ImportState] = None) -> Dict[str, int]:
        """
        Execute every import phase against the target database.

        Args:
            model: Parsed export with rows loaded
            state: Run state, expected to be in the LOADED phase

        Returns:
            Dictionary mapping table name to rows inserted

        Raises:
            SchemaNotEmptyError: If the schema holds tables and drop_existing is off
            ImportExecutionError: If any statement fails
        """
        if state is None:
            state = ImportState(phase=ImportPhase.LOADED)

        try:
            conn = self.postgres_hook.get_conn()
        except Exception as e:
            raise ImportExecutionError(STEP_CONNECT, self.target_schema, e) from e

        try:
            conn.autocommit = True

            self.ensure_schema(conn)
            if self.drop_existing:
                self.drop_existing_objects(conn, model)
            else:
                self.check_schema_empty(conn)

            self.create_tables(conn, model.tables)
            self.create_synonym_views(conn, model.synonyms)
            state.advance(ImportPhase.SCHEMA_CREATED)

            rows_inserted = {}
            for table in model.tables:
                rows_inserted[table.table_name] = self.insert_table(conn, table)
            state.advance(ImportPhase.DATA_LOADED)

            self.create_indexes(conn, model.indexes, STEP_CREATE_INDEXES)
            self.create_indexes(conn, model.unique_indexes, STEP_CREATE_UNIQUE_INDEXES)
            state.advance(ImportPhase.INDEXES_BUILT)

            return rows_inserted
        finally:
            self._release_connection(conn)

    def ensure_schema(self, conn) -> None:
        with conn.cursor() as cursor:
            self._execute_ddl(cursor, self.generator.generate_create_schema(), STEP_CREATE_SCHEMA, self.target_schema)
        logger.info(f"Ensured schema {self.target_schema} exists in PostgreSQL")

    def drop_existing_objects(self, conn, model: ExportModel) -> None:
        """Drop synonym views and tables of the export, tolerating absence."""
        with conn.cursor() as cursor:
            for synonym in model.synonyms:
                self._execute_ddl(cursor, self.generator.generate_drop_view(synonym), STEP_DROP, synonym)
            for table in model.tables:
                self._execute_ddl(cursor, self.generator.generate_drop_table(table.table_name), STEP_DROP, table.table_name)
        logger.info(f"Dropped {len(model.synonyms)} views and {len(model.tables)} tables (if present)")

    def check_schema_empty(self, conn) -> None:
        """
        Refuse to import into a schema that already holds tables.

        Raises:
            SchemaNotEmptyError: If any table or view exists in the schema
        """
        with conn.cursor() as cursor:
            self._execute(cursor, LIST_TABLES_SQL, STEP_CHECK_EMPTY, self.target_schema, (self.target_schema,))
            existing = [row[0] for row in cursor.fetchall()]

        if existing:
            raise SchemaNotEmptyError(self.target_schema, existing)

    def create_tables(self, conn, tables: Sequence[TableDefinition]) -> None:
        with conn.cursor() as cursor:
            for table in tables:
                self._execute_ddl(cursor, self.generator.generate_create_table(table), STEP_CREATE_TABLES, table.table_name)
                logger.info(f"✓ Created table {self.target_schema}.{table.table_name}")
        logger.info(f"Successfully created {len(tables)} tables")

    def create_synonym_views(self, conn, synonyms: Dict[str, str]) -> None:
        with conn.cursor() as cursor:
            for synonym, table_name in synonyms.items():
                self._execute_ddl(
                    cursor,
                    self.generator.generate_create_view(synonym, table_name),
                    STEP_CREATE_VIEWS,
                    synonym,
                )
                logger.info(f"✓ Created view {synonym} for {table_name}")

    def insert_table(self, conn, table: TableDefinition) -> int:
        """
        Insert all rows of one table in a single transaction.

        The table is switched to UNLOGGED for the load (when enabled) and back
        to LOGGED afterwards. A crash mid-load leaves that table's rows not
        durable; tables completed earlier are unaffected.

        Returns:
            Number of rows inserted
        """
        if not table.data:
            logger.info(f"No rows to insert for {table.table_name}")
            return 0

        start_time = time.time()
        statement, bound = self.generator.generate_insert(table, self.config.skip_columns)
        skipped = [f.field_name for i, f in enumerate(table.fields) if i not in bound]
        if skipped:
            logger.warning(f"Not loading column(s) {', '.join(skipped)} of {table.table_name} (skip_columns)")

        fields = [table.fields[i] for i in bound]
        parameters = [
            tuple(field.bind_value(row[i]) for field, i in zip(fields, bound))
            for row in table.data
        ]

        use_unlogged = self.config.use_unlogged_tables
        if use_unlogged:
            with conn.cursor() as cursor:
                self._execute_ddl(cursor, self.generator.generate_set_unlogged(table.table_name), STEP_INSERT, table.table_name)

        conn.autocommit = False
        try:
            with conn.cursor() as cursor:
                execute_batch(cursor, statement, parameters, page_size=self.config.batch_size)
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise ImportExecutionError(STEP_INSERT, table.table_name, e) from e
        finally:
            conn.autocommit = True

        if use_unlogged:
            with conn.cursor() as cursor:
                self._execute_ddl(cursor, self.generator.generate_set_logged(table.table_name), STEP_INSERT, table.table_name)

        elapsed = time.time() - start_time
        rate = len(parameters) / elapsed if elapsed > 0 else 0
        logger.info(
            f"✓ Inserted {len(parameters):,} rows into {table.table_name} "
            f"in {elapsed:.2f}s ({rate:,.0f} rows/sec)"
        )
        return len(parameters)

    def create_indexes(self, conn, indexes: Sequence[IndexDefinition], step: str) -> int:
        with conn.cursor() as cursor:
            for index in indexes:
                self._execute_ddl(cursor, self.generator.generate_index(index), step, index.index_name)
                logger.info(f"✓ Created {index.construct_name(index.clustered)} {index.index_name} on {index.table_name}")
        if indexes:
            logger.info(f"Created {len(indexes)} {'unique ' if step == STEP_CREATE_UNIQUE_INDEXES else ''}indexes")
        return len(indexes)

    def _execute_ddl(self, cursor, ddl: str, step: str, object_name: Optional[str]) -> None:
        logger.info(f"Executing DDL: {ddl[:100]}...")
        self._execute(cursor, ddl, step, object_name)

    @staticmethod
    def _execute(cursor, statement: str, step: str, object_name: Optional[str], parameters=None) -> None:
        try:
            if parameters is not None:
                cursor.execute(statement, parameters)
            else:
                cursor.execute(statement)
        except psycopg2.Error as e:
            raise ImportExecutionError(step, object_name, e) from e

    @staticmethod
    def _release_connection(conn) -> None:
        if conn is None:
            return
        try:
            conn.close()
        except psycopg2.Error as e:
            logger.warning(f"Error closing PostgreSQL connection: {e}")


def list_existing_tables(postgres_conn_id: str, target_schema: str) -> List[str]:
    """
    List the tables currently present in a target schema.

    Args:
        postgres_conn_id: Airflow connection ID for PostgreSQL
        target_schema: Schema to inspect

    Returns:
        Table names in alphabetical order
    """
    hook = PostgresHook(postgres_conn_id=postgres_conn_id)
    return [row[0] for row in hook.get_records(LIST_TABLES_SQL, parameters=(target_schema,))]
