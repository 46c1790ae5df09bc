"""
Informix dbexport to PostgreSQL Import Utilities

This package rebuilds an Informix dbexport directory (one .sql header file
plus one .unl unload file per table) as a PostgreSQL schema using Apache
Airflow.

Modules:
- errors: Exception hierarchy and the header parse cursor
- field_definition: Column declarations, type mapping and value coercion
- table_definition: Tables, rows, indexes and unique indexes
- export_parser: Parse the header file into an ExportModel
- unload_loader: Read unload files into typed rows
- ddl_generator: Generate PostgreSQL DDL and INSERT statements
- import_config: Tunable settings from env vars and DAG params
- import_state: Phase tracking for an import run
- schema_importer: Replay an ExportModel into PostgreSQL
- pipeline: Parse, load and import in one call
- validation: Verify row counts after an import

Configuration Options:
- USE_UNLOGGED_TABLES=false: Keep tables logged while inserting
- IMPORT_TABLESPACE=name: Tablespace for created indexes
- INSERT_BATCH_SIZE=N: Rows per execute_batch round trip
"""

__version__ = "1.0.0"

# Export model
from dbexport_pg_import import errors
from dbexport_pg_import import field_definition
from dbexport_pg_import import table_definition
from dbexport_pg_import import export_parser
from dbexport_pg_import import unload_loader

# PostgreSQL side
from dbexport_pg_import import ddl_generator
from dbexport_pg_import import import_config
from dbexport_pg_import import import_state
from dbexport_pg_import import schema_importer
from dbexport_pg_import import pipeline
from dbexport_pg_import import validation

__all__ = [
    "errors",
    "field_definition",
    "table_definition",
    "export_parser",
    "unload_loader",
    "ddl_generator",
    "import_config",
    "import_state",
    "schema_importer",
    "pipeline",
    "validation",
]
