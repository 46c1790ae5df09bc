"""
Import Pipeline Module

Runs a complete import: parse the export header, load every unload file,
then replay the model into PostgreSQL. Parsing and loading finish before the
first statement reaches the target, so a malformed export never leaves the
target schema partially modified.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
import time

from dbexport_pg_import.errors import ExportImportError, ImportExecutionError, SchemaNotEmptyError
from dbexport_pg_import.export_parser import ExportModel, ExportParser
from dbexport_pg_import.import_config import ImportConfig, validate_sql_identifier
from dbexport_pg_import.import_state import ImportPhase, ImportState
from dbexport_pg_import.schema_importer import STEP_CHECK_EMPTY, STEP_INSERT, SchemaImporter
from dbexport_pg_import.unload_loader import UnloadFileLoader

logger = logging.getLogger(__name__)

STEP_PARSE = 'parse export header'
STEP_LOAD = 'load unload files'

# Step that was running when a non-database error surfaced in a given phase
_STEP_BY_PHASE = {
    None: STEP_PARSE,
    ImportPhase.PARSED: STEP_LOAD,
}


@dataclass
class ImportResult:
    """Outcome of one import run, for display to the operator."""

    export_dir: str
    target_schema: str
    state: ImportState
    database_name: Optional[str] = None
    rows_inserted: Dict[str, int] = field(default_factory=dict)
    elapsed_time_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.state.is_complete

    @property
    def message(self) -> str:
        if self.success:
            total = sum(self.rows_inserted.values())
            return (
                f"Imported {len(self.rows_inserted)} tables ({total:,} rows) from {self.export_dir} "
                f"into schema {self.target_schema} in {self.elapsed_time_seconds:.2f}s"
            )
        target = f" [{self.state.failed_object}]" if self.state.failed_object else ""
        return f"Import into {self.target_schema} failed during {self.state.failed_step}{target}: {self.state.error}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'export_dir': self.export_dir,
            'target_schema': self.target_schema,
            'database_name': self.database_name,
            'rows_inserted': dict(self.rows_inserted),
            'elapsed_time_seconds': self.elapsed_time_seconds,
            'message': self.message,
            **self.state.to_dict(),
        }


def load_export(
    export_dir: Union[str, Path],
    config: Optional[ImportConfig] = None,
    state: Optional[ImportState] = None,
) -> ExportModel:
    """
    Parse an export directory and load all of its rows.

    Args:
        export_dir: Directory produced by dbexport
        config: Import settings (only the encoding is used here)
        state: Run state to advance through PARSED and LOADED

    Returns:
        ExportModel with every table's rows attached
    """
    config = config or ImportConfig.from_env()
    model = ExportParser(export_dir, encoding=config.encoding).parse()
    if state is not None:
        state.advance(ImportPhase.PARSED)

    loader = UnloadFileLoader(export_dir, delimiter=model.delimiter, encoding=config.encoding)
    loader.load_all(model)
    if state is not None:
        state.advance(ImportPhase.LOADED)

    return model


def import_export(
    export_dir: Union[str, Path],
    postgres_conn_id: str,
    target_schema: str,
    drop_existing: bool = False,
    config: Optional[ImportConfig] = None,
) -> ImportResult:
    """
    Import a dbexport directory into a PostgreSQL schema.

    Args:
        export_dir: Directory produced by dbexport
        postgres_conn_id: Airflow connection ID for PostgreSQL
        target_schema: Schema that receives the imported objects
        drop_existing: Drop the export's views and tables first instead of
            requiring an empty schema
        config: Import settings (defaults from the environment)

    Returns:
        ImportResult describing success or the failing step/object/error
    """
    validate_sql_identifier(target_schema, "target schema")
    config = config or ImportConfig.from_env()
    state = ImportState()
    start_time = time.time()
    result = ImportResult(export_dir=str(export_dir), target_schema=target_schema, state=state)

    logger.info(
        f"Starting import of {export_dir} into {target_schema}"
        f"{' (dropping existing objects)' if drop_existing else ''}"
    )

    try:
        model = load_export(export_dir, config, state)
        result.database_name = model.database_name

        importer = SchemaImporter(postgres_conn_id, target_schema, drop_existing=drop_existing, config=config)
        result.rows_inserted = importer.run(model, state)
    except ImportExecutionError as e:
        state.fail(e.step, e.cause, e.object_name)
    except SchemaNotEmptyError as e:
        state.fail(STEP_CHECK_EMPTY, e, e.schema_name)
    except ExportImportError as e:
        state.fail(_STEP_BY_PHASE.get(state.phase, STEP_INSERT), e)

    result.elapsed_time_seconds = time.time() - start_time
    if result.success:
        logger.info(f"✓ {result.message}")
    return result
