"""
Export Header Parser Module

This module reads a dbexport directory: it locates the header (.sql) file
and the unload (.unl) files, then interprets the header line by line to build
the in-memory ExportModel (database name, delimiter, tables, synonyms and
indexes). Row data is loaded separately by the unload_loader module.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type, Union
import logging

from dbexport_pg_import.errors import ExportConsistencyError, ParseCursor
from dbexport_pg_import.field_definition import FieldDefinition
from dbexport_pg_import.table_definition import (
    IndexDefinition,
    TableDefinition,
    UniqueIndexDefinition,
    qualifier_prefix,
    strip_qualifier,
)

logger = logging.getLogger(__name__)

HEADER_SUFFIX = '.sql'
UNLOAD_SUFFIX = '.unl'
DEFAULT_DELIMITER = '|'

DATABASE_PREFIX = '{ DATABASE '
TABLE_PREFIX = '{ TABLE '
SYNONYM_PREFIX = 'create synonym '
CREATE_PREFIX = 'create '
UNLOAD_PREFIX = '{ unload file name = '
ROWS_MARKER = 'number of rows = '
CREATE_TABLE_PREFIX = 'create table '
DELIMITER_MARKER = 'delimiter '

# (prefix, definition class, clustered) - checked in order
INDEX_PREFIXES: List[Tuple[str, Type[IndexDefinition], bool]] = [
    ('create unique cluster index ', UniqueIndexDefinition, True),
    ('create unique index ', UniqueIndexDefinition, False),
    ('create cluster index ', IndexDefinition, True),
    ('create index ', IndexDefinition, False),
]


@dataclass
class ExportModel:
    """Everything declared by one dbexport header."""

    database_name: Optional[str] = None
    delimiter: str = DEFAULT_DELIMITER
    tables: List[TableDefinition] = field(default_factory=list)
    synonyms: Dict[str, str] = field(default_factory=dict)
    indexes: List[IndexDefinition] = field(default_factory=list)
    unique_indexes: List[UniqueIndexDefinition] = field(default_factory=list)

    def get_table(self, table_name: str) -> Optional[TableDefinition]:
        for table in self.tables:
            if table.table_name == table_name:
                return table
        return None

    @property
    def total_rows(self) -> int:
        return sum(len(t.data) for t in self.tables)

    def summary(self) -> Dict[str, object]:
        """Plain-dict summary suitable for logging or XCom."""
        return {
            'database_name': self.database_name,
            'delimiter': self.delimiter,
            'tables': [
                {'table_name': t.table_name, 'declared_rows': t.num_rows, 'loaded_rows': len(t.data)}
                for t in self.tables
            ],
            'synonyms': dict(self.synonyms),
            'index_count': len(self.indexes),
            'unique_index_count': len(self.unique_indexes),
        }


class _BlockState(Enum):
    BEFORE_UNLOAD_LINE = 'before-unload-line'
    AFTER_CREATE_TABLE = 'after-create-table'
    GATHERING_FIELDS = 'gathering-fields'
    DONE = 'done'


def locate_export_files(export_dir: Union[str, Path]) -> Tuple[Path, List[Path]]:
    """
    Find the header file and unload files of an export directory.

    Args:
        export_dir: Directory produced by dbexport

    Returns:
        Tuple of (header file path, sorted list of unload file paths)

    Raises:
        ExportConsistencyError: If the directory is missing, holds no header or
            more than one header, or contains a subdirectory or any other kind
            of file
    """
    directory = Path(export_dir)
    if not directory.is_dir():
        raise ExportConsistencyError(f"Export directory {directory} does not exist")

    header: Optional[Path] = None
    unload_files: List[Path] = []

    for entry in sorted(directory.iterdir()):
        if entry.is_dir():
            raise ExportConsistencyError(f"Unexpected directory in export directory: {entry.name}")
        suffix = entry.suffix.lower()
        if suffix == HEADER_SUFFIX:
            if header is not None:
                raise ExportConsistencyError(
                    f"Export directory {directory} contains more than one header file "
                    f"({header.name}, {entry.name})"
                )
            header = entry
        elif suffix == UNLOAD_SUFFIX:
            unload_files.append(entry)
        else:
            raise ExportConsistencyError(f"Unexpected file in export directory: {entry.name}")

    if header is None:
        raise ExportConsistencyError(f"No {HEADER_SUFFIX} header file found in {directory}")

    return header, unload_files


class ExportParser:
    """Interpret a dbexport header file."""

    def __init__(self, export_dir: Union[str, Path, None] = None, encoding: str = 'utf-8'):
        """
        Initialize the parser.

        Args:
            export_dir: Export directory (only needed by parse())
            encoding: Text encoding of the header file
        """
        self.export_dir = Path(export_dir) if export_dir is not None else None
        self.encoding = encoding

    def parse(self) -> ExportModel:
        """
        Locate and parse the header file of the export directory.

        Returns:
            ExportModel with tables, synonyms and indexes (rows not yet loaded)
        """
        if self.export_dir is None:
            raise ValueError("ExportParser.parse() requires an export directory")

        header, unload_files = locate_export_files(self.export_dir)
        logger.info(f"Parsing export header {header.name} ({len(unload_files)} unload files)")

        try:
            lines = header.read_text(encoding=self.encoding).splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ExportConsistencyError(f"Unable to read header file {header.name}: {e}") from e

        model = self.parse_lines(lines, header.name)

        logger.info(
            f"Parsed database {model.database_name}: {len(model.tables)} tables, "
            f"{len(model.synonyms)} synonyms, {len(model.indexes)} indexes, "
            f"{len(model.unique_indexes)} unique indexes"
        )
        return model

    def parse_lines(self, lines: List[str], source_name: str) -> ExportModel:
        """
        Parse header lines into an ExportModel.

        Args:
            lines: Physical lines of the header file
            source_name: File name used in error messages

        Returns:
            Parsed ExportModel
        """
        cursor = ParseCursor(source_name, lines)
        model = ExportModel()

        while not cursor.at_end:
            line = cursor.line

            if line.startswith(DATABASE_PREFIX):
                self._parse_database(cursor, model)
                cursor.advance()
            elif line.startswith(TABLE_PREFIX):
                self._require_database(cursor, model, 'TABLE')
                table = self._parse_table_block(cursor, model.database_name)
                if model.get_table(table.table_name) is not None:
                    raise cursor.error(f"Duplicate table definition for {table.table_name}")
                model.tables.append(table)
            elif line.startswith(SYNONYM_PREFIX):
                self._require_database(cursor, model, 'synonym')
                self._parse_synonym(cursor, model)
                cursor.advance()
            elif self._index_prefix(line) is not None:
                self._require_database(cursor, model, 'index')
                self._parse_index(cursor, model)
            elif line.startswith(CREATE_PREFIX):
                raise cursor.error(f"Unsupported construct: {line.strip()}")
            else:
                cursor.advance()

        return model

    @staticmethod
    def _index_prefix(line: str) -> Optional[Tuple[str, Type[IndexDefinition], bool]]:
        for entry in INDEX_PREFIXES:
            if line.startswith(entry[0]):
                return entry
        return None

    @staticmethod
    def _require_database(cursor: ParseCursor, model: ExportModel, construct: str) -> None:
        if model.database_name is None:
            raise cursor.error(f"{construct} definition found before DATABASE definition")

    def _parse_database(self, cursor: ParseCursor, model: ExportModel) -> None:
        """Handle ``{ DATABASE <name> [delimiter <c>] }``."""
        if model.database_name is not None:
            raise cursor.error("Duplicate DATABASE definition")

        rest = cursor.line[len(DATABASE_PREFIX):].lstrip()
        name = rest.split(' ', 1)[0]
        if not name or name == '}':
            raise cursor.error("Missing database name in DATABASE definition")
        model.database_name = name

        marker = rest.find(DELIMITER_MARKER)
        if marker >= 0:
            position = marker + len(DELIMITER_MARKER)
            if position >= len(rest) or rest[position].isspace():
                raise cursor.error("Missing delimiter character in DATABASE definition")
            model.delimiter = rest[position]

        logger.debug(f"Database {name}, delimiter '{model.delimiter}'")

    def _parse_table_block(self, cursor: ParseCursor, database_name: str) -> TableDefinition:
        """
        Consume a ``{ TABLE ... }`` block through the closing parenthesis of
        its create table statement, leaving the cursor on the next line.
        """
        header_index = cursor.index
        qualified_name = cursor.line[len(TABLE_PREFIX):].lstrip().split(' ', 1)[0]
        if not qualified_name or qualified_name == '}':
            raise cursor.error("Missing table name in TABLE definition")
        table_name = strip_qualifier(qualified_name, database_name)
        cursor.advance()

        state = _BlockState.BEFORE_UNLOAD_LINE
        unload: Optional[Tuple[str, int]] = None
        fields: List[FieldDefinition] = []

        while not cursor.at_end and state is not _BlockState.DONE:
            stripped = cursor.line.strip()

            if not stripped:
                pass
            elif state is _BlockState.GATHERING_FIELDS:
                if stripped.startswith(')'):
                    state = _BlockState.DONE
                else:
                    fields.append(FieldDefinition.parse(stripped, cursor))
            elif stripped.startswith(UNLOAD_PREFIX):
                if state is not _BlockState.BEFORE_UNLOAD_LINE:
                    raise cursor.error(f"Unexpected unload file line in definition of {table_name}")
                unload = self._parse_unload_line(cursor, stripped)
            elif stripped.startswith(CREATE_TABLE_PREFIX):
                if state is not _BlockState.BEFORE_UNLOAD_LINE:
                    raise cursor.error(f"Unexpected create table in definition of {table_name}")
                if unload is None:
                    raise cursor.error(f"create table for {table_name} found before unload file line")
                create_parts = stripped[len(CREATE_TABLE_PREFIX):].split()
                create_name = create_parts[0] if create_parts else ''
                if create_name != qualified_name:
                    raise cursor.error(
                        f"create table names '{create_name}' but TABLE block is for '{qualified_name}'"
                    )
                state = _BlockState.AFTER_CREATE_TABLE
            elif stripped == '(':
                if state is not _BlockState.AFTER_CREATE_TABLE:
                    raise cursor.error(f"Unexpected '(' in definition of {table_name}")
                state = _BlockState.GATHERING_FIELDS
            else:
                raise cursor.error(f"Unexpected line in definition of {table_name}: {stripped}")

            cursor.advance()

        if state is not _BlockState.DONE:
            raise cursor.error(
                f"End of file reached before definition of {table_name} was complete",
                line_index=header_index,
            )
        if not fields:
            raise cursor.error(f"Table {table_name} has no fields", line_index=header_index)

        unload_file, num_rows = unload
        return TableDefinition(table_name, unload_file, num_rows, fields)

    @staticmethod
    def _parse_unload_line(cursor: ParseCursor, stripped: str) -> Tuple[str, int]:
        """Handle ``{ unload file name = <file> number of rows = <n> }``."""
        rest = stripped[len(UNLOAD_PREFIX):]
        unload_file = rest.split(' ', 1)[0]
        if not unload_file:
            raise cursor.error("Missing unload file name")

        marker = rest.find(ROWS_MARKER)
        if marker < 0:
            raise cursor.error("Missing 'number of rows' in unload file line")
        count_parts = rest[marker + len(ROWS_MARKER):].split()
        try:
            num_rows = int(count_parts[0])
        except (IndexError, ValueError):
            raise cursor.error("Invalid 'number of rows' in unload file line") from None
        if num_rows < 0:
            raise cursor.error(f"Negative row count {num_rows} in unload file line")

        return unload_file, num_rows

    @staticmethod
    def _parse_synonym(cursor: ParseCursor, model: ExportModel) -> None:
        """Handle ``create synonym "<db>".<syn> for "<db>".<table>;``."""
        stripped = cursor.line.rstrip()
        if not stripped.endswith(';'):
            raise cursor.error("Synonym definition must end with ';'")

        body = stripped[len(SYNONYM_PREFIX):-1]
        parts = body.split(' for ')
        if len(parts) != 2:
            raise cursor.error(f"Invalid synonym definition: {stripped}")

        prefix = qualifier_prefix(model.database_name)
        names = []
        for part in parts:
            part = part.strip()
            if not part.startswith(prefix):
                raise cursor.error(f"Synonym name '{part}' is not qualified with {prefix}")
            names.append(strip_qualifier(part, model.database_name))

        synonym, table = names
        model.synonyms[synonym] = table

    def _parse_index(self, cursor: ParseCursor, model: ExportModel) -> None:
        """
        Handle the four index declaration forms, which may continue onto one
        more physical line before the terminating ';'.
        """
        prefix, definition_class, clustered = self._index_prefix(cursor.line)
        text = cursor.line[len(prefix):]
        consumed = 1

        if ';' not in text:
            continuation = cursor.peek()
            if continuation is None:
                raise cursor.error(f"Missing ';' after {definition_class.construct_name(clustered)} definition")
            text = f"{text.rstrip()} {continuation.strip()}"
            consumed = 2
            if ';' not in text:
                raise cursor.error(f"Missing ';' after {definition_class.construct_name(clustered)} definition")

        text = text[:text.index(';')]
        definition = definition_class.parse(text, model.database_name, cursor, clustered)

        if definition.unique:
            model.unique_indexes.append(definition)
        else:
            model.indexes.append(definition)

        cursor.advance(consumed)


def parse_export(export_dir: Union[str, Path], encoding: str = 'utf-8') -> ExportModel:
    """
    Convenience function to parse the header of an export directory.

    Args:
        export_dir: Directory produced by dbexport
        encoding: Text encoding of the header file

    Returns:
        Parsed ExportModel (rows not yet loaded)
    """
    return ExportParser(export_dir, encoding=encoding).parse()
