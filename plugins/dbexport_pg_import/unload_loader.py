"""
Unload File Loader Module

This module reads the delimited unload (.unl) files of a dbexport directory
and converts them into typed rows for each TableDefinition.

Unload records end every field with the delimiter, and a value may contain
an embedded newline, so one logical record can span several physical lines.
A backslash escapes the character that follows it (delimiter, backslash or
newline).
"""

from pathlib import Path
from typing import List, NamedTuple, Union
import logging

from dbexport_pg_import.errors import ExportConsistencyError, ValueInterpretationError
from dbexport_pg_import.export_parser import DEFAULT_DELIMITER, ExportModel
from dbexport_pg_import.table_definition import Row, TableDefinition

logger = logging.getLogger(__name__)

ESCAPE = '\\'


class LogicalRecord(NamedTuple):
    """A record after merging, with the index of its first physical line."""

    line_index: int
    text: str


def count_unescaped_delimiters(line: str, delimiter: str = DEFAULT_DELIMITER) -> int:
    """
    Count delimiters that are not escaped.

    A delimiter is escaped when it directly follows an odd-length run of
    backslashes; an even-length run escapes only the backslashes themselves.

    Examples:
        >>> count_unescaped_delimiters('a|b|c')
        2
        >>> count_unescaped_delimiters('a\\\\|b')
        0
        >>> count_unescaped_delimiters('a\\\\\\\\|b')
        1
    """
    count = 0
    escape_run = 0
    for ch in line:
        if ch == ESCAPE:
            escape_run += 1
            continue
        if ch == delimiter and escape_run % 2 == 0:
            count += 1
        escape_run = 0
    return count


def merge_physical_lines(
    lines: List[str],
    num_fields: int,
    delimiter: str = DEFAULT_DELIMITER,
) -> List[LogicalRecord]:
    """
    Greedily join physical lines into logical records.

    A line that already holds at least num_fields unescaped delimiters is a
    record by itself. Otherwise following lines are appended (joined with a
    newline) until the running delimiter count reaches num_fields. Lines left
    over at end of file form a final record; blank records at the very end
    are dropped.

    Args:
        lines: Physical lines of the unload file
        num_fields: Number of fields in the table
        delimiter: Field delimiter

    Returns:
        Logical records in file order
    """
    records: List[LogicalRecord] = []
    index = 0
    total = len(lines)

    while index < total:
        start = index
        parts = [lines[index]]
        count = count_unescaped_delimiters(lines[index], delimiter)
        index += 1

        while count < num_fields and index < total:
            parts.append(lines[index])
            count += count_unescaped_delimiters(lines[index], delimiter)
            index += 1

        records.append(LogicalRecord(start, '\n'.join(parts)))

    while records and not records[-1].text.strip():
        records.pop()

    return records


def split_record(record: str, delimiter: str = DEFAULT_DELIMITER) -> List[str]:
    """
    Split a logical record into raw field values.

    Escape sequences are resolved (``\\|`` becomes ``|``, ``\\\\`` becomes
    ``\\``). The terminating delimiter does not produce an extra empty value,
    but trailing text without a delimiter does form a value.
    """
    values: List[str] = []
    current: List[str] = []
    index = 0
    length = len(record)

    while index < length:
        ch = record[index]
        if ch == ESCAPE and index + 1 < length:
            current.append(record[index + 1])
            index += 2
            continue
        if ch == delimiter:
            values.append(''.join(current))
            current = []
        else:
            current.append(ch)
        index += 1

    if current:
        values.append(''.join(current))

    return values


class UnloadFileLoader:
    """Populate TableDefinitions with the rows of their unload files."""

    def __init__(
        self,
        export_dir: Union[str, Path],
        delimiter: str = DEFAULT_DELIMITER,
        encoding: str = 'utf-8',
    ):
        """
        Initialize the loader.

        Args:
            export_dir: Directory holding the unload files
            delimiter: Field delimiter declared by the export
            encoding: Text encoding of the unload files
        """
        self.export_dir = Path(export_dir)
        self.delimiter = delimiter
        self.encoding = encoding

    def load_all(self, model: ExportModel) -> int:
        """
        Load every table of the model, in declaration order.

        Returns:
            Total number of rows loaded
        """
        total = 0
        for table in model.tables:
            total += self.load_table(table)
        logger.info(f"Loaded {total:,} rows for {len(model.tables)} tables")
        return total

    def read_lines(self, table: TableDefinition) -> List[str]:
        path = self.export_dir / table.unload_file
        try:
            with open(path, 'r', encoding=self.encoding, newline='') as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ExportConsistencyError(
                f"Unable to read unload file {table.unload_file} for {table.table_name}: {e}"
            ) from e

        lines = content.split('\n')
        if lines and lines[-1] == '':
            lines.pop()
        return [line[:-1] if line.endswith('\r') else line for line in lines]

    def load_table(self, table: TableDefinition) -> int:
        """
        Load, merge and interpret one table's unload file.

        Returns:
            Number of rows loaded

        Raises:
            ExportConsistencyError: If the file is unreadable, holds fewer
                records than declared, or a record has the wrong field count
            ValueInterpretationError: If a value does not parse as its type
        """
        lines = self.read_lines(table)
        records = merge_physical_lines(lines, table.num_fields, self.delimiter)

        if len(records) < table.num_rows:
            raise ExportConsistencyError(
                f"{table.unload_file} has {len(records)} lines, but {table.table_name} "
                f"indicates it should have {table.num_rows} rows"
            )
        if len(records) > table.num_rows:
            logger.warning(
                f"{table.unload_file} has {len(records)} lines, more than the {table.num_rows} "
                f"rows declared for {table.table_name}; loading all of them"
            )

        rows = [self._interpret_record(table, record) for record in records]
        table.set_data(rows)

        logger.info(f"✓ Loaded {len(rows):,} rows for {table.table_name} from {table.unload_file}")
        return len(rows)

    def _interpret_record(self, table: TableDefinition, record: LogicalRecord) -> Row:
        values = split_record(record.text, self.delimiter)
        if len(values) != table.num_fields:
            raise ExportConsistencyError(
                f"{table.unload_file}, line {record.line_index + 1}: found {len(values)} values, "
                f"but {table.table_name} has {table.num_fields} fields"
            )

        try:
            return Row(tuple(f.interpret(v) for f, v in zip(table.fields, values)))
        except ValueInterpretationError as e:
            raise ValueInterpretationError(
                e.field_name,
                e.value,
                f"{e.reason} (table {table.table_name}, {table.unload_file} line {record.line_index + 1})",
            ) from e
