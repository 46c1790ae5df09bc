"""
Field Definition Module

This module parses a single column declaration from a dbexport header file
into a typed field descriptor. A field knows how to coerce its raw unload
text into a Python scalar, how to render itself as a PostgreSQL column
clause, and how to prepare a value for parameter binding.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional
import logging
import re

from dbexport_pg_import.errors import ExportFormatError, ParseCursor, ValueInterpretationError

logger = logging.getLogger(__name__)

DATE_FORMAT = '%m/%d/%Y'
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


class FieldType(Enum):
    """Column types understood in a dbexport header."""

    SMALLINT = 'smallint'
    INTEGER = 'integer'
    BIGINT = 'bigint'
    DATE = 'date'
    TIMESTAMP = 'datetime year to second'
    CHAR = 'char'
    VARCHAR = 'varchar'
    DECIMAL = 'decimal'
    CLOB = 'text'

    @property
    def is_character(self) -> bool:
        return self in (FieldType.CHAR, FieldType.VARCHAR, FieldType.CLOB)


# Export types that need no size arguments
SIMPLE_TYPES = {
    'smallint': FieldType.SMALLINT,
    'integer': FieldType.INTEGER,
    'bigint': FieldType.BIGINT,
    'date': FieldType.DATE,
    'text': FieldType.CLOB,
}

# PostgreSQL rendering of each export type
PG_TYPE_MAPPING = {
    FieldType.SMALLINT: 'SMALLINT',
    FieldType.INTEGER: 'INTEGER',
    FieldType.BIGINT: 'BIGINT',
    FieldType.DATE: 'DATE',
    FieldType.TIMESTAMP: 'TIMESTAMP(0)',
    FieldType.CHAR: 'CHAR({length})',
    FieldType.VARCHAR: 'VARCHAR({length})',
    FieldType.DECIMAL: 'DECIMAL({length},{precision})',
    FieldType.CLOB: 'TEXT',
}

_SIZED_TYPE = re.compile(r'^(char|varchar)\((\d+)\)$')
_DECIMAL_TYPE = re.compile(r'^decimal\((\d+),\s*(\d+)\)$')


def _parse_date(value: str):
    return datetime.strptime(value, DATE_FORMAT).date()


def _parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def _keep(value: str) -> str:
    return value


_COERCERS: Dict[FieldType, Callable[[str], Any]] = {
    FieldType.SMALLINT: int,
    FieldType.INTEGER: int,
    FieldType.BIGINT: int,
    FieldType.DECIMAL: float,
    FieldType.DATE: _parse_date,
    FieldType.TIMESTAMP: _parse_timestamp,
    FieldType.CHAR: _keep,
    FieldType.VARCHAR: _keep,
    FieldType.CLOB: _keep,
}


def truncate_to_byte_length(value: str, max_bytes: int, encoding: str = 'utf-8') -> str:
    """
    Drop characters from the end of a string until its encoded size fits.

    Args:
        value: String to shorten
        max_bytes: Maximum encoded length in bytes
        encoding: Encoding used to measure the length

    Returns:
        The longest prefix of value whose encoded form fits in max_bytes
    """
    truncated = value
    while truncated and len(truncated.encode(encoding)) > max_bytes:
        truncated = truncated[:-1]
    return truncated


def _format_error(cursor: Optional[ParseCursor], message: str) -> ExportFormatError:
    if cursor is not None:
        return cursor.error(message)
    return ExportFormatError(message, '<field definition>', 0)


@dataclass(frozen=True)
class FieldDefinition:
    """One column of an exported table."""

    field_name: str
    field_type: FieldType
    length: int = 0
    precision: int = 0
    required: bool = False

    @classmethod
    def parse(cls, text: str, cursor: Optional[ParseCursor] = None) -> 'FieldDefinition':
        """
        Parse a column declaration such as ``amount decimal(8,2) not null,``.

        Args:
            text: The declaration line
            cursor: Parse cursor used to position error messages

        Returns:
            Parsed FieldDefinition

        Raises:
            ExportFormatError: If the declaration is malformed or uses an
                unsupported data type
        """
        stripped = text.strip()
        field_name, _, remainder = stripped.partition(' ')
        parts = remainder.split(None, 1)
        if not field_name or not parts:
            raise _format_error(cursor, f"Missing data type in field definition '{stripped}'")

        type_token = parts[0]
        if type_token.endswith(','):
            type_token = type_token[:-1]
        rest = parts[1] if len(parts) > 1 else ''
        required = 'not null' in rest

        if type_token in SIMPLE_TYPES:
            return cls(field_name, SIMPLE_TYPES[type_token], required=required)

        sized = _SIZED_TYPE.match(type_token)
        if sized:
            field_type = FieldType.CHAR if sized.group(1) == 'char' else FieldType.VARCHAR
            return cls(field_name, field_type, length=int(sized.group(2)), required=required)

        decimal = _DECIMAL_TYPE.match(type_token)
        if decimal:
            return cls(
                field_name,
                FieldType.DECIMAL,
                length=int(decimal.group(1)),
                precision=int(decimal.group(2)),
                required=required,
            )

        if type_token == 'datetime':
            if 'year to second' not in rest:
                raise _format_error(
                    cursor, f"Unsupported datetime precision for field '{field_name}': {rest.strip()}"
                )
            return cls(field_name, FieldType.TIMESTAMP, required=required)

        raise _format_error(cursor, f"Unsupported data type '{type_token}' for field '{field_name}'")

    @property
    def pg_type(self) -> str:
        """PostgreSQL type for this field, e.g. ``VARCHAR(10)``."""
        return PG_TYPE_MAPPING[self.field_type].format(length=self.length, precision=self.precision)

    def interpret(self, value: str) -> Any:
        """
        Convert a raw unload value into a scalar of this field's type.

        Empty strings become None. Dates use MM/dd/yyyy and timestamps use
        yyyy-MM-dd HH:mm:ss; character types are returned unchanged.

        Raises:
            ValueInterpretationError: If the value does not parse
        """
        if value == '':
            return None
        try:
            return _COERCERS[self.field_type](value)
        except ValueError as e:
            raise ValueInterpretationError(self.field_name, value, str(e)) from e

    def bind_value(self, value: Any) -> Any:
        """
        Prepare an interpreted value for binding to an INSERT parameter.

        Character values longer (in UTF-8 bytes) than the declared length are
        truncated with a warning so the row can still be loaded.
        """
        if not isinstance(value, str) or self.length <= 0 or not self.field_type.is_character:
            return value

        if len(value.encode('utf-8')) <= self.length:
            return value

        truncated = truncate_to_byte_length(value, self.length)
        logger.warning(
            f"Truncating value for {self.field_name} ({self.pg_type}): "
            f"'{value}' -> '{truncated}'"
        )
        return truncated

    def render_column(self, quoted_name: str, pad_to: int = 0) -> str:
        """
        Render this field as a column clause for CREATE TABLE.

        Args:
            quoted_name: Already-quoted column identifier
            pad_to: Width the name is padded to so types line up

        Returns:
            Column clause, e.g. ``"id"    INTEGER NOT NULL``
        """
        clause = f"{quoted_name.ljust(pad_to)} {self.pg_type}"
        if self.required:
            clause += ' NOT NULL'
        return clause
