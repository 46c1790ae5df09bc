"""
Import Error Module

This module defines the error kinds raised while reading a dbexport directory
and replaying it into PostgreSQL, plus the parse cursor that carries the
line/file context every header-file error message needs.
"""

from typing import Any, List, Optional


class ExportImportError(Exception):
    """Base class for all errors raised by the import engine."""


class ExportFormatError(ExportImportError):
    """The header file violates the dbexport grammar."""

    def __init__(self, message: str, source_name: str, line_index: int):
        """
        Initialize the format error.

        Args:
            message: Description of the violation
            source_name: Name of the file being parsed
            line_index: 0-based index of the offending line
        """
        self.message = message
        self.source_name = source_name
        self.line_index = line_index
        super().__init__(f"{source_name}, line {line_index + 1}: {message}")

    @property
    def line_number(self) -> int:
        return self.line_index + 1


class ExportConsistencyError(ExportImportError):
    """The export is well formed but internally inconsistent."""


class ValueInterpretationError(ExportImportError):
    """A raw unload value does not parse as its declared type."""

    def __init__(self, field_name: str, value: str, reason: str):
        self.field_name = field_name
        self.value = value
        self.reason = reason
        super().__init__(f"Unable to interpret '{value}' for field '{field_name}': {reason}")


class ImportExecutionError(ExportImportError):
    """A statement failed against the target database."""

    def __init__(self, step: str, object_name: Optional[str], cause: Any):
        self.step = step
        self.object_name = object_name
        self.cause = cause
        target = f" ({object_name})" if object_name else ""
        detail = str(cause).strip()
        super().__init__(f"{step} failed{target}: {detail}")


class SchemaNotEmptyError(ExportImportError):
    """Raised instead of importing into a schema that already holds tables."""

    def __init__(self, schema_name: str, existing_tables: List[str]):
        self.schema_name = schema_name
        self.existing_tables = list(existing_tables)
        preview = ', '.join(self.existing_tables[:10])
        more = f" (+{len(self.existing_tables) - 10} more)" if len(self.existing_tables) > 10 else ""
        super().__init__(
            f"Schema '{schema_name}' is not empty: found {preview}{more}. "
            f"Drop the existing objects or re-run with drop_existing enabled."
        )


class PhaseTransitionError(RuntimeError):
    """Illegal transition of the import state machine."""


class ParseCursor:
    """
    Position within a line-oriented source file.

    Sub-parsers share one cursor instead of passing line arrays and indexes
    around, so every error they raise can name the file and line.
    """

    def __init__(self, source_name: str, lines: List[str], index: int = 0):
        self.source_name = source_name
        self.lines = lines
        self.index = index

    @property
    def at_end(self) -> bool:
        return self.index >= len(self.lines)

    @property
    def line(self) -> str:
        """The current physical line (raises if the cursor is past the end)."""
        if self.at_end:
            raise self.error("Unexpected end of file")
        return self.lines[self.index]

    def peek(self, offset: int = 1) -> Optional[str]:
        position = self.index + offset
        if 0 <= position < len(self.lines):
            return self.lines[position]
        return None

    def advance(self, count: int = 1) -> None:
        self.index += count

    def error(self, message: str, line_index: Optional[int] = None) -> ExportFormatError:
        """Build (not raise) a format error positioned at the cursor."""
        if line_index is None:
            line_index = min(self.index, max(len(self.lines) - 1, 0))
        return ExportFormatError(message, self.source_name, line_index)

    def __repr__(self) -> str:
        return f"ParseCursor({self.source_name!r}, index={self.index}, lines={len(self.lines)})"
