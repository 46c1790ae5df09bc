"""
Table and Index Definition Module

In-memory model of the tables and indexes declared in a dbexport header,
together with the parsing of index declarations.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, List, Optional, Tuple

from dbexport_pg_import.errors import ExportConsistencyError, ExportFormatError, ParseCursor
from dbexport_pg_import.field_definition import FieldDefinition


def qualifier_prefix(database_name: str) -> str:
    """Owner qualifier that prefixes object names in the header, e.g. ``"demo".``"""
    return f'"{database_name}".'


def strip_qualifier(name: str, database_name: str) -> str:
    """
    Remove the ``"<database>".`` qualifier from an object name.

    Names without the qualifier are returned unchanged (trimmed).
    """
    name = name.strip()
    prefix = qualifier_prefix(database_name)
    if name.startswith(prefix):
        return name[len(prefix):]
    return name


@dataclass(frozen=True)
class Row:
    """One loaded record: scalar values in declared field order."""

    values: Tuple[Any, ...]

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __getitem__(self, index: int) -> Any:
        return self.values[index]


@dataclass
class TableDefinition:
    """A table block from the header plus, once loaded, its rows."""

    table_name: str
    unload_file: str
    num_rows: int
    fields: List[FieldDefinition]
    data: List[Row] = field(default_factory=list)
    longest_field_name: int = field(init=False, compare=False, default=0)
    loaded: bool = field(init=False, compare=False, default=False)

    def __post_init__(self):
        if not self.fields:
            raise ExportConsistencyError(f"Table {self.table_name} has no fields")
        if self.num_rows < 0:
            raise ExportConsistencyError(
                f"Table {self.table_name} declares a negative row count ({self.num_rows})"
            )
        self.longest_field_name = max(len(f.field_name) for f in self.fields)

    @property
    def num_fields(self) -> int:
        return len(self.fields)

    @property
    def field_names(self) -> List[str]:
        return [f.field_name for f in self.fields]

    def set_data(self, rows: List[Row]) -> None:
        """
        Attach loaded rows to the table.

        Rows may only be attached once; every row must have one value per field.
        """
        if self.loaded:
            raise ExportConsistencyError(f"Rows for {self.table_name} have already been loaded")
        for row in rows:
            if len(row) != self.num_fields:
                raise ExportConsistencyError(
                    f"Row for {self.table_name} has {len(row)} values, expected {self.num_fields}"
                )
        self.data = list(rows)
        self.loaded = True


@dataclass(frozen=True)
class IndexDefinition:
    """A ``create [cluster] index`` declaration."""

    index_name: str
    table_name: str
    field_names: Tuple[str, ...]
    clustered: bool = False

    unique: ClassVar[bool] = False

    @classmethod
    def construct_name(cls, clustered: bool) -> str:
        words = []
        if cls.unique:
            words.append('unique')
        if clustered:
            words.append('cluster')
        words.append('index')
        return ' '.join(words)

    @classmethod
    def parse(
        cls,
        text: str,
        database_name: str,
        cursor: Optional[ParseCursor] = None,
        clustered: bool = False,
    ) -> 'IndexDefinition':
        """
        Parse the remainder of an index declaration.

        The keyword prefix has already been removed, leaving text of the form
        ``<index-name> on "<db>".<table>(<col1>,<col2>,...)``; anything after
        the closing parenthesis is ignored.

        Args:
            text: Declaration text after the keyword prefix
            database_name: Database whose qualifier is stripped from names
            cursor: Parse cursor used to position error messages
            clustered: Whether the declaration used the cluster keyword

        Returns:
            Parsed index definition

        Raises:
            ExportFormatError: If the declaration does not match the expected shape
        """
        construct = cls.construct_name(clustered)

        def fail(message: str) -> ExportFormatError:
            full = f"Invalid {construct} definition: {message}"
            if cursor is not None:
                return cursor.error(full)
            return ExportFormatError(full, f'<{construct}>', 0)

        on_pos = text.find(' on ')
        if on_pos < 0:
            raise fail("missing ' on '")
        open_pos = text.find('(', on_pos + 4)
        if open_pos < 0:
            raise fail("missing '(' after table name")
        close_pos = text.find(')', open_pos + 1)
        if close_pos < 0:
            raise fail("missing ')' after column list")

        index_name = strip_qualifier(text[:on_pos], database_name)
        table_name = strip_qualifier(text[on_pos + 4:open_pos], database_name)
        columns = tuple(c.strip() for c in text[open_pos + 1:close_pos].split(','))

        if not index_name:
            raise fail("missing index name")
        if not table_name:
            raise fail("missing table name")
        if not all(columns):
            raise fail("empty column in column list")

        return cls(index_name, table_name, columns, clustered)


@dataclass(frozen=True)
class UniqueIndexDefinition(IndexDefinition):
    """A ``create unique [cluster] index`` declaration."""

    unique: ClassVar[bool] = True
