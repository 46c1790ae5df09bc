"""
PostgreSQL DDL Generation Module

This module renders the PostgreSQL statements used to replay a dbexport
model: schema, table, view and index creation, drops, the UNLOGGED/LOGGED
toggles used around bulk loads, and the parameterized INSERT per table.
"""

from typing import List, Sequence, Tuple

from dbexport_pg_import.errors import ExportConsistencyError
from dbexport_pg_import.table_definition import IndexDefinition, TableDefinition

DEFAULT_TABLESPACE = 'pg_default'

# Query used to check whether the target schema already holds tables
LIST_TABLES_SQL = """
SELECT table_name
FROM information_schema.tables
WHERE table_schema = %s
ORDER BY table_name
"""

_SORT_ORDERS = ('asc', 'desc')


class DDLGenerator:
    """Generate PostgreSQL DDL statements for an export model."""

    def __init__(self, target_schema: str = 'public', tablespace: str = DEFAULT_TABLESPACE):
        """
        Initialize the DDL generator.

        Args:
            target_schema: PostgreSQL schema that receives all objects
            tablespace: Tablespace used for index creation
        """
        self.target_schema = target_schema
        self.tablespace = tablespace

    def qualified_name(self, object_name: str) -> str:
        return f"{self._quote_identifier(self.target_schema)}.{self._quote_identifier(object_name)}"

    def generate_create_schema(self) -> str:
        return f"CREATE SCHEMA IF NOT EXISTS {self._quote_identifier(self.target_schema)}"

    def generate_create_table(self, table: TableDefinition) -> str:
        """
        Generate CREATE TABLE statement for PostgreSQL.

        Column names are padded to the table's longest field name so the
        types line up in logs.

        Args:
            table: Parsed table definition

        Returns:
            CREATE TABLE DDL statement
        """
        # Quoting adds two characters to every name
        pad_to = table.longest_field_name + 2
        column_definitions = [
            '    ' + field.render_column(self._quote_identifier(field.field_name), pad_to)
            for field in table.fields
        ]

        ddl_parts = [f"CREATE TABLE {self.qualified_name(table.table_name)} ("]
        ddl_parts.append(',\n'.join(column_definitions))
        ddl_parts.append(')')
        return '\n'.join(ddl_parts)

    def generate_drop_table(self, table_name: str, cascade: bool = True) -> str:
        """
        Generate DROP TABLE statement.

        Args:
            table_name: Table name to drop
            cascade: Whether to use CASCADE option

        Returns:
            DROP TABLE DDL statement
        """
        cascade_clause = " CASCADE" if cascade else ""
        return f"DROP TABLE IF EXISTS {self.qualified_name(table_name)}{cascade_clause}"

    def generate_drop_view(self, view_name: str) -> str:
        return f"DROP VIEW IF EXISTS {self.qualified_name(view_name)}"

    def generate_create_view(self, synonym: str, table_name: str) -> str:
        """Generate the view that stands in for an export synonym."""
        return (
            f"CREATE VIEW {self.qualified_name(synonym)} AS "
            f"SELECT * FROM {self.qualified_name(table_name)}"
        )

    def generate_index(self, index: IndexDefinition) -> str:
        """
        Generate CREATE [UNIQUE] INDEX statement.

        Column order is kept exactly as declared. PostgreSQL has no clustered
        indexes, so the cluster keyword of the export is not rendered.

        Args:
            index: Parsed index or unique index definition

        Returns:
            CREATE INDEX DDL statement
        """
        unique_clause = "UNIQUE " if index.unique else ""
        columns = ','.join(self._index_column(entry) for entry in index.field_names)
        return (
            f"CREATE {unique_clause}INDEX {self._quote_identifier(index.index_name)} "
            f"ON {self.qualified_name(index.table_name)} ({columns}) "
            f"TABLESPACE {self._quote_identifier(self.tablespace)}"
        )

    def generate_set_unlogged(self, table_name: str) -> str:
        return f"ALTER TABLE {self.qualified_name(table_name)} SET UNLOGGED"

    def generate_set_logged(self, table_name: str) -> str:
        return f"ALTER TABLE {self.qualified_name(table_name)} SET LOGGED"

    def generate_row_count(self, table_name: str) -> str:
        return f"SELECT COUNT(*) FROM {self.qualified_name(table_name)}"

    def generate_insert(
        self,
        table: TableDefinition,
        skip_columns: Sequence[str] = (),
    ) -> Tuple[str, List[int]]:
        """
        Generate the parameterized INSERT statement for a table.

        Args:
            table: Parsed table definition
            skip_columns: Field names left out of the statement

        Returns:
            Tuple of (INSERT statement with %s placeholders, indexes of the
            fields that are bound, in parameter order)
        """
        skipped = set(skip_columns)
        bound = [i for i, f in enumerate(table.fields) if f.field_name not in skipped]
        if not bound:
            raise ExportConsistencyError(f"Every column of {table.table_name} is skipped; nothing to insert")

        columns = ', '.join(self._quote_identifier(table.fields[i].field_name) for i in bound)
        placeholders = ', '.join(['%s'] * len(bound))
        statement = f"INSERT INTO {self.qualified_name(table.table_name)} ({columns}) VALUES ({placeholders})"
        return statement, bound

    def _index_column(self, entry: str) -> str:
        """Quote an index column, keeping an ASC/DESC suffix if present."""
        parts = entry.split()
        if len(parts) == 2 and parts[1].lower() in _SORT_ORDERS:
            return f"{self._quote_identifier(parts[0])} {parts[1].upper()}"
        return self._quote_identifier(entry)

    def _quote_identifier(self, identifier: str) -> str:
        """
        Quote a PostgreSQL identifier safely.

        Always quotes and escapes identifiers to prevent SQL injection and
        handle reserved words, mixed case, and special characters.

        Args:
            identifier: Identifier to quote

        Returns:
            Safely quoted identifier
        """
        # Escape embedded double quotes by doubling them (PostgreSQL standard)
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'
