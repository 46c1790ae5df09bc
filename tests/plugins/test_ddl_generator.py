"""
Tests for PostgreSQL DDL Generation Module

These tests validate the rendered CREATE/DROP/ALTER/INSERT statements and
identifier quoting.
"""

import pytest
from dbexport_pg_import.ddl_generator import DDLGenerator
from dbexport_pg_import.errors import ExportConsistencyError
from dbexport_pg_import.field_definition import FieldDefinition
from dbexport_pg_import.table_definition import IndexDefinition, TableDefinition, UniqueIndexDefinition


@pytest.fixture
def generator():
    return DDLGenerator('legacy')


@pytest.fixture
def widgets():
    fields = [
        FieldDefinition.parse('id integer not null'),
        FieldDefinition.parse('name varchar(10)'),
        FieldDefinition.parse('desc text'),
    ]
    return TableDefinition('widgets', 'widge00100.unl', 0, fields)


class TestCreateStatements:
    """Test schema, table and view creation."""

    def test_create_schema(self, generator):
        assert generator.generate_create_schema() == 'CREATE SCHEMA IF NOT EXISTS "legacy"'

    def test_create_table_columns_in_order(self, generator, widgets):
        ddl = generator.generate_create_table(widgets)
        assert ddl == (
            'CREATE TABLE "legacy"."widgets" (\n'
            '    "id"   INTEGER NOT NULL,\n'
            '    "name" VARCHAR(10),\n'
            '    "desc" TEXT\n'
            ')'
        )

    def test_create_view(self, generator):
        assert generator.generate_create_view('gadgets', 'widgets') == (
            'CREATE VIEW "legacy"."gadgets" AS SELECT * FROM "legacy"."widgets"'
        )


class TestDropStatements:
    """Test drops used before a clean reload."""

    def test_drop_table_cascade(self, generator):
        assert generator.generate_drop_table('widgets') == 'DROP TABLE IF EXISTS "legacy"."widgets" CASCADE'

    def test_drop_table_without_cascade(self, generator):
        assert generator.generate_drop_table('widgets', cascade=False) == 'DROP TABLE IF EXISTS "legacy"."widgets"'

    def test_drop_view(self, generator):
        assert generator.generate_drop_view('gadgets') == 'DROP VIEW IF EXISTS "legacy"."gadgets"'


class TestIndexStatements:
    """Test index rendering."""

    def test_index_keeps_column_order(self, generator):
        index = IndexDefinition('ix_orders', 'orders', ('placed', 'customer_id'))
        assert generator.generate_index(index) == (
            'CREATE INDEX "ix_orders" ON "legacy"."orders" ("placed","customer_id") TABLESPACE "pg_default"'
        )

    def test_unique_index(self, generator):
        index = UniqueIndexDefinition('widgets_pk', 'widgets', ('id',))
        assert generator.generate_index(index).startswith('CREATE UNIQUE INDEX "widgets_pk"')

    def test_cluster_keyword_not_rendered(self, generator):
        index = IndexDefinition('ix_c', 'orders', ('placed',), clustered=True)
        assert 'CLUSTER' not in generator.generate_index(index).upper()

    def test_sort_order_suffix(self, generator):
        index = IndexDefinition('ix_d', 'orders', ('placed desc', 'id'))
        assert '("placed" DESC,"id")' in generator.generate_index(index)

    def test_custom_tablespace(self):
        index = IndexDefinition('ix', 't', ('a',))
        assert DDLGenerator("legacy", tablespace="fast_ssd").generate_index(index).endswith('TABLESPACE "fast_ssd"')


class TestBulkLoadStatements:
    """Test the statements used around and during bulk inserts."""

    def test_logged_toggles(self, generator):
        assert generator.generate_set_unlogged('widgets') == 'ALTER TABLE "legacy"."widgets" SET UNLOGGED'
        assert generator.generate_set_logged('widgets') == 'ALTER TABLE "legacy"."widgets" SET LOGGED'

    def test_insert_all_columns(self, generator, widgets):
        statement, bound = generator.generate_insert(widgets)
        assert statement == (
            'INSERT INTO "legacy"."widgets" ("id", "name", "desc") VALUES (%s, %s, %s)'
        )
        assert bound == [0, 1, 2]

    def test_insert_skips_columns(self, generator, widgets):
        statement, bound = generator.generate_insert(widgets, skip_columns=('desc',))
        assert statement == 'INSERT INTO "legacy"."widgets" ("id", "name") VALUES (%s, %s)'
        assert bound == [0, 1]

    def test_insert_every_column_skipped(self, generator, widgets):
        with pytest.raises(ExportConsistencyError, match="Every column of widgets is skipped"):
            generator.generate_insert(widgets, skip_columns=('id', 'name', 'desc'))

    def test_row_count(self, generator):
        assert generator.generate_row_count('widgets') == 'SELECT COUNT(*) FROM "legacy"."widgets"'


class TestQuoteIdentifier:
    """Test identifier quoting."""

    def test_embedded_quotes_doubled(self, generator):
        assert generator._quote_identifier('we"ird') == '"we""ird"'

    def test_reserved_word_quoted(self, generator):
        assert generator._quote_identifier('desc') == '"desc"'
