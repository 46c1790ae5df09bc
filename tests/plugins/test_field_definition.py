"""
Tests for Field Definition Module

These tests cover the column declaration grammar, value interpretation
and the byte-length truncation applied before binding.
"""

import logging
from datetime import date, datetime

import pytest
from dbexport_pg_import.errors import ExportFormatError, ParseCursor, ValueInterpretationError
from dbexport_pg_import.field_definition import (
    FieldDefinition,
    FieldType,
    truncate_to_byte_length,
)


class TestFieldDefinitionParse:
    """Test parsing of column declaration lines."""

    @pytest.mark.parametrize("text,field_type", [
        ("qty smallint,", FieldType.SMALLINT),
        ("id integer,", FieldType.INTEGER),
        ("serial_no bigint,", FieldType.BIGINT),
        ("shipped date,", FieldType.DATE),
        ("notes text", FieldType.CLOB),
    ])
    def test_simple_types(self, text, field_type):
        """Types without size arguments."""
        field = FieldDefinition.parse(text)
        assert field.field_type is field_type
        assert field.length == 0
        assert field.precision == 0
        assert field.required is False

    def test_integer_not_null(self):
        """'not null' anywhere after the type marks the field required."""
        field = FieldDefinition.parse("age integer not null")
        assert field.field_name == "age"
        assert field.field_type is FieldType.INTEGER
        assert field.required is True

    def test_char_and_varchar_lengths(self):
        """char(N) and varchar(N) carry their length."""
        char = FieldDefinition.parse("code char(3) not null ,")
        varchar = FieldDefinition.parse("name varchar(10),")
        assert (char.field_type, char.length, char.required) == (FieldType.CHAR, 3, True)
        assert (varchar.field_type, varchar.length) == (FieldType.VARCHAR, 10)

    def test_decimal_length_and_precision(self):
        field = FieldDefinition.parse("amount decimal(8,2)")
        assert field.field_type is FieldType.DECIMAL
        assert field.length == 8
        assert field.precision == 2

    def test_datetime_year_to_second(self):
        field = FieldDefinition.parse("created datetime year to second not null,")
        assert field.field_type is FieldType.TIMESTAMP
        assert field.required is True

    def test_datetime_other_precision_rejected(self):
        with pytest.raises(ExportFormatError, match="Unsupported datetime precision"):
            FieldDefinition.parse("created datetime year to fraction(3),")

    def test_unsupported_type(self):
        with pytest.raises(ExportFormatError, match="Unsupported data type 'money\\(16,2\\)'"):
            FieldDefinition.parse("price money(16,2),")

    def test_missing_type(self):
        with pytest.raises(ExportFormatError):
            FieldDefinition.parse("orphan")

    def test_type_token_is_case_sensitive(self):
        with pytest.raises(ExportFormatError, match="Unsupported data type 'INTEGER' for field 'id'"):
            FieldDefinition.parse("id INTEGER")

    def test_error_positioned_by_cursor(self):
        """Errors raised with a cursor carry the file name and 1-based line."""
        cursor = ParseCursor("demo.sql", ["a", "b", "price money"], index=2)
        with pytest.raises(ExportFormatError) as exc_info:
            FieldDefinition.parse("price money", cursor)
        assert exc_info.value.line_number == 3
        assert str(exc_info.value).startswith("demo.sql, line 3:")


class TestRendering:
    """Test PostgreSQL column rendering."""

    @pytest.mark.parametrize("text,pg_type", [
        ("a smallint", "SMALLINT"),
        ("a integer", "INTEGER"),
        ("a bigint", "BIGINT"),
        ("a date", "DATE"),
        ("a datetime year to second", "TIMESTAMP(0)"),
        ("a char(4)", "CHAR(4)"),
        ("a varchar(10)", "VARCHAR(10)"),
        ("a decimal(8,2)", "DECIMAL(8,2)"),
        ("a text", "TEXT"),
    ])
    def test_pg_type(self, text, pg_type):
        assert FieldDefinition.parse(text).pg_type == pg_type

    def test_render_column_round_trip(self):
        """A parsed field renders back to an equivalent column clause."""
        field = FieldDefinition.parse("age integer not null")
        assert field.render_column('"age"') == '"age" INTEGER NOT NULL'

    def test_render_column_padding(self):
        field = FieldDefinition.parse("id integer")
        assert field.render_column('"id"', pad_to=8) == '"id"     INTEGER'


class TestInterpret:
    """Test conversion of raw unload values."""

    def test_empty_is_null(self):
        for text in ("a integer", "a varchar(5)", "a date"):
            assert FieldDefinition.parse(text).interpret('') is None

    def test_numeric_values(self):
        assert FieldDefinition.parse("a integer").interpret('42') == 42
        assert FieldDefinition.parse("a bigint").interpret('9000000000') == 9000000000
        assert FieldDefinition.parse("a decimal(8,2)").interpret('12.50') == 12.5

    def test_date_and_timestamp(self):
        assert FieldDefinition.parse("a date").interpret('03/15/2021') == date(2021, 3, 15)
        assert FieldDefinition.parse("a datetime year to second").interpret(
            '2021-03-15 13:45:00'
        ) == datetime(2021, 3, 15, 13, 45, 0)

    def test_character_values_unchanged(self):
        assert FieldDefinition.parse("a char(5)").interpret('ab ') == 'ab '
        assert FieldDefinition.parse("a text").interpret('line1\nline2') == 'line1\nline2'

    def test_invalid_value_names_field(self):
        field = FieldDefinition.parse("shipped date")
        with pytest.raises(ValueInterpretationError) as exc_info:
            field.interpret('2021-03-15')
        assert exc_info.value.field_name == 'shipped'
        assert exc_info.value.value == '2021-03-15'

    def test_invalid_integer(self):
        with pytest.raises(ValueInterpretationError, match="field 'qty'"):
            FieldDefinition.parse("qty integer").interpret('ten')


class TestTruncation:
    """Test truncation of character values that exceed the declared length."""

    def test_truncates_over_length_with_warning(self, caplog):
        field = FieldDefinition.parse("name varchar(5)")
        with caplog.at_level(logging.WARNING, logger='dbexport_pg_import.field_definition'):
            value = field.bind_value('abcdef')
        assert value == 'abcde'
        assert "'abcdef' -> 'abcde'" in caplog.text

    def test_fitting_value_unchanged(self, caplog):
        field = FieldDefinition.parse("name varchar(5)")
        with caplog.at_level(logging.WARNING):
            assert field.bind_value('abcde') == 'abcde'
            assert field.bind_value('abc') == 'abc'
        assert caplog.records == []

    def test_multibyte_characters_measured_in_bytes(self):
        field = FieldDefinition.parse("name char(5)")
        # 'é' is two bytes in UTF-8: 'ééé' is six bytes
        assert field.bind_value('ééé') == 'éé'

    def test_non_character_values_untouched(self):
        assert FieldDefinition.parse("a integer").bind_value(123456) == 123456
        assert FieldDefinition.parse("a text").bind_value('x' * 100) == 'x' * 100
        assert FieldDefinition.parse("a varchar(2)").bind_value(None) is None

    def test_truncate_to_byte_length(self):
        assert truncate_to_byte_length('abcdef', 5) == 'abcde'
        assert truncate_to_byte_length('aé', 2) == 'a'
        assert truncate_to_byte_length('', 3) == ''
