"""
Shared fixtures for import tests: small dbexport directories on disk and a
mocked PostgreSQL connection.
"""

import pytest
from unittest.mock import MagicMock

WIDGETS_HEADER = """{ DATABASE demo  delimiter | }

grant dba to "informix";

{ TABLE "demo".widgets row size = 14 number of columns = 2 index size = 9 }
{ unload file name = widge00100.unl number of rows = 2 }

create table "demo".widgets
  (
    id integer not null ,
    name varchar(10)
  );

revoke all on "demo".widgets from "public" as "informix";

create synonym "demo".gadgets for "demo".widgets;

create unique index "demo".widgets_pk on "demo".widgets (id);
"""

WIDGETS_UNLOAD = "1|Sprocket|\n2|Flange|\n"


@pytest.fixture
def make_export(tmp_path):
    """Factory that writes a header file and unload files to a fresh directory."""

    def _make(header=WIDGETS_HEADER, unload_files=None, header_name='demo.sql'):
        export_dir = tmp_path / 'demo.exp'
        export_dir.mkdir()
        (export_dir / header_name).write_text(header, encoding='utf-8')
        if unload_files is None:
            unload_files = {'widge00100.unl': WIDGETS_UNLOAD}
        for name, content in unload_files.items():
            (export_dir / name).write_text(content, encoding='utf-8')
        return export_dir

    return _make


@pytest.fixture
def mock_pg_conn():
    """PostgreSQL connection whose cursor context manager yields one shared cursor."""
    conn = MagicMock()
    cursor = MagicMock()
    cursor.fetchall.return_value = []
    conn.cursor.return_value.__enter__.return_value = cursor
    conn.cursor.return_value.__exit__.return_value = False
    return conn
