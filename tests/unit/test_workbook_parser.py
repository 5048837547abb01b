"""
Unit tests for the workbook parser.

Workbooks are built in memory with openpyxl.
"""

from datetime import datetime
from unittest.mock import patch

import pandas as pd
import pytest

from parsers.workbook_parser import (
    parse_workbook,
    file_hash,
    Cell,
    CellKind,
    EMPTY_CELL,
)
from exceptions import WorkbookParseError, EmptyWorkbookError
from tests.conftest import build_workbook, EXAMPLE_HEADERS, EXAMPLE_ROW


# ===================
# CELL TESTS
# ===================

class TestCellFromRaw:

    def test_none_is_empty(self):
        assert Cell.from_raw(None) is EMPTY_CELL

    def test_empty_string_is_empty(self):
        assert Cell.from_raw("").is_empty

    def test_text(self):
        assert Cell.from_raw("APORTE") == Cell(CellKind.TEXT, "APORTE")

    def test_int_becomes_number(self):
        cell = Cell.from_raw(45366)
        assert cell.kind == CellKind.NUMBER
        assert cell.value == 45366.0

    def test_nan_is_empty(self):
        assert Cell.from_raw(float("nan")).is_empty

    def test_datetime_is_date(self):
        cell = Cell.from_raw(datetime(2024, 3, 15))
        assert cell.kind == CellKind.DATE

    def test_bool_is_text(self):
        assert Cell.from_raw(True) == Cell(CellKind.TEXT, "TRUE")


# ===================
# PARSE TESTS
# ===================

class TestParseWorkbook:

    def test_headers_in_file_order(self):
        result = parse_workbook(build_workbook([EXAMPLE_HEADERS, EXAMPLE_ROW]))

        assert result.headers == EXAMPLE_HEADERS
        assert result.row_count == 1

    def test_cells_keyed_by_header(self):
        result = parse_workbook(build_workbook([EXAMPLE_HEADERS, EXAMPLE_ROW]))
        row = result.rows[0]

        assert row.get("Cod Cliente") == Cell(CellKind.TEXT, "C500")
        assert row.get("Valor") == Cell(CellKind.TEXT, "1000.50")

    def test_first_data_row_is_line_2(self):
        result = parse_workbook(build_workbook([EXAMPLE_HEADERS, EXAMPLE_ROW]))

        assert result.rows[0].line == 2

    def test_numbers_and_dates_keep_their_kind(self):
        content = build_workbook([
            ["Data", "Valor"],
            [datetime(2024, 3, 15), 1500],
        ])
        row = parse_workbook(content).rows[0]

        assert row.get("Data").kind == CellKind.DATE
        assert row.get("Valor") == Cell(CellKind.NUMBER, 1500.0)

    def test_blank_rows_skipped_but_lines_kept(self):
        content = build_workbook([
            ["A", "B"],
            ["x", "y"],
            [None, None],
            ["z", "w"],
        ])
        result = parse_workbook(content)

        assert result.row_count == 2
        assert [r.line for r in result.rows] == [2, 4]

    def test_missing_cells_are_empty(self):
        content = build_workbook([
            ["A", "B", "C"],
            ["x"],
        ])
        row = parse_workbook(content).rows[0]

        assert row.get("B").is_empty
        assert row.get("C").is_empty

    def test_blank_header_named_by_position(self):
        content = build_workbook([
            ["A", None, "C"],
            ["x", "y", "z"],
        ])

        assert parse_workbook(content).headers == ["A", "Column 2", "C"]

    def test_repeated_headers_suffixed(self):
        content = build_workbook([
            ["Valor", "Valor", "Valor"],
            [1, 2, 3],
        ])

        assert parse_workbook(content).headers == ["Valor", "Valor_1", "Valor_2"]

    def test_numeric_header_stringified(self):
        content = build_workbook([
            [2024, "B"],
            ["x", "y"],
        ])

        assert parse_workbook(content).headers[0] == "2024"


class TestParseErrors:

    def test_empty_bytes(self):
        with pytest.raises(EmptyWorkbookError):
            parse_workbook(b"")

    def test_header_only(self):
        with pytest.raises(EmptyWorkbookError) as exc_info:
            parse_workbook(build_workbook([EXAMPLE_HEADERS]))

        assert exc_info.value.code == "WORKBOOK_EMPTY"

    def test_not_a_workbook(self):
        with pytest.raises(WorkbookParseError) as exc_info:
            parse_workbook(b"this is not a spreadsheet")

        assert "Supported formats" in exc_info.value.message
        assert list(exc_info.value.details["engines"]) == ["openpyxl", "xlrd"]

    def test_empty_workbook_is_parse_error(self):
        assert issubclass(EmptyWorkbookError, WorkbookParseError)


class TestLegacyXls:

    def test_falls_back_to_xlrd(self):
        engines = []

        def read_excel(buffer, engine, **kwargs):
            engines.append(engine)
            if engine == "openpyxl":
                raise ValueError("File is not a zip file")
            return pd.DataFrame([EXAMPLE_HEADERS, EXAMPLE_ROW], dtype=object)

        with patch.object(pd, "read_excel", side_effect=read_excel):
            workbook = parse_workbook(b"\xd0\xcf\x11\xe0 legacy xls")

        assert engines == ["openpyxl", "xlrd"]
        assert workbook.headers == EXAMPLE_HEADERS
        assert workbook.rows[0].get("Cod Cliente") == Cell(CellKind.TEXT, "C500")

    def test_xlsx_never_reaches_xlrd(self):
        with patch.object(pd, "read_excel", wraps=pd.read_excel) as read_excel:
            parse_workbook(build_workbook([EXAMPLE_HEADERS, EXAMPLE_ROW]))

        assert [c.kwargs["engine"] for c in read_excel.call_args_list] == ["openpyxl"]


class TestFileHash:

    def test_same_content_same_hash(self):
        content = build_workbook([EXAMPLE_HEADERS, EXAMPLE_ROW])
        assert file_hash(content) == file_hash(content)

    def test_sha256_hex(self):
        assert len(file_hash(b"abc")) == 64
