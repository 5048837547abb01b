"""
Spreadsheet parsers module.
"""

from parsers.workbook_parser import (
    parse_workbook,
    file_hash,
    ParsedWorkbook,
    RawRow,
    Cell,
    CellKind,
)

__all__ = [
    "parse_workbook",
    "file_hash",
    "ParsedWorkbook",
    "RawRow",
    "Cell",
    "CellKind",
]
