"""
Workbook parser for captação uploads.

Reads the first sheet of an .xlsx or .xls file. The first row holds the
headers, every later non-blank row is a data row. Cell values are kept
untyped: a number in a date column is only resolved once the column is
mapped to a date field.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from io import BytesIO
from typing import Any, Optional
import hashlib
import math
import structlog

import pandas as pd

from exceptions import WorkbookParseError, EmptyWorkbookError

logger = structlog.get_logger(__name__)

# Try openpyxl first (xlsx), fall back to xlrd (xls)
ENGINES = ("openpyxl", "xlrd")


class CellKind(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    DATE = "date"
    EMPTY = "empty"


@dataclass(frozen=True)
class Cell:
    """Single spreadsheet value tagged with its kind."""
    kind: CellKind
    value: Any = None

    @property
    def is_empty(self) -> bool:
        return self.kind == CellKind.EMPTY

    @classmethod
    def from_raw(cls, raw: Any) -> "Cell":
        """Wrap a value as read by pandas/openpyxl/xlrd."""
        if raw is None:
            return EMPTY_CELL
        if isinstance(raw, str):
            return cls(CellKind.TEXT, raw) if raw != "" else EMPTY_CELL
        if isinstance(raw, bool):
            return cls(CellKind.TEXT, str(raw).upper())
        # pd.Timestamp is a datetime subclass
        if isinstance(raw, (datetime, date)):
            if pd.isna(raw):
                return EMPTY_CELL
            return cls(CellKind.DATE, raw)
        if isinstance(raw, (int, float)) or hasattr(raw, "dtype"):
            try:
                number = float(raw)
            except (TypeError, ValueError):
                return cls(CellKind.TEXT, str(raw))
            if math.isnan(number):
                return EMPTY_CELL
            return cls(CellKind.NUMBER, number)
        return cls(CellKind.TEXT, str(raw))


EMPTY_CELL = Cell(CellKind.EMPTY)


@dataclass
class RawRow:
    """One data row; `line` is the spreadsheet line number (header is line 1)."""
    line: int
    cells: dict[str, Cell]

    def get(self, column: str) -> Cell:
        return self.cells.get(column, EMPTY_CELL)


@dataclass
class ParsedWorkbook:
    """Headers and data rows of the first sheet."""
    headers: list[str] = field(default_factory=list)
    rows: list[RawRow] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def file_hash(content: bytes) -> str:
    """SHA-256 of the uploaded file, used to spot repeated uploads."""
    return hashlib.sha256(content).hexdigest()


def parse_workbook(content: bytes) -> ParsedWorkbook:
    """
    Parse the first sheet of a workbook.

    Args:
        content: Raw file bytes (.xlsx or .xls)

    Returns:
        ParsedWorkbook with headers in file order and one RawRow per
        non-blank data line

    Raises:
        WorkbookParseError: If the file is not a readable workbook
        EmptyWorkbookError: If the first sheet has no data rows
    """
    logger.info("parsing_workbook", size_bytes=len(content) if content else 0)

    if not content:
        raise EmptyWorkbookError()

    df = _read_first_sheet(content)

    if df.empty:
        raise EmptyWorkbookError()

    headers = _build_headers(list(df.iloc[0]))
    result = ParsedWorkbook(headers=headers)

    for position in range(1, len(df)):
        values = list(df.iloc[position])
        cells = {
            header: Cell.from_raw(values[i] if i < len(values) else None)
            for i, header in enumerate(headers)
        }
        if all(cell.is_empty for cell in cells.values()):
            continue
        # Header is spreadsheet line 1
        result.rows.append(RawRow(line=position + 1, cells=cells))

    if not result.rows:
        raise EmptyWorkbookError(header_count=len(headers))

    logger.info(
        "workbook_parsed",
        columns=len(result.headers),
        rows=result.row_count
    )

    return result


def _read_first_sheet(content: bytes) -> pd.DataFrame:
    """Load the first sheet without header inference, trying each engine."""
    errors = {}
    for engine in ENGINES:
        try:
            return pd.read_excel(
                BytesIO(content),
                sheet_name=0,
                header=None,
                dtype=object,
                engine=engine,
            )
        except Exception as e:
            errors[engine] = str(e)
            continue

    logger.error("workbook_read_failed", errors=errors)
    raise WorkbookParseError(
        message="Failed to read workbook. Supported formats: .xlsx, .xls",
        details={"engines": errors}
    )


def _build_headers(raw_headers: list[Any]) -> list[str]:
    """Stringify header cells, naming blanks and suffixing repeats."""
    headers: list[str] = []
    seen: dict[str, int] = {}

    for i, raw in enumerate(raw_headers):
        cell = Cell.from_raw(raw)
        name = _header_text(cell) or f"Column {i + 1}"

        if name in seen:
            seen[name] += 1
            candidate = f"{name}_{seen[name]}"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name}_{seen[name]}"
            name = candidate
        seen.setdefault(name, 0)
        headers.append(name)

    return headers


def _header_text(cell: Cell) -> Optional[str]:
    if cell.kind == CellKind.EMPTY:
        return None
    if cell.kind == CellKind.NUMBER and float(cell.value).is_integer():
        return str(int(cell.value))
    if cell.kind == CellKind.DATE:
        return cell.value.isoformat()[:10]
    text = str(cell.value).strip()
    return text or None
