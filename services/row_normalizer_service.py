"""
Row normalization and validation.

Turns each RawRow into a NormalizedRecord using the confirmed column
mapping, or into line-addressed error strings. A bad row never stops the
upload: its errors are collected and the row is left out.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from types import MappingProxyType
from typing import Any, Mapping, Optional
import math
import re
import structlog

from openpyxl.utils.datetime import from_excel

from models.captacao import FieldType, TargetField, TARGET_FIELDS, NATURAL_KEY_FIELDS
from parsers.workbook_parser import Cell, CellKind, RawRow
from services.column_mapping_service import ColumnMapping, confirmed_mappings

logger = structlog.get_logger(__name__)

SPREADSHEET_EPOCH = datetime(1899, 12, 30)

_DMY = re.compile(r"^(\d{1,2})([/-])(\d{1,2})\2(\d{4})$")
_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")


class InvalidCellError(ValueError):
    """Cell cannot be coerced to its field type."""


@dataclass(frozen=True)
class NormalizedRecord:
    """Validated row, keyed by target field."""
    line: int
    values: Mapping[str, Any]

    def natural_key(self) -> tuple:
        return tuple(self.values.get(k) for k in NATURAL_KEY_FIELDS)

    def to_row(self) -> dict[str, Any]:
        """Plain dict ready for insert."""
        return dict(self.values)


@dataclass
class NormalizationResult:
    """Outcome of validating every row of an upload."""
    records: list[NormalizedRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    invalid_row_count: int = 0

    @property
    def valid_row_count(self) -> int:
        return len(self.records)


# ===================
# CELL COERCION
# ===================

def serial_to_date(serial: float) -> date:
    """
    Convert a spreadsheet date serial (1900 date system) to a date.

    Uses openpyxl's converter; values it cannot handle fall back to a plain
    offset from the 1899-12-30 epoch.
    """
    if serial <= 0 or math.isinf(serial) or math.isnan(serial):
        raise InvalidCellError(f"Not a date serial: {serial}")
    try:
        converted = from_excel(serial)
    except (ValueError, TypeError, OverflowError):
        converted = None
    if isinstance(converted, datetime):
        return converted.date()
    if isinstance(converted, date):
        return converted
    try:
        return (SPREADSHEET_EPOCH + timedelta(days=int(serial))).date()
    except OverflowError as e:
        raise InvalidCellError(f"Not a date serial: {serial}") from e


def _parse_date_text(text: str) -> date:
    text = text.strip()

    match = _DMY.match(text)
    if match:
        day, month, year = (int(g) for g in match.group(1, 3, 4))
        if not (1 <= day <= 31 and 1 <= month <= 12):
            raise InvalidCellError(text)
    else:
        match = _ISO.match(text)
        if not match:
            raise InvalidCellError(text)
        year, month, day = (int(g) for g in match.groups())

    try:
        return date(year, month, day)
    except ValueError as e:
        raise InvalidCellError(text) from e


def coerce_date(cell: Cell) -> Optional[str]:
    """Canonical YYYY-MM-DD, or None for an empty cell."""
    if cell.kind == CellKind.EMPTY:
        return None
    if cell.kind == CellKind.DATE:
        value = cell.value
        if isinstance(value, datetime):
            value = value.date()
        return value.isoformat()
    if cell.kind == CellKind.NUMBER:
        return serial_to_date(cell.value).isoformat()
    text = str(cell.value).strip()
    if not text:
        return None
    return _parse_date_text(text).isoformat()


def coerce_decimal(cell: Cell) -> Optional[float]:
    """Float value, or None for an empty cell."""
    if cell.kind == CellKind.EMPTY:
        return None
    if cell.kind == CellKind.NUMBER:
        number = float(cell.value)
    elif cell.kind == CellKind.TEXT:
        text = str(cell.value).strip().replace(" ", "")
        if not text:
            return None
        # 1.000,50 and 1000,50 (pt-BR) as well as 1,000.50 and 1000.50
        if "," in text and text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
        try:
            number = float(text)
        except ValueError as e:
            raise InvalidCellError(text) from e
    else:
        raise InvalidCellError(str(cell.value))

    if math.isnan(number) or math.isinf(number):
        raise InvalidCellError(str(cell.value))
    return number


def coerce_text(cell: Cell) -> Optional[str]:
    """Trimmed string, or None when nothing is left."""
    if cell.kind == CellKind.EMPTY:
        return None
    if cell.kind == CellKind.NUMBER:
        number = float(cell.value)
        # Codes typed as numbers come back as 500.0
        text = str(int(number)) if number.is_integer() else str(number)
    elif cell.kind == CellKind.DATE:
        value = cell.value.date() if isinstance(cell.value, datetime) else cell.value
        text = value.isoformat()
    else:
        text = str(cell.value)
    text = text.strip()
    return text or None


# ===================
# ROW NORMALIZATION
# ===================

def normalize_row(
    row: RawRow,
    mappings: list[ColumnMapping],
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> tuple[Optional[NormalizedRecord], list[str]]:
    """
    Normalize a single row.

    Returns:
        (record, []) when valid, (None, errors) otherwise
    """
    values: dict[str, Any] = {}
    errors: list[str] = []

    for mapping in confirmed_mappings(mappings):
        target = mapping.target_field
        column = mapping.source_column
        cell = row.get(column)

        try:
            if target.type == FieldType.DATE:
                value = coerce_date(cell)
            elif target.type == FieldType.DECIMAL:
                value = coerce_decimal(cell)
            else:
                value = coerce_text(cell)
        except InvalidCellError:
            if target.type == FieldType.DATE:
                errors.append(f"Line {row.line}: invalid date in column {column}")
            else:
                errors.append(f"Line {row.line}: invalid numeric value in column {column}")
            continue

        if value is not None:
            values[target.key] = value

    if errors:
        return None, errors

    missing = [
        f.key for f in fields
        if f.required and (values.get(f.key) is None or values.get(f.key) == "")
    ]
    if missing:
        return None, [f"Line {row.line}: missing required fields: {', '.join(missing)}"]

    return NormalizedRecord(line=row.line, values=MappingProxyType(values)), []


def normalize_rows(
    rows: list[RawRow],
    mappings: list[ColumnMapping],
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> NormalizationResult:
    """
    Normalize every row, collecting errors instead of raising.

    Args:
        rows: Parsed data rows
        mappings: Operator-confirmed column mapping
        fields: Target schema

    Returns:
        NormalizationResult with valid records and per-line errors
    """
    result = NormalizationResult()

    for row in rows:
        record, errors = normalize_row(row, mappings, fields)
        if record is None:
            result.errors.extend(errors)
            result.invalid_row_count += 1
        else:
            result.records.append(record)

    logger.info(
        "rows_normalized",
        total=len(rows),
        valid=result.valid_row_count,
        invalid=result.invalid_row_count,
        error_count=len(result.errors)
    )

    return result
