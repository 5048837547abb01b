"""
Duplicate detection against rows already stored.

A record is a duplicate when its natural key tuple (both dates, client,
category, advisor, amount) exactly equals the key of a stored row. The
store is queried once with an "in" filter per key column, never per row.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import structlog

from config import settings
from models.captacao import NATURAL_KEY_FIELDS
from services.row_normalizer_service import NormalizedRecord
from services.row_store_service import RowStore

logger = structlog.get_logger(__name__)

NaturalKey = tuple


@dataclass
class DuplicateCheckResult:
    """Candidates split into new and already stored."""
    new_records: list[NormalizedRecord] = field(default_factory=list)
    duplicate_records: list[NormalizedRecord] = field(default_factory=list)
    duplicate_keys: set[NaturalKey] = field(default_factory=set)
    samples: list[str] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicate_records)


def _key_part(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column == "valor_captacao":
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    if column.startswith("data_"):
        # timestamptz columns come back as 2024-03-15T00:00:00+00:00
        return str(value)[:10]
    return str(value).strip()


def natural_key(values: dict[str, Any]) -> NaturalKey:
    """Natural key of a record or stored row, in comparable form."""
    return tuple(_key_part(column, values.get(column)) for column in NATURAL_KEY_FIELDS)


def describe_record(record: NormalizedRecord) -> str:
    """One-line summary shown to the operator before commit."""
    values = record.values
    amount = values.get("valor_captacao")
    amount_text = f"{amount:.2f}" if isinstance(amount, (int, float)) else str(amount)
    return (
        f"Line {record.line}: {values.get('data_captacao')} | "
        f"client {values.get('cod_cliente')} | "
        f"{values.get('tipo_captacao')} | "
        f"advisor {values.get('cod_assessor')} | "
        f"{amount_text}"
    )


class DuplicateDetectionService:
    """Finds candidate records that already exist in the store."""

    def __init__(
        self,
        store: RowStore,
        table: Optional[str] = None,
        sample_size: Optional[int] = None
    ):
        self.store = store
        self.table = table or settings.captacoes_table
        self.sample_size = settings.duplicate_sample_size if sample_size is None else sample_size

    def _filters(self, records: list[NormalizedRecord]) -> dict[str, list[Any]]:
        filters: dict[str, list[Any]] = {}
        for column in NATURAL_KEY_FIELDS:
            seen: list[Any] = []
            distinct: set[Any] = set()
            for record in records:
                value = record.values.get(column)
                if value is None or value == "" or value in distinct:
                    continue
                distinct.add(value)
                seen.append(value)
            filters[column] = seen
        return filters

    def existing_keys(self, records: list[NormalizedRecord]) -> set[NaturalKey]:
        """Natural keys of stored rows that could match the candidates."""
        if not records:
            return set()

        rows = self.store.query_rows_where_any_of(
            self.table,
            self._filters(records),
            columns=",".join(NATURAL_KEY_FIELDS)
        )
        return {natural_key(row) for row in rows}

    def find_duplicates(self, records: list[NormalizedRecord]) -> DuplicateCheckResult:
        """
        Partition candidate records into new and duplicate.

        Args:
            records: Validated records from the upload

        Returns:
            DuplicateCheckResult with a capped, human-readable sample

        Raises:
            DatabaseError: If the store query fails
        """
        logger.info("checking_duplicates", candidates=len(records))

        result = DuplicateCheckResult()
        stored = self.existing_keys(records)

        for record in records:
            key = natural_key(record.values)
            if key in stored:
                result.duplicate_records.append(record)
                result.duplicate_keys.add(key)
                if len(result.samples) < self.sample_size:
                    result.samples.append(describe_record(record))
            else:
                result.new_records.append(record)

        logger.info(
            "duplicates_checked",
            candidates=len(records),
            duplicates=result.duplicate_count,
            new=len(result.new_records)
        )

        return result
