"""
Sequential batch commit of new records.

Records are inserted in fixed-size chunks, one after another. A failing
chunk is reported and skipped: it is not retried and earlier chunks are
not rolled back. Progress is reported after every chunk.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import time
import structlog

from config import settings
from services.row_normalizer_service import NormalizedRecord
from services.row_store_service import RowStore

logger = structlog.get_logger(__name__)

# on_batch_complete(batch_index, total_batches, inserted_so_far); index is 1-based
BatchCallback = Callable[[int, int, int], None]


@dataclass
class CommitResult:
    """Totals of one commit run."""
    inserted_count: int = 0
    failed_row_count: int = 0
    batch_count: int = 0
    failed_batch_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return self.batch_count > 0 and self.failed_batch_count == self.batch_count


def chunk_records(records: list[NormalizedRecord], size: int) -> list[list[NormalizedRecord]]:
    """Split records into consecutive chunks of at most `size`."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [records[i:i + size] for i in range(0, len(records), size)]


class BatchCommitService:
    """Inserts records in bounded sequential batches."""

    def __init__(
        self,
        store: RowStore,
        table: Optional[str] = None,
        chunk_size: Optional[int] = None,
        yield_seconds: Optional[float] = None
    ):
        self.store = store
        self.table = table or settings.captacoes_table
        self.chunk_size = chunk_size or settings.ingestion_chunk_size
        self.yield_seconds = settings.batch_yield_seconds if yield_seconds is None else yield_seconds

    def commit(
        self,
        records: list[NormalizedRecord],
        on_batch_complete: Optional[BatchCallback] = None
    ) -> CommitResult:
        """
        Insert records chunk by chunk.

        Args:
            records: New (non-duplicate) records
            on_batch_complete: Called after every chunk, success or not

        Returns:
            CommitResult with inserted count and per-chunk errors
        """
        chunks = chunk_records(records, self.chunk_size)
        result = CommitResult(batch_count=len(chunks))

        logger.info(
            "commit_started",
            table=self.table,
            records=len(records),
            batches=len(chunks),
            chunk_size=self.chunk_size
        )

        for index, chunk in enumerate(chunks, start=1):
            try:
                self.store.insert_rows(self.table, [r.to_row() for r in chunk])
                result.inserted_count += len(chunk)
                logger.debug("batch_committed", batch=index, total=len(chunks), rows=len(chunk))
            except Exception as e:
                reason = getattr(e, "message", None) or str(e)
                result.failed_batch_count += 1
                result.failed_row_count += len(chunk)
                result.errors.append(
                    f"Batch {index}/{len(chunks)} (lines {chunk[0].line}-{chunk[-1].line}): {reason}"
                )
                logger.warning(
                    "batch_commit_failed",
                    batch=index,
                    total=len(chunks),
                    rows=len(chunk),
                    error=reason
                )

            if on_batch_complete is not None:
                on_batch_complete(index, len(chunks), result.inserted_count)

            # Let the host breathe between batches
            if self.yield_seconds:
                time.sleep(self.yield_seconds)

        logger.info(
            "commit_finished",
            inserted=result.inserted_count,
            failed_batches=result.failed_batch_count,
            failed_rows=result.failed_row_count
        )

        return result
