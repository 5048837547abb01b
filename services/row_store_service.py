"""
Row store backed by Supabase.

The only two calls the upload pipeline makes against the database:
bulk insert, and a read filtered by "value in list" per column.
"""

from typing import Any, Optional
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

# PostgREST default max-rows; a larger range() is silently truncated
MAX_PAGE_SIZE = 1000


class RowStore:
    """
    Thin wrapper over the Supabase table API.

    Every failure is re-raised as DatabaseError so callers decide whether
    it is fatal.
    """

    def __init__(self, page_size: Optional[int] = None):
        self.db = get_supabase_client()
        self.page_size = min(page_size or settings.store_page_size, MAX_PAGE_SIZE)

    def insert_rows(self, table: str, records: list[dict[str, Any]]) -> int:
        """
        Insert records in a single call.

        Returns:
            Number of rows submitted

        Raises:
            DatabaseError: If the insert is rejected
        """
        if not records:
            return 0

        logger.debug("inserting_rows", table=table, count=len(records))

        try:
            self.db.table(table).insert(records).execute()
        except Exception as e:
            logger.error(
                "insert_rows_failed",
                table=table,
                count=len(records),
                error=str(e)
            )
            raise DatabaseError("insert", str(e), details={"table": table})

        return len(records)

    def query_rows_where_any_of(
        self,
        table: str,
        filters: dict[str, list[Any]],
        columns: str = "*",
        order_by: str = "id"
    ) -> list[dict[str, Any]]:
        """
        Read rows whose value is one of the given set, for every column.

        Filters combine with AND, so the result is the intersection of the
        per-column "in" filters. Pages through the result with range().

        Args:
            table: Table name
            filters: Column name -> accepted values
            columns: Select clause
            order_by: Column that gives the pages a stable order

        Returns:
            Matching rows

        Raises:
            DatabaseError: If the query fails
        """
        if any(not values for values in filters.values()):
            return []

        logger.debug(
            "querying_rows",
            table=table,
            filters={column: len(values) for column, values in filters.items()}
        )

        rows: list[dict[str, Any]] = []
        offset = 0

        try:
            while True:
                query = self.db.table(table).select(columns)
                for column, values in filters.items():
                    query = query.in_(column, list(values))
                query = query.order(order_by)
                result = query.range(offset, offset + self.page_size - 1).execute()

                page = result.data or []
                rows.extend(page)
                if len(page) < self.page_size:
                    break
                offset += self.page_size

        except Exception as e:
            logger.error("query_rows_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e), details={"table": table})

        logger.info("rows_queried", table=table, count=len(rows))
        return rows


def get_row_store() -> RowStore:
    """Create a RowStore on the shared Supabase client."""
    return RowStore()
