"""
Shared test fixtures.

Provides an in-memory Supabase fake, a workbook builder and
orchestrator/client fixtures wired to the fake.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

# Settings require these before config is imported
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from io import BytesIO
from typing import Any, Generator, Optional
from unittest.mock import patch

from openpyxl import Workbook


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Chainable query over one in-memory table.

    Supports the filters the upload pipeline uses: in_, eq, order,
    limit and range on select; insert writes into the table.
    """

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._columns: Optional[list[str]] = None
        self._filters: list[tuple[str, str, Any]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None
        self._range: Optional[tuple[int, int]] = None
        self._insert: Optional[list[dict]] = None

    def select(self, columns: str = "*", **kwargs):
        if columns != "*":
            self._columns = [c.strip() for c in columns.split(",")]
        return self

    def insert(self, data):
        self._insert = [dict(item) for item in (data if isinstance(data, list) else [data])]
        return self

    def eq(self, column, value):
        self._filters.append(("eq", column, value))
        return self

    def in_(self, column, values):
        self._filters.append(("in", column, list(values)))
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def _matches(self, row: dict) -> bool:
        for op, column, value in self._filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "in" and row.get(column) not in value:
                return False
        return True

    def execute(self) -> MockSupabaseResponse:
        client = self._client

        if self._insert is not None:
            client.insert_calls.append((self._table, self._insert))
            call_number = sum(1 for table, _ in client.insert_calls if table == self._table)
            if (self._table, call_number) in client.failing_inserts:
                raise Exception(f"insert {call_number} rejected")
            client.tables.setdefault(self._table, []).extend(self._insert)
            return MockSupabaseResponse(data=self._insert)

        client.select_calls.append((self._table, list(self._filters), self._range))
        if client.fail_selects:
            raise Exception("select failed")

        rows = [row for row in client.tables.get(self._table, []) if self._matches(row)]
        total = len(rows)
        if self._order is not None:
            column, desc = self._order
            rows.sort(key=lambda r: str(r.get(column)), reverse=desc)
        if self._range is not None:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        if client.max_rows is not None:
            rows = rows[:client.max_rows]
        if self._columns is not None:
            rows = [{c: row.get(c) for c in self._columns} for row in rows]
        return MockSupabaseResponse(data=rows, count=total)


class MockSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        mock_supabase.set_table_data("dados_captacoes", [...])
        mock_supabase.fail_insert("dados_captacoes", 2)    # 2nd insert into the table raises
        mock_supabase.max_rows = 1000                       # truncate every select
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.insert_calls: list[tuple[str, list[dict]]] = []
        self.select_calls: list[tuple] = []
        self.failing_inserts: set[tuple[str, int]] = set()
        self.fail_selects = False
        # Server-side cap on rows per response, like PostgREST max-rows
        self.max_rows: Optional[int] = None

    def fail_insert(self, table_name: str, call_number: int):
        """Make the Nth insert into table_name raise."""
        self.failing_inserts.add((table_name, call_number))

    def inserts_into(self, table_name: str) -> list[list[dict]]:
        return [rows for table, rows in self.insert_calls if table == table_name]

    def set_table_data(self, table_name: str, data: list):
        """Configure mock data for a table."""
        self.tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self.tables.get(table_name, [])

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)


# ===================
# WORKBOOKS
# ===================

EXAMPLE_HEADERS = [
    "Data Captação", "Cod Assessor", "Cod Cliente", "Tipo",
    "Aux", "Valor", "Data Atualização", "Tipo Pessoa",
]

EXAMPLE_ROW = ["15/03/2024", "A001", "C500", "APORTE", "X", "1000.50", "16/03/2024", "PF"]


def build_workbook(rows: list[list[Any]]) -> bytes:
    """Write rows (header first) to the first sheet of an .xlsx in memory."""
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    output = BytesIO()
    wb.save(output)
    return output.getvalue()


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with the in-memory fake.

    Any RowStore or UploadHistoryService created inside the fixture
    uses mock_supabase.
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.row_store_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.upload_history_service.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase


@pytest.fixture
def row_store(mock_db):
    from services.row_store_service import RowStore
    return RowStore(page_size=100)


@pytest.fixture
def history(mock_db):
    from services.upload_history_service import UploadHistoryService
    return UploadHistoryService()


@pytest.fixture
def orchestrator_factory(row_store, history):
    """Build orchestrators on the fake store with no pause between batches."""
    from services.ingestion_service import IngestionOrchestrator

    def make(chunk_size: int = 500, with_history: bool = True):
        return IngestionOrchestrator(
            store=row_store,
            history=history if with_history else None,
            chunk_size=chunk_size,
            yield_seconds=0,
        )

    return make


@pytest.fixture
def example_workbook() -> bytes:
    return build_workbook([EXAMPLE_HEADERS, EXAMPLE_ROW])


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_supabase):
    """
    FastAPI test client with the store and history on the fake.

    Upload sessions are cleared between tests.
    """
    from fastapi.testclient import TestClient
    from config import settings
    from main import app
    from services.row_store_service import RowStore
    from services.upload_history_service import UploadHistoryService

    with patch("services.row_store_service.get_supabase_client", return_value=mock_supabase):
        with patch("services.upload_history_service.get_supabase_client", return_value=mock_supabase):
            with patch.object(settings, "batch_yield_seconds", 0):
                with patch("routes.captacoes.get_row_store", side_effect=lambda: RowStore(page_size=100)):
                    with patch("routes.captacoes.get_upload_history_service", side_effect=UploadHistoryService):
                        app.state.upload_sessions.clear()
                        yield TestClient(app)
                        app.state.upload_sessions.clear()
